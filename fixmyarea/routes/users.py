"""
FixMyArea - User Routes
Admin account management plus the self-service profile endpoint
"""
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from fixmyarea.auth.oauth2 import Identity, get_current_identity, require_roles
from fixmyarea.database import get_db
from fixmyarea.models.db_models import UserRole
from fixmyarea.models.schemas import ProfileUpdate, UserCreate, UserUpdate
from fixmyarea.services.user_service import UserService
from fixmyarea.utils.clock import Clock, get_clock

router = APIRouter(prefix="/api/users", tags=["Users"])

admin_only = require_roles(UserRole.ADMIN)


def get_user_service(db: AsyncSession = Depends(get_db), clock: Clock = Depends(get_clock)) -> UserService:
    return UserService(db, clock)


# ==================== PROFILE ====================

@router.put("/profile")
async def update_profile(
    payload: ProfileUpdate,
    identity: Identity = Depends(get_current_identity),
    service: UserService = Depends(get_user_service),
):
    data = await service.update_profile(
        identity.id,
        name=payload.name,
        gender=payload.gender,
        dob=payload.dob,
        location=payload.location.model_dump() if payload.location else None,
    )
    return {"success": True, "message": "Profile updated successfully", "data": data}


# ==================== ADMIN ====================

@router.get("")
async def list_users(
    role: Optional[UserRole] = None,
    state: Optional[str] = None,
    district: Optional[str] = None,
    village: Optional[str] = None,
    identity: Identity = Depends(admin_only),
    service: UserService = Depends(get_user_service),
):
    data = await service.list_users(role, state, district, village)
    return {"success": True, "count": len(data), "data": data}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    identity: Identity = Depends(admin_only),
    service: UserService = Depends(get_user_service),
):
    data = await service.create_user(
        name=payload.name,
        phone=payload.phone,
        role=payload.role,
        password=payload.password,
        location=payload.location.model_dump(),
        email=payload.email,
        gender=payload.gender,
        dob=payload.dob,
        areas_assigned=[area.model_dump() for area in payload.areas_assigned],
    )
    return {"success": True, "message": "User created successfully", "data": data}


@router.patch("/{user_id}")
async def update_user(
    user_id: str,
    payload: UserUpdate,
    identity: Identity = Depends(admin_only),
    service: UserService = Depends(get_user_service),
):
    areas = None
    if payload.areas_assigned is not None:
        areas = [area.model_dump() for area in payload.areas_assigned]
    data = await service.update_user(user_id, role=payload.role, status=payload.status, areas_assigned=areas)
    return {"success": True, "message": "User updated successfully", "data": data}
