"""
FixMyArea - Auth Routes
Registration, login (password or OTP), token refresh and current user
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from fixmyarea.auth.oauth2 import Identity, get_current_identity
from fixmyarea.config import settings
from fixmyarea.database import get_db
from fixmyarea.models.schemas import LoginRequest, RegisterRequest
from fixmyarea.services.auth_service import AuthService
from fixmyarea.utils.clock import Clock, get_clock
from fixmyarea.utils.otp_service import OTPLedger

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


def get_auth_service(db: AsyncSession = Depends(get_db), clock: Clock = Depends(get_clock)) -> AuthService:
    return AuthService(db, OTPLedger(db, settings, clock), settings, clock)


# ========== REGISTRATION ==========

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    """Create an account after the phone has been verified via /api/otp/verify"""
    data = await service.register(
        name=payload.name,
        phone=payload.phone,
        role=payload.role,
        password=payload.password,
        location=payload.location.model_dump(),
        email=payload.email,
        gender=payload.gender,
        dob=payload.dob,
        verification_token=payload.verification_token,
    )
    return {"success": True, "message": "User registered successfully", "data": data}


# ========== LOGIN ==========

@router.post("/login")
async def login(payload: LoginRequest, service: AuthService = Depends(get_auth_service)):
    """Login with phone and either password or a login OTP"""
    data = await service.login(payload.phone, password=payload.password, otp=payload.otp)
    return {"success": True, "message": "Login successful", "data": data}


# ========== SESSION ==========

@router.post("/refresh")
async def refresh_token(
    identity: Identity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    data = await service.refresh(identity.id)
    return {"success": True, "data": data}


@router.get("/me")
async def get_me(
    identity: Identity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    data = await service.get_current_user(identity.id)
    return {"success": True, "data": data}
