"""
FixMyArea - Complaint Routes
Residents file and follow complaints; staff and admins work them
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from fixmyarea.auth.oauth2 import Identity, get_current_identity, require_roles
from fixmyarea.config import settings
from fixmyarea.database import get_db
from fixmyarea.models.db_models import UserRole
from fixmyarea.models.schemas import CommentCreate, ComplaintUpdate
from fixmyarea.services.complaint_service import ComplaintService
from fixmyarea.utils.clock import Clock, get_clock
from fixmyarea.utils.storage import LocalImageStorage, get_image_storage

router = APIRouter(prefix="/api/complaints", tags=["Complaints"])


def get_complaint_service(
    db: AsyncSession = Depends(get_db), clock: Clock = Depends(get_clock)
) -> ComplaintService:
    return ComplaintService(db, settings, clock)


# ==================== RESIDENT ====================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_complaint(
    category: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    identity: Identity = Depends(require_roles(UserRole.RESIDENT)),
    service: ComplaintService = Depends(get_complaint_service),
    storage: LocalImageStorage = Depends(get_image_storage),
):
    """
    Multipart form: category, description, location (JSON string with
    lat/lng and optional address/state/district/village), images[]
    """
    service.validate(category, description, location)
    image_urls = await storage.upload_many(images)
    try:
        data = await service.create(identity.id, category, description, location, image_urls)
    except Exception:
        storage.discard(image_urls)
        raise
    return {"success": True, "message": "Complaint submitted successfully", "data": data}


@router.get("/my-complaints")
async def my_complaints(
    identity: Identity = Depends(require_roles(UserRole.RESIDENT)),
    service: ComplaintService = Depends(get_complaint_service),
):
    data = await service.list_mine(identity.id)
    return {"success": True, "count": len(data), "data": data}


# ==================== STAFF ====================

@router.get("/assigned")
async def assigned_complaints(
    identity: Identity = Depends(require_roles(UserRole.STAFF, UserRole.ADMIN)),
    service: ComplaintService = Depends(get_complaint_service),
):
    data = await service.list_assigned(identity.id)
    return {"success": True, "count": len(data), "data": data}


@router.get("/{complaint_id}")
async def get_complaint(
    complaint_id: str,
    identity: Identity = Depends(get_current_identity),
    service: ComplaintService = Depends(get_complaint_service),
):
    data = await service.get(complaint_id, identity)
    return {"success": True, "data": data}


@router.patch("/{complaint_id}")
async def update_complaint(
    complaint_id: str,
    payload: ComplaintUpdate,
    identity: Identity = Depends(require_roles(UserRole.STAFF, UserRole.ADMIN)),
    service: ComplaintService = Depends(get_complaint_service),
):
    """Update status, assignee and priority; absent fields are left as they are"""
    complaint = await service.update_status(
        complaint_id,
        identity,
        status=payload.status,
        assigned_to=payload.assigned_to,
        priority=payload.priority,
    )
    return {"message": "Complaint updated successfully", "complaint": complaint}


# ==================== ENGAGEMENT ====================

@router.post("/{complaint_id}/upvote")
async def upvote_complaint(
    complaint_id: str,
    identity: Identity = Depends(get_current_identity),
    service: ComplaintService = Depends(get_complaint_service),
):
    data = await service.upvote(complaint_id, identity.id)
    return {"success": True, "data": data}


@router.post("/{complaint_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    complaint_id: str,
    payload: CommentCreate,
    identity: Identity = Depends(get_current_identity),
    service: ComplaintService = Depends(get_complaint_service),
):
    data = await service.add_comment(complaint_id, identity, payload.text)
    return {"success": True, "data": data}
