"""
FixMyArea - Dog Record Routes
Stray dog registry for staff and admins: records, health transitions,
shelter transfers and field notes
"""
import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from fixmyarea.auth.oauth2 import Identity, require_roles
from fixmyarea.database import get_db
from fixmyarea.exceptions import ValidationError
from fixmyarea.models.db_models import UserRole
from fixmyarea.models.schemas import (
    ComplaintLink, DogCreate, DogUpdate, NoteCreate, ShelterTransfer,
    SterilizationUpdate, VaccinationUpdate
)
from fixmyarea.services.dog_service import DogService
from fixmyarea.utils.clock import Clock, get_clock
from fixmyarea.utils.storage import LocalImageStorage, get_dog_photo_storage

router = APIRouter(prefix="/api/dogs", tags=["Dogs"])

staff_or_admin = require_roles(UserRole.STAFF, UserRole.ADMIN)


def get_dog_service(db: AsyncSession = Depends(get_db), clock: Clock = Depends(get_clock)) -> DogService:
    return DogService(db, clock)


# ==================== MULTIPART FORMS ====================

def _parse_location(raw: Optional[str]) -> Optional[Any]:
    """Location arrives as a JSON string field"""
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationError("Invalid location format. Please provide valid coordinates.")


def _validate_form(model, fields: Dict[str, Any]):
    """Run form fields through a request schema; errors render like body errors"""
    try:
        return model.model_validate({k: v for k, v in fields.items() if v is not None})
    except SchemaValidationError as e:
        raise RequestValidationError(
            [{**err, "loc": ("body", *err["loc"])} for err in e.errors(include_url=False)]
        )


def dog_create_form(
    breed: Optional[str] = Form(None),
    color: Optional[str] = Form(None),
    size: Optional[str] = Form(None),
    age: Optional[str] = Form(None),
    gender: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    is_aggressive: Optional[str] = Form(None, alias="isAggressive"),
    is_rabid: Optional[str] = Form(None, alias="isRabid"),
    health_notes: Optional[str] = Form(None, alias="healthNotes"),
) -> DogCreate:
    return _validate_form(DogCreate, {
        "breed": breed,
        "color": color,
        "size": size,
        "age": age,
        "gender": gender,
        "location": _parse_location(location),
        "isAggressive": is_aggressive,
        "isRabid": is_rabid,
        "healthNotes": health_notes,
    })


def dog_update_form(
    breed: Optional[str] = Form(None),
    color: Optional[str] = Form(None),
    size: Optional[str] = Form(None),
    age: Optional[str] = Form(None),
    gender: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    is_aggressive: Optional[str] = Form(None, alias="isAggressive"),
    is_rabid: Optional[str] = Form(None, alias="isRabid"),
    health_notes: Optional[str] = Form(None, alias="healthNotes"),
    dog_status: Optional[str] = Form(None, alias="status"),
) -> DogUpdate:
    return _validate_form(DogUpdate, {
        "breed": breed,
        "color": color,
        "size": size,
        "age": age,
        "gender": gender,
        "location": _parse_location(location),
        "isAggressive": is_aggressive,
        "isRabid": is_rabid,
        "healthNotes": health_notes,
        "status": dog_status,
    })


# ==================== CRUD ====================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_dog(
    payload: DogCreate = Depends(dog_create_form),
    photos: Optional[List[UploadFile]] = File(None),
    identity: Identity = Depends(staff_or_admin),
    service: DogService = Depends(get_dog_service),
    storage: LocalImageStorage = Depends(get_dog_photo_storage),
):
    """
    Multipart form: breed, color, size, age, gender, location (JSON string
    with state/district/village, coordinates {lat, lng} and optional address),
    isAggressive, isRabid, healthNotes, photos[]
    """
    photo_urls = await storage.upload_many(photos)
    try:
        data = await service.create(
            identity.id,
            breed=payload.breed,
            color=payload.color,
            size=payload.size,
            age=payload.age,
            gender=payload.gender,
            location=payload.location.model_dump(),
            is_aggressive=payload.is_aggressive,
            is_rabid=payload.is_rabid,
            health_notes=payload.health_notes,
            photos=photo_urls,
        )
    except Exception:
        storage.discard(photo_urls)
        raise
    return {"success": True, "message": "Dog record created successfully", "data": data}


@router.get("")
async def list_dogs(
    status_filter: Optional[str] = Query(None, alias="status"),
    vaccination: Optional[str] = None,
    sterilization: Optional[str] = None,
    aggressive: Optional[bool] = None,
    state: Optional[str] = None,
    district: Optional[str] = None,
    village: Optional[str] = None,
    identity: Identity = Depends(staff_or_admin),
    service: DogService = Depends(get_dog_service),
):
    data = await service.list(
        status=status_filter,
        vaccination=vaccination,
        sterilization=sterilization,
        aggressive=aggressive,
        state=state,
        district=district,
        village=village,
    )
    return {"success": True, "count": len(data), "data": data}


# ==================== QUERIES ====================

@router.get("/aggressive")
async def aggressive_dogs(
    identity: Identity = Depends(staff_or_admin),
    service: DogService = Depends(get_dog_service),
):
    data = await service.list_aggressive()
    return {"success": True, "count": len(data), "data": data}


@router.get("/vaccination-due")
async def vaccination_due(
    days: int = Query(7, ge=0, le=365),
    identity: Identity = Depends(staff_or_admin),
    service: DogService = Depends(get_dog_service),
):
    data = await service.list_vaccination_due(days)
    return {"success": True, "count": len(data), "data": data}


@router.get("/by-location")
async def dogs_by_location(
    state: Optional[str] = None,
    district: Optional[str] = None,
    village: Optional[str] = None,
    identity: Identity = Depends(staff_or_admin),
    service: DogService = Depends(get_dog_service),
):
    data = await service.find_by_location(state, district, village)
    return {"success": True, "count": len(data), "data": data}


@router.get("/by-health")
async def dogs_by_health(
    vaccination: Optional[str] = None,
    sterilization: Optional[str] = None,
    identity: Identity = Depends(staff_or_admin),
    service: DogService = Depends(get_dog_service),
):
    data = await service.find_by_health_status(vaccination, sterilization)
    return {"success": True, "count": len(data), "data": data}


# ==================== SINGLE RECORD ====================

@router.get("/{dog_id}")
async def get_dog(
    dog_id: str,
    identity: Identity = Depends(staff_or_admin),
    service: DogService = Depends(get_dog_service),
):
    data = await service.get(dog_id)
    return {"success": True, "data": data}


@router.put("/{dog_id}")
async def update_dog(
    dog_id: str,
    payload: DogUpdate = Depends(dog_update_form),
    photos: Optional[List[UploadFile]] = File(None),
    identity: Identity = Depends(staff_or_admin),
    service: DogService = Depends(get_dog_service),
    storage: LocalImageStorage = Depends(get_dog_photo_storage),
):
    """Multipart form with any subset of the create fields plus status; photos[] are appended"""
    changes = payload.model_dump(exclude_unset=True)
    photo_urls = await storage.upload_many(photos)
    if photo_urls:
        changes["photos"] = photo_urls
    try:
        data = await service.update(dog_id, changes)
    except Exception:
        storage.discard(photo_urls)
        raise
    return {"success": True, "message": "Dog record updated successfully", "data": data}


@router.delete("/{dog_id}")
async def delete_dog(
    dog_id: str,
    identity: Identity = Depends(require_roles(UserRole.ADMIN)),
    service: DogService = Depends(get_dog_service),
):
    await service.delete(dog_id)
    return {"success": True, "message": "Dog record deleted successfully"}


# ==================== TRANSITIONS ====================

@router.patch("/{dog_id}/vaccination")
async def update_vaccination(
    dog_id: str,
    payload: VaccinationUpdate,
    identity: Identity = Depends(staff_or_admin),
    service: DogService = Depends(get_dog_service),
):
    data = await service.update_vaccination(dog_id, payload.status, payload.date)
    return {"success": True, "message": "Vaccination status updated successfully", "data": data}


@router.patch("/{dog_id}/sterilization")
async def update_sterilization(
    dog_id: str,
    payload: SterilizationUpdate,
    identity: Identity = Depends(staff_or_admin),
    service: DogService = Depends(get_dog_service),
):
    data = await service.update_sterilization(dog_id, payload.status, payload.date)
    return {"success": True, "message": "Sterilization status updated successfully", "data": data}


@router.patch("/{dog_id}/transfer")
async def transfer_to_shelter(
    dog_id: str,
    payload: ShelterTransfer,
    identity: Identity = Depends(staff_or_admin),
    service: DogService = Depends(get_dog_service),
):
    data = await service.transfer_to_shelter(
        dog_id, payload.shelter_name, payload.shelter_address, payload.reason
    )
    return {"success": True, "message": "Dog transferred to shelter successfully", "data": data}


@router.post("/{dog_id}/notes", status_code=status.HTTP_201_CREATED)
async def add_note(
    dog_id: str,
    payload: NoteCreate,
    identity: Identity = Depends(staff_or_admin),
    service: DogService = Depends(get_dog_service),
):
    data = await service.add_note(dog_id, payload.content, identity.id)
    return {"success": True, "message": "Note added successfully", "data": data}


@router.post("/{dog_id}/complaints")
async def link_complaint(
    dog_id: str,
    payload: ComplaintLink,
    identity: Identity = Depends(staff_or_admin),
    service: DogService = Depends(get_dog_service),
):
    data = await service.link_complaint(dog_id, payload.complaint_id)
    return {"success": True, "data": data}
