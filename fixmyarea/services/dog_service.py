"""
FixMyArea - Dog Record Lifecycle

Main status:   Active -> Transferred to Shelter | Adopted | Deceased | Lost
Independently: vaccination (Not -> Partially -> Fully Vaccinated) and
               sterilization (Not Sterilized -> Sterilized)

Every transition is a dedicated operation committed as one row update.
"""
import logging
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fixmyarea.exceptions import NotFoundError, ValidationError
from fixmyarea.models.db_models import (
    Complaint, Counter, DogGender, DogRecord, DogSize, DogStatus, SterilizationStatus, User,
    VaccinationStatus,
)
from fixmyarea.models.serializers import serialize_dog, user_brief
from fixmyarea.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

DOG_SEQUENCE = "dog_id"
CREATE_RETRIES = 3

# Statuses reachable through a plain update; shelter transfer has its own operation
DIRECT_STATUS_TARGETS = {DogStatus.ADOPTED, DogStatus.DECEASED, DogStatus.LOST}

DESCRIPTIVE_FIELDS = ("breed", "color", "size", "age", "gender", "is_aggressive", "is_rabid", "health_notes")


def format_dog_id(sequence: int) -> str:
    return f"DOG{sequence:06d}"


def as_enum(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid value '{value}'. Expected one of: {', '.join(m.value for m in enum_cls)}")


def add_years(value: date, years: int) -> date:
    """Same calendar day `years` later; Feb 29 falls back to Feb 28"""
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, day=28)


class DogService:
    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    # ==================== HELPERS ====================

    async def _next_sequence(self) -> int:
        """Increment the dog_id counter row inside the current transaction"""
        result = await self.db.execute(
            update(Counter)
            .where(Counter.name == DOG_SEQUENCE)
            .values(value=Counter.value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.add(Counter(name=DOG_SEQUENCE, value=1))
            await self.db.flush()
            return 1
        return await self.db.scalar(select(Counter.value).where(Counter.name == DOG_SEQUENCE))

    async def _load(self, dog_id: str) -> DogRecord:
        """Look up by row id or by the DOG###### display id"""
        if dog_id and dog_id.startswith("DOG"):
            result = await self.db.execute(select(DogRecord).where(DogRecord.dog_id == dog_id))
            dog = result.scalar_one_or_none()
        else:
            dog = await self.db.get(DogRecord, dog_id)
        if dog is None:
            raise NotFoundError("Dog record not found")
        return dog

    async def _assignees(self, dogs: Iterable[DogRecord]) -> Dict[str, User]:
        ids = {d.assigned_to for d in dogs if d.assigned_to}
        if not ids:
            return {}
        result = await self.db.execute(select(User).where(User.id.in_(ids)))
        return {user.id: user for user in result.scalars()}

    async def _serialize_many(self, dogs: List[DogRecord]) -> List[Dict[str, Any]]:
        users = await self._assignees(dogs)
        return [serialize_dog(d, user_brief(users.get(d.assigned_to), "name", "phone")) for d in dogs]

    async def _save(self, dog: DogRecord) -> Dict[str, Any]:
        await self.db.commit()
        await self.db.refresh(dog)
        return (await self._serialize_many([dog]))[0]

    def _photos(self, urls: Iterable[str]) -> List[Dict[str, Any]]:
        now = self.clock()
        return [
            {"url": url, "caption": f"Photo uploaded on {now.date().isoformat()}", "uploadedAt": now.isoformat()}
            for url in urls
        ]

    # ==================== CRUD ====================

    async def create(
        self,
        actor_id: str,
        breed: Optional[str],
        color: Optional[str],
        size,
        age: Optional[int],
        gender,
        location: Optional[Dict[str, Any]],
        is_aggressive: bool = False,
        is_rabid: bool = False,
        health_notes: Optional[str] = None,
        photos: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        if not breed or not color or not size or age is None or not gender or not location:
            raise ValidationError(
                "Missing required fields: breed, color, size, age, gender, and location are required"
            )
        coordinates = location.get("coordinates") or {}
        if not all(location.get(key) for key in ("state", "district", "village")):
            raise ValidationError("Location must include state, district and village")
        try:
            lat = float(coordinates["lat"])
            lng = float(coordinates["lng"])
        except (KeyError, TypeError, ValueError):
            raise ValidationError("Location coordinates (lat, lng) are required")

        for attempt in range(1, CREATE_RETRIES + 1):
            now = self.clock()
            try:
                sequence = await self._next_sequence()
                dog = DogRecord(
                    dog_id=format_dog_id(sequence),
                    breed=breed.strip(),
                    color=color.strip(),
                    size=as_enum(DogSize, size),
                    age=int(age),
                    gender=as_enum(DogGender, gender),
                    state=location["state"],
                    district=location["district"],
                    village=location["village"],
                    latitude=lat,
                    longitude=lng,
                    address=location.get("address"),
                    is_aggressive=bool(is_aggressive),
                    is_rabid=bool(is_rabid),
                    health_notes=health_notes.strip() if health_notes else None,
                    vaccination_status=VaccinationStatus.NOT_VACCINATED,
                    sterilization_status=SterilizationStatus.NOT_STERILIZED,
                    status=DogStatus.ACTIVE,
                    photos=self._photos(photos or []),
                    first_seen_date=now,
                    last_seen_date=now,
                    assigned_to=actor_id,
                    related_complaints=[],
                    notes=[],
                    created_at=now,
                )
                self.db.add(dog)
                await self.db.commit()
                break
            except IntegrityError:
                await self.db.rollback()
                logger.warning("Dog id collision on attempt %s, retrying", attempt)
                if attempt == CREATE_RETRIES:
                    raise

        await self.db.refresh(dog)
        logger.info("Dog record %s created by %s", dog.dog_id, actor_id)
        return (await self._serialize_many([dog]))[0]

    async def get(self, dog_id: str) -> Dict[str, Any]:
        dog = await self._load(dog_id)
        data = (await self._serialize_many([dog]))[0]
        if dog.related_complaints:
            result = await self.db.execute(
                select(Complaint).where(Complaint.id.in_(dog.related_complaints))
            )
            data["relatedComplaints"] = [
                {
                    "_id": c.id,
                    "category": c.category.value,
                    "status": c.status.value,
                    "description": c.description,
                    "createdAt": c.created_at,
                }
                for c in result.scalars()
            ]
        return data

    async def list(
        self,
        status: Optional[str] = None,
        vaccination: Optional[str] = None,
        sterilization: Optional[str] = None,
        aggressive: Optional[bool] = None,
        state: Optional[str] = None,
        district: Optional[str] = None,
        village: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """All records, newest first; 'all' or None disables a filter"""
        query = select(DogRecord)
        if status and status != "all":
            query = query.where(DogRecord.status == as_enum(DogStatus, status))
        if vaccination and vaccination != "all":
            query = query.where(DogRecord.vaccination_status == as_enum(VaccinationStatus, vaccination))
        if sterilization and sterilization != "all":
            query = query.where(DogRecord.sterilization_status == as_enum(SterilizationStatus, sterilization))
        if aggressive:
            query = query.where(DogRecord.is_aggressive.is_(True))
        query = self._location_filter(query, state, district, village)

        result = await self.db.execute(query.order_by(DogRecord.created_at.desc()))
        return await self._serialize_many(list(result.scalars()))

    async def update(self, dog_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Descriptive fields, location, photos and terminal status changes"""
        dog = await self._load(dog_id)

        new_status = changes.get("status")
        if new_status is not None:
            new_status = as_enum(DogStatus, new_status)
            self._check_status_change(dog, new_status)

        for field in DESCRIPTIVE_FIELDS:
            if changes.get(field) is not None:
                setattr(dog, field, changes[field])

        location = changes.get("location")
        if location:
            dog.state = location["state"]
            dog.district = location["district"]
            dog.village = location["village"]
            dog.address = location.get("address", dog.address)
            coordinates = location.get("coordinates")
            if coordinates:
                lat, lng = float(coordinates["lat"]), float(coordinates["lng"])
                if (lat, lng) != (dog.latitude, dog.longitude):
                    dog.latitude, dog.longitude = lat, lng
                    dog.last_seen_date = self.clock()

        if changes.get("photos"):
            dog.photos = list(dog.photos or []) + self._photos(changes["photos"])

        if new_status is not None:
            dog.status = new_status

        logger.info("Dog record %s updated", dog.dog_id)
        return await self._save(dog)

    def _check_status_change(self, dog: DogRecord, new_status: DogStatus) -> None:
        if new_status == dog.status:
            return
        if new_status == DogStatus.TRANSFERRED_TO_SHELTER:
            raise ValidationError("Use the shelter transfer operation to move a dog to a shelter")
        if new_status == DogStatus.ACTIVE:
            raise ValidationError(f"A dog cannot return to Active from {dog.status.value}")
        if dog.status != DogStatus.ACTIVE or new_status not in DIRECT_STATUS_TARGETS:
            raise ValidationError(f"Cannot change status from {dog.status.value} to {new_status.value}")

    async def delete(self, dog_id: str) -> None:
        dog = await self._load(dog_id)
        await self.db.delete(dog)
        await self.db.commit()
        logger.info("Dog record %s deleted", dog.dog_id)

    # ==================== TRANSITIONS ====================

    async def update_vaccination(
        self, dog_id: str, status: Optional[str], on: Optional[date] = None
    ) -> Dict[str, Any]:
        """Fully Vaccinated with a date schedules the next dose a year later"""
        if not status:
            raise ValidationError("Vaccination status is required")
        status = as_enum(VaccinationStatus, status)
        dog = await self._load(dog_id)

        dog.vaccination_status = status
        if on is not None:
            dog.last_vaccination_date = on
            if status == VaccinationStatus.FULLY_VACCINATED:
                dog.next_vaccination_due = add_years(on, 1)

        logger.info("Dog %s vaccination -> %s", dog.dog_id, status.value)
        return await self._save(dog)

    async def update_sterilization(
        self, dog_id: str, status: Optional[str], on: Optional[date] = None
    ) -> Dict[str, Any]:
        if not status:
            raise ValidationError("Sterilization status is required")
        status = as_enum(SterilizationStatus, status)
        dog = await self._load(dog_id)

        dog.sterilization_status = status
        if on is not None:
            dog.sterilization_date = on

        logger.info("Dog %s sterilization -> %s", dog.dog_id, status.value)
        return await self._save(dog)

    async def transfer_to_shelter(
        self, dog_id: str, shelter_name: Optional[str], shelter_address: Optional[str], reason: Optional[str]
    ) -> Dict[str, Any]:
        """Status and all four shelter fields land in a single commit"""
        if not shelter_name or not shelter_address or not reason:
            raise ValidationError("Shelter name, address, and reason are required")
        dog = await self._load(dog_id)
        if dog.status != DogStatus.ACTIVE:
            raise ValidationError(f"Only active dogs can be transferred (current status: {dog.status.value})")

        dog.status = DogStatus.TRANSFERRED_TO_SHELTER
        dog.shelter_name = shelter_name
        dog.shelter_address = shelter_address
        dog.transfer_date = self.clock()
        dog.transfer_reason = reason

        try:
            return await self._save(dog)
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def add_note(self, dog_id: str, content: Optional[str], author_id: str) -> Dict[str, Any]:
        if not content or not content.strip():
            raise ValidationError("Note content is required")
        dog = await self._load(dog_id)
        dog.notes = list(dog.notes or []) + [{
            "content": content.strip(),
            "author": author_id,
            "createdAt": self.clock().isoformat(),
        }]
        return await self._save(dog)

    async def link_complaint(self, dog_id: str, complaint_id: str) -> Dict[str, Any]:
        dog = await self._load(dog_id)
        if await self.db.get(Complaint, complaint_id) is None:
            raise NotFoundError("Complaint not found")
        if complaint_id not in (dog.related_complaints or []):
            dog.related_complaints = list(dog.related_complaints or []) + [complaint_id]
        return await self._save(dog)

    # ==================== QUERIES ====================

    @staticmethod
    def _location_filter(query, state=None, district=None, village=None):
        if state:
            query = query.where(DogRecord.state == state)
        if district:
            query = query.where(DogRecord.district == district)
        if village:
            query = query.where(DogRecord.village == village)
        return query

    async def _active(self, query) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            query.where(DogRecord.status == DogStatus.ACTIVE).order_by(DogRecord.created_at.desc())
        )
        return await self._serialize_many(list(result.scalars()))

    async def find_by_location(
        self, state: Optional[str] = None, district: Optional[str] = None, village: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return await self._active(self._location_filter(select(DogRecord), state, district, village))

    async def find_by_health_status(
        self, vaccination: Optional[str] = None, sterilization: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        query = select(DogRecord)
        if vaccination:
            query = query.where(DogRecord.vaccination_status == as_enum(VaccinationStatus, vaccination))
        if sterilization:
            query = query.where(DogRecord.sterilization_status == as_enum(SterilizationStatus, sterilization))
        return await self._active(query)

    async def list_aggressive(self) -> List[Dict[str, Any]]:
        return await self._active(select(DogRecord).where(DogRecord.is_aggressive.is_(True)))

    async def list_vaccination_due(self, days: int = 7) -> List[Dict[str, Any]]:
        """Active dogs whose next dose falls between today and today + days"""
        today = self.clock().date()
        return await self._active(
            select(DogRecord).where(
                DogRecord.next_vaccination_due >= today,
                DogRecord.next_vaccination_due <= today + timedelta(days=days),
            )
        )
