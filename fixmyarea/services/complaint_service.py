"""
FixMyArea - Complaint Lifecycle
Pending -> In Progress -> Resolved, with assignment to staff.
"""
import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fixmyarea.auth.oauth2 import Identity
from fixmyarea.config import Settings, settings as default_settings
from fixmyarea.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from fixmyarea.models.db_models import (
    Complaint, ComplaintCategory, ComplaintPriority, ComplaintStatus, User, UserRole
)
from fixmyarea.models.serializers import serialize_complaint, user_brief
from fixmyarea.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

NOT_ASSIGNED_TO_YOU = "You are not authorized to update this complaint."


def parse_location(location: Union[str, Mapping[str, Any], None]) -> Dict[str, Any]:
    """Accept the multipart JSON string or an already-decoded mapping"""
    if location is None or location == "":
        raise ValidationError("Please include all required fields: category, description, and location.")
    if isinstance(location, str):
        try:
            location = json.loads(location)
        except ValueError:
            raise ValidationError("Invalid location format. Please provide valid coordinates.")
    if not isinstance(location, Mapping):
        raise ValidationError("Invalid location format. Please provide valid coordinates.")

    try:
        lat = float(location["lat"])
        lng = float(location["lng"])
    except (KeyError, TypeError, ValueError):
        raise ValidationError("Invalid location format. Please provide valid coordinates.")
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise ValidationError("Invalid location format. Please provide valid coordinates.")

    return {
        "lat": lat,
        "lng": lng,
        "address": location.get("address"),
        "state": location.get("state"),
        "district": location.get("district"),
        "village": location.get("village"),
    }


def can_update(identity: Identity, complaint: Complaint) -> bool:
    """Staff only touch their own assignments; admins touch anything"""
    if identity.role == UserRole.ADMIN:
        return True
    if identity.role == UserRole.STAFF:
        return complaint.assigned_to is not None and complaint.assigned_to == identity.id
    if identity.role == UserRole.RESIDENT:
        return False
    raise ValueError(f"Unhandled role: {identity.role}")


def can_view(identity: Identity, complaint: Complaint) -> bool:
    if identity.role == UserRole.ADMIN:
        return True
    if identity.role == UserRole.STAFF:
        return complaint.assigned_to == identity.id
    if identity.role == UserRole.RESIDENT:
        return complaint.resident_id == identity.id
    raise ValueError(f"Unhandled role: {identity.role}")


class ComplaintService:
    def __init__(self, db: AsyncSession, settings: Settings = None, clock: Clock = utcnow):
        self.db = db
        self.settings = settings or default_settings
        self.clock = clock

    async def _load(self, complaint_id: str) -> Complaint:
        complaint = await self.db.get(Complaint, complaint_id)
        if complaint is None:
            raise NotFoundError("Complaint not found")
        return complaint

    async def _users(self, ids: Iterable[Optional[str]]) -> Dict[str, User]:
        ids = {i for i in ids if i}
        if not ids:
            return {}
        result = await self.db.execute(select(User).where(User.id.in_(ids)))
        return {user.id: user for user in result.scalars()}

    async def _serialize(self, complaint: Complaint) -> Dict[str, Any]:
        users = await self._users([complaint.resident_id, complaint.assigned_to])
        return serialize_complaint(
            complaint,
            resident=user_brief(users.get(complaint.resident_id), "name", "phone"),
            assignee=user_brief(users.get(complaint.assigned_to), "name", "role"),
        )

    def validate(
        self,
        category: Optional[str],
        description: Optional[str],
        location: Union[str, Mapping[str, Any], None],
    ) -> Tuple[ComplaintCategory, str, Dict[str, Any]]:
        """Check a new complaint without touching storage; returns normalized fields"""
        if not category or not description or not location:
            raise ValidationError("Please include all required fields: category, description, and location.")

        try:
            category = ComplaintCategory(category)
        except ValueError:
            raise ValidationError(f"Invalid complaint category: {category}")

        description = description.strip()
        min_length = self.settings.COMPLAINT_MIN_DESCRIPTION_LENGTH
        if len(description) < min_length:
            raise ValidationError(
                f"Description must be at least {min_length} characters",
                errors=[{"field": "description", "message": f"Minimum {min_length} characters"}],
            )

        return category, description, parse_location(location)

    async def create(
        self,
        resident_id: str,
        category: Optional[str],
        description: Optional[str],
        location: Union[str, Mapping[str, Any], None],
        images: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        category, description, parsed = self.validate(category, description, location)
        complaint = Complaint(
            resident_id=resident_id,
            category=category,
            description=description,
            images=list(images or []),
            latitude=parsed["lat"],
            longitude=parsed["lng"],
            address=parsed["address"],
            state=parsed["state"],
            district=parsed["district"],
            village=parsed["village"],
            status=ComplaintStatus.PENDING,
            priority=ComplaintPriority.MEDIUM,
            upvotes=0,
            upvoters=[],
            comments=[],
            created_at=self.clock(),
        )
        self.db.add(complaint)
        await self.db.commit()
        await self.db.refresh(complaint)

        logger.info("Complaint %s created by %s (%s)", complaint.id, resident_id, category.value)
        return serialize_complaint(complaint)

    async def list_mine(self, resident_id: str) -> List[Dict[str, Any]]:
        """Resident's complaints, newest first, assignee name/role populated"""
        result = await self.db.execute(
            select(Complaint)
            .where(Complaint.resident_id == resident_id)
            .order_by(Complaint.created_at.desc())
        )
        complaints = list(result.scalars())
        users = await self._users(c.assigned_to for c in complaints)
        return [
            serialize_complaint(c, assignee=user_brief(users.get(c.assigned_to), "name", "role"))
            for c in complaints
        ]

    async def list_assigned(self, staff_id: str) -> List[Dict[str, Any]]:
        """Complaints assigned to a staff member, resident name/phone populated"""
        result = await self.db.execute(
            select(Complaint)
            .where(Complaint.assigned_to == staff_id)
            .order_by(Complaint.created_at.desc())
        )
        complaints = list(result.scalars())
        users = await self._users(c.resident_id for c in complaints)
        return [
            serialize_complaint(c, resident=user_brief(users.get(c.resident_id), "name", "phone"))
            for c in complaints
        ]

    async def get(self, complaint_id: str, identity: Identity) -> Dict[str, Any]:
        complaint = await self._load(complaint_id)
        if not can_view(identity, complaint):
            raise PermissionDeniedError("You are not authorized to view this complaint.")
        return await self._serialize(complaint)

    async def update_status(
        self,
        complaint_id: str,
        identity: Identity,
        status: Optional[ComplaintStatus] = None,
        assigned_to: Optional[str] = None,
        priority: Optional[ComplaintPriority] = None,
    ) -> Dict[str, Any]:
        """PATCH: absent fields are left untouched"""
        complaint = await self._load(complaint_id)

        if not can_update(identity, complaint):
            logger.warning("User %s (%s) refused update of complaint %s",
                           identity.id, identity.role.value, complaint_id)
            raise PermissionDeniedError(NOT_ASSIGNED_TO_YOU)

        if status is not None:
            try:
                status = ComplaintStatus(status)
            except ValueError:
                raise ValidationError(f"Invalid status: {status}")
        if priority is not None:
            try:
                priority = ComplaintPriority(priority)
            except ValueError:
                raise ValidationError(f"Invalid priority: {priority}")
        if assigned_to:
            assignee = await self.db.get(User, assigned_to)
            if assignee is None or assignee.role not in (UserRole.STAFF, UserRole.ADMIN):
                raise ValidationError("assignedTo must reference a staff or admin user")

        if status is not None:
            complaint.status = status
        if assigned_to:
            complaint.assigned_to = assigned_to
        if priority is not None:
            complaint.priority = priority

        await self.db.commit()
        await self.db.refresh(complaint)
        logger.info("Complaint %s updated by %s: status=%s assignedTo=%s",
                    complaint.id, identity.id, complaint.status.value, complaint.assigned_to)
        return await self._serialize(complaint)

    async def upvote(self, complaint_id: str, user_id: str) -> Dict[str, Any]:
        """One vote per user; repeat votes are no-ops"""
        complaint = await self._load(complaint_id)
        upvoters = list(complaint.upvoters or [])
        if user_id not in upvoters:
            upvoters.append(user_id)
            complaint.upvoters = upvoters
            complaint.upvotes = len(upvoters)
            await self.db.commit()
            await self.db.refresh(complaint)
        return serialize_complaint(complaint)

    async def add_comment(self, complaint_id: str, identity: Identity, text: str) -> Dict[str, Any]:
        complaint = await self._load(complaint_id)
        if not can_view(identity, complaint):
            raise PermissionDeniedError("You are not authorized to comment on this complaint.")
        text = (text or "").strip()
        if not text:
            raise ValidationError("Comment text is required")

        complaint.comments = list(complaint.comments or []) + [{
            "author": identity.id,
            "text": text,
            "createdAt": self.clock().isoformat(),
        }]
        await self.db.commit()
        await self.db.refresh(complaint)
        return serialize_complaint(complaint)
