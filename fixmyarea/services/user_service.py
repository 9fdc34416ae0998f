"""
FixMyArea - User Management
Admin-side account management and self-service profile edits.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fixmyarea.auth.utils import hash_password
from fixmyarea.exceptions import ConflictError, NotFoundError, ValidationError
from fixmyarea.models.db_models import User, UserRole, UserStatus
from fixmyarea.models.serializers import serialize_user
from fixmyarea.services.auth_service import DUPLICATE_PHONE
from fixmyarea.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

MANAGED_ROLES = (UserRole.STAFF, UserRole.ADMIN)


class UserService:
    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def _load(self, user_id: str) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def list_users(
        self,
        role: Optional[str] = None,
        state: Optional[str] = None,
        district: Optional[str] = None,
        village: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        query = select(User)
        if role:
            query = query.where(User.role == UserRole(role))
        if state:
            query = query.where(User.state == state)
        if district:
            query = query.where(User.district == district)
        if village:
            query = query.where(User.village == village)

        result = await self.db.execute(query.order_by(User.created_at.desc()))
        return [serialize_user(u) for u in result.scalars()]

    async def create_user(
        self,
        name: str,
        phone: str,
        role: UserRole,
        password: str,
        location: Dict[str, str],
        email: Optional[str] = None,
        gender=None,
        dob=None,
        areas_assigned: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Staff and admin accounts only; residents self-register"""
        role = UserRole(role)
        if role not in MANAGED_ROLES:
            raise ValidationError("Only staff and admin accounts can be created here")

        existing = await self.db.execute(select(User.id).where(User.phone == phone))
        if existing.first() is not None:
            raise ConflictError(DUPLICATE_PHONE)

        user = User(
            name=name.strip(),
            phone=phone,
            email=email,
            role=role,
            gender=gender,
            dob=dob,
            state=location["state"],
            district=location["district"],
            village=location["village"],
            areas_assigned=list(areas_assigned or []),
            password_hash=hash_password(password),
            status=UserStatus.ACTIVE,
            login_count=0,
            created_at=self.clock(),
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(DUPLICATE_PHONE)
        await self.db.refresh(user)

        logger.info("Admin created %s account %s", role.value, user.id)
        return serialize_user(user)

    async def update_user(
        self,
        user_id: str,
        role: Optional[UserRole] = None,
        status: Optional[UserStatus] = None,
        areas_assigned: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """The only place an account is disabled or re-enabled"""
        user = await self._load(user_id)
        if role is not None:
            user.role = UserRole(role)
        if status is not None:
            user.status = UserStatus(status)
        if areas_assigned is not None:
            user.areas_assigned = list(areas_assigned)

        await self.db.commit()
        await self.db.refresh(user)
        logger.info("User %s updated: role=%s status=%s", user.id, user.role.value, user.status.value)
        return serialize_user(user)

    async def update_profile(
        self,
        user_id: str,
        name: Optional[str] = None,
        gender=None,
        dob=None,
        location: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        user = await self._load(user_id)
        if name is not None:
            user.name = name.strip()
        if gender is not None:
            user.gender = gender
        if dob is not None:
            user.dob = dob
        if location:
            user.state = location["state"]
            user.district = location["district"]
            user.village = location["village"]

        await self.db.commit()
        await self.db.refresh(user)
        return serialize_user(user)
