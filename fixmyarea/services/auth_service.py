"""
FixMyArea - Auth Service
Registration and login on top of the OTP ledger and the users table.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fixmyarea.auth.utils import (
    create_session_token,
    hash_password,
    verify_password,
    verify_verification_ticket,
)
from fixmyarea.config import Settings, settings as default_settings
from fixmyarea.exceptions import (
    AccountDisabledError,
    AuthenticationError,
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    OTPError,
    ValidationError,
)
from fixmyarea.models.db_models import OTPType, User, UserRole, UserStatus
from fixmyarea.models.serializers import serialize_user
from fixmyarea.utils.clock import Clock, utcnow
from fixmyarea.utils.otp_service import OTPLedger

logger = logging.getLogger(__name__)

DUPLICATE_PHONE = "User with this phone number already exists"


def session_payload(user: User, token: str) -> Dict[str, Any]:
    """Token plus public user fields, never the hash"""
    return {
        "token": token,
        "_id": user.id,
        "name": user.name,
        "phone": user.phone,
        "email": user.email,
        "role": user.role.value,
        "status": user.status.value,
        "lastLogin": user.last_login,
        "loginCount": user.login_count,
    }


class AuthService:
    def __init__(
        self,
        db: AsyncSession,
        ledger: Optional[OTPLedger] = None,
        settings: Settings = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.settings = settings or default_settings
        self.ledger = ledger or OTPLedger(db, self.settings, clock)
        self.clock = clock

    async def find_by_phone(self, phone: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.phone == phone))
        return result.scalar_one_or_none()

    async def register(
        self,
        name: Optional[str],
        phone: Optional[str],
        role: Optional[UserRole],
        password: Optional[str],
        location: Optional[Dict[str, str]],
        email: Optional[str] = None,
        gender=None,
        dob=None,
        verification_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create an active user and issue a session token.

        The OTP is verified in a prior call to /api/otp/verify. Unless
        REQUIRE_VERIFICATION_TICKET is set, that result is taken on trust.
        """
        if not name or not phone or not role:
            raise ValidationError("Please provide all required fields: name, phone, and role")

        phone = phone.replace(" ", "")
        if await self.find_by_phone(phone):
            raise ConflictError(DUPLICATE_PHONE)

        if not password:
            raise ValidationError("Password is required")

        location = location or {}
        missing = [key for key in ("state", "district", "village") if not location.get(key)]
        if missing:
            raise ValidationError(
                "Location is incomplete",
                errors=[{"field": f"location.{key}", "message": "This field is required"} for key in missing],
            )

        if self.settings.REQUIRE_VERIFICATION_TICKET and not verify_verification_ticket(verification_token, phone):
            raise ValidationError("Phone number has not been verified. Please verify the OTP first")

        user = User(
            name=name.strip(),
            phone=phone,
            email=email,
            role=UserRole(role),
            gender=gender,
            dob=dob,
            state=location["state"],
            district=location["district"],
            village=location["village"],
            areas_assigned=[],
            password_hash=hash_password(password),
            status=UserStatus.ACTIVE,
            login_count=0,
            created_at=self.clock(),
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same phone
            await self.db.rollback()
            raise ConflictError(DUPLICATE_PHONE)
        await self.db.refresh(user)

        logger.info("User registered: %s (%s)", user.id, user.role.value)
        return session_payload(user, create_session_token(user))

    async def login(
        self,
        phone: str,
        password: Optional[str] = None,
        otp: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Password first, then OTP; either one is enough"""
        if not phone or (not password and not otp):
            raise ValidationError("Please provide phone number and either password or OTP")

        user = await self.find_by_phone(phone)
        if user is None:
            raise NotFoundError("User not found. Please register first.")
        if user.status != UserStatus.ACTIVE:
            raise AccountDisabledError()

        authenticated = False
        if password and verify_password(password, user.password_hash):
            authenticated = True
            logger.info("Password login for %s", user.id)

        if not authenticated and otp:
            verification = await self.ledger.verify_otp(phone, user.email, otp, OTPType.LOGIN)
            if not verification.success:
                raise OTPError(verification.message)
            authenticated = True
            logger.info("OTP login for %s", user.id)

        if not authenticated:
            logger.warning("Failed login for %s", phone)
            raise InvalidCredentialsError()

        user.last_login = self.clock()
        user.login_count = (user.login_count or 0) + 1
        await self.db.commit()
        await self.db.refresh(user)

        return session_payload(user, create_session_token(user))

    async def refresh(self, user_id: str) -> Dict[str, Any]:
        """Fresh 7-day token with the same claims, for a still-active user"""
        user = await self.db.get(User, user_id)
        if user is None or user.status != UserStatus.ACTIVE:
            raise AuthenticationError("User not found or inactive")
        return {"token": create_session_token(user)}

    async def get_current_user(self, user_id: str) -> Dict[str, Any]:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return serialize_user(user)
