"""
FixMyArea - OTP Ledger
Generates, stores, rate-limits and verifies one-time codes bound to a
phone (and optionally an email) and a purpose.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fixmyarea.config import Settings, settings as default_settings
from fixmyarea.models.db_models import OTPRecord, OTPSendEvent, OTPType
from fixmyarea.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

INVALID_OTP = "Invalid OTP"
OTP_EXPIRED = "OTP has expired"
TOO_MANY_ATTEMPTS = "Too many attempts. Please request a new OTP"
OTP_ALREADY_USED = "OTP already used"
OTP_VERIFIED = "OTP verified successfully"


@dataclass
class OTPVerification:
    success: bool
    message: str


def generate_code() -> str:
    """Uniform 6-digit code in 100000-999999"""
    return str(100000 + secrets.randbelow(900000))


SEND_EVENT_RETENTION = timedelta(days=1)


def _identity_filter(phone: Optional[str], email: Optional[str], model=OTPRecord):
    """Match on phone or email, ignoring an absent email"""
    if email:
        return or_(model.phone == phone, model.email == email)
    return model.phone == phone


class OTPLedger:
    """
    OTP persistence and verification against the otp_records table.
    Dispatch is handled separately by utils.notifications.
    """

    def __init__(self, db: AsyncSession, settings: Settings = None, clock: Clock = utcnow):
        self.db = db
        self.settings = settings or default_settings
        self.clock = clock

    async def create_otp(
        self,
        phone: str,
        email: Optional[str] = None,
        otp_type: OTPType = OTPType.REGISTRATION,
        expiry_minutes: Optional[int] = None,
    ) -> OTPRecord:
        """Invalidate unused codes for (phone|email, type) and persist a fresh one"""
        otp_type = OTPType(otp_type)
        expiry_minutes = expiry_minutes or self.settings.OTP_EXPIRE_MINUTES
        now = self.clock()

        await self.purge_expired()
        await self.db.execute(
            delete(OTPRecord).where(
                _identity_filter(phone, email),
                OTPRecord.type == otp_type,
                OTPRecord.is_used.is_(False),
            )
        )

        record = OTPRecord(
            phone=phone,
            email=email,
            code=generate_code(),
            type=otp_type,
            is_used=False,
            expires_at=now + timedelta(minutes=expiry_minutes),
            attempts=0,
            max_attempts=self.settings.OTP_MAX_ATTEMPTS,
            created_at=now,
        )
        self.db.add(record)
        self.db.add(OTPSendEvent(phone=phone, email=email, type=otp_type, created_at=now))
        await self.db.commit()
        await self.db.refresh(record)

        logger.info("OTP created for %s (%s), expires in %s minutes", phone, otp_type.value, expiry_minutes)
        return record

    async def check_rate_limit(
        self,
        phone: str,
        email: Optional[str] = None,
        otp_type: OTPType = OTPType.REGISTRATION,
        max_attempts: Optional[int] = None,
        window_minutes: Optional[int] = None,
    ) -> bool:
        """True if another code may be sent. Fails open on store errors."""
        max_attempts = max_attempts or self.settings.OTP_RATE_LIMIT_MAX
        window_minutes = window_minutes or self.settings.OTP_RATE_LIMIT_WINDOW_MINUTES
        window_start = self.clock() - timedelta(minutes=window_minutes)

        try:
            result = await self.db.execute(
                select(func.count(OTPSendEvent.id)).where(
                    _identity_filter(phone, email, OTPSendEvent),
                    OTPSendEvent.type == OTPType(otp_type),
                    OTPSendEvent.created_at >= window_start,
                )
            )
            recent = result.scalar_one()
        except SQLAlchemyError:
            logger.exception("OTP rate limit check failed for %s, allowing request", phone)
            await self.db.rollback()
            return True

        if recent >= max_attempts:
            logger.warning("OTP rate limit hit for %s (%s): %s in %s minutes",
                           phone, OTPType(otp_type).value, recent, window_minutes)
            return False
        return True

    async def verify_otp(
        self,
        phone: str,
        email: Optional[str],
        code: str,
        otp_type: OTPType = OTPType.REGISTRATION,
    ) -> OTPVerification:
        """Verify a submitted code; rejections are returned, not raised"""
        otp_type = OTPType(otp_type)
        now = self.clock()

        result = await self.db.execute(
            select(OTPRecord)
            .where(
                _identity_filter(phone, email),
                OTPRecord.type == otp_type,
                OTPRecord.code == code,
                OTPRecord.is_used.is_(False),
            )
            .order_by(OTPRecord.created_at.desc(), OTPRecord.id.desc())
            .limit(1)
        )
        record = result.scalar_one_or_none()

        if record is None:
            return OTPVerification(False, INVALID_OTP)

        if not record.can_use(now):
            if record.is_expired(now):
                return OTPVerification(False, OTP_EXPIRED)
            if record.attempts >= record.max_attempts:
                return OTPVerification(False, TOO_MANY_ATTEMPTS)
            return OTPVerification(False, OTP_ALREADY_USED)

        # A successful verification still consumes one attempt
        record.attempts += 1
        record.is_used = True
        await self.db.commit()

        logger.info("OTP verified for %s (%s)", phone or email, otp_type.value)
        return OTPVerification(True, OTP_VERIFIED)

    async def purge_expired(self) -> int:
        """Drop codes past their expiry and send events past retention"""
        now = self.clock()
        result = await self.db.execute(
            delete(OTPRecord).where(OTPRecord.expires_at <= now)
        )
        await self.db.execute(
            delete(OTPSendEvent).where(OTPSendEvent.created_at < now - SEND_EVENT_RETENTION)
        )
        return result.rowcount or 0
