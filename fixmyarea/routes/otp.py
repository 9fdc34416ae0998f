"""
FixMyArea - OTP Routes
Send, resend and verify one-time codes for registration and login
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fixmyarea.auth.utils import create_verification_ticket
from fixmyarea.config import settings
from fixmyarea.database import get_db
from fixmyarea.exceptions import ConflictError, NotFoundError, OTPError, RateLimitError
from fixmyarea.models.db_models import OTPType
from fixmyarea.models.schemas import OTPResendRequest, OTPSendRequest, OTPVerifyRequest
from fixmyarea.services.auth_service import DUPLICATE_PHONE, AuthService
from fixmyarea.utils.clock import Clock, get_clock
from fixmyarea.utils.notifications import OTPDispatcher, get_dispatcher
from fixmyarea.utils.otp_service import OTPLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/otp", tags=["OTP"])


def get_ledger(db: AsyncSession = Depends(get_db), clock: Clock = Depends(get_clock)) -> OTPLedger:
    return OTPLedger(db, settings, clock)


# ==================== HELPER FUNCTIONS ====================

async def issue_otp(
    ledger: OTPLedger,
    dispatcher: OTPDispatcher,
    phone: str,
    email: Optional[str],
    otp_type: OTPType,
) -> dict:
    """Rate-limit, persist, then dispatch; delivery failures do not undo the OTP"""
    if not await ledger.check_rate_limit(phone, email, otp_type):
        raise RateLimitError()

    record = await ledger.create_otp(phone, email, otp_type)

    sms = await dispatcher.send_via_sms(phone, record.code, otp_type)
    email_sent = False
    if email:
        email_sent = (await dispatcher.send_via_email(email, record.code, otp_type)).success

    if not sms.success and not email_sent:
        logger.warning("OTP for %s stored but not delivered: %s", phone, sms.error)

    return {
        "phone": phone,
        "email": email,
        "smsSent": sms.success,
        "emailSent": email_sent,
        "expiresIn": f"{settings.OTP_EXPIRE_MINUTES} minutes",
    }


# ==================== SEND ====================

@router.post("/send-registration")
async def send_registration_otp(
    payload: OTPSendRequest,
    db: AsyncSession = Depends(get_db),
    ledger: OTPLedger = Depends(get_ledger),
    dispatcher: OTPDispatcher = Depends(get_dispatcher),
):
    """Send a registration OTP to a phone number that is not yet registered"""
    if await AuthService(db, ledger).find_by_phone(payload.phone):
        raise ConflictError(DUPLICATE_PHONE)

    data = await issue_otp(ledger, dispatcher, payload.phone, payload.email, OTPType.REGISTRATION)
    return {"success": True, "message": "OTP sent successfully", "data": data}


@router.post("/send-login")
async def send_login_otp(
    payload: OTPSendRequest,
    db: AsyncSession = Depends(get_db),
    ledger: OTPLedger = Depends(get_ledger),
    dispatcher: OTPDispatcher = Depends(get_dispatcher),
):
    """Send a login OTP to an existing user"""
    if not await AuthService(db, ledger).find_by_phone(payload.phone):
        raise NotFoundError("User not found. Please register first.")

    data = await issue_otp(ledger, dispatcher, payload.phone, payload.email, OTPType.LOGIN)
    return {"success": True, "message": "OTP sent successfully", "data": data}


@router.post("/resend")
async def resend_otp(
    payload: OTPResendRequest,
    ledger: OTPLedger = Depends(get_ledger),
    dispatcher: OTPDispatcher = Depends(get_dispatcher),
):
    data = await issue_otp(ledger, dispatcher, payload.phone, payload.email, payload.type)
    return {"success": True, "message": "OTP resent successfully", "data": data}


# ==================== VERIFY ====================

@router.post("/verify")
async def verify_otp(payload: OTPVerifyRequest, ledger: OTPLedger = Depends(get_ledger)):
    """
    Verify a code. A registration verification also returns a short-lived
    verificationToken to present to /api/auth/register.
    """
    result = await ledger.verify_otp(payload.phone, payload.email, payload.otp, payload.type)
    if not result.success:
        raise OTPError(result.message)

    data = {"phone": payload.phone, "email": payload.email, "type": payload.type.value}
    if payload.type == OTPType.REGISTRATION:
        data["verificationToken"] = create_verification_ticket(payload.phone)
    return {"success": True, "message": result.message, "data": data}
