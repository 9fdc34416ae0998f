"""
FixMyArea - OTP Dispatch
Twilio for SMS and SMTP (aiosmtplib) for email. Delivery failures are
reported as data; they never roll back or invalidate the OTP itself.
"""
import asyncio
import logging
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import aiosmtplib
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client as TwilioClient

from fixmyarea.config import Settings, settings as default_settings
from fixmyarea.models.db_models import OTPType

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


SMS_TEMPLATES = {
    OTPType.REGISTRATION: "Your FixMyArea registration OTP is: {otp}. Valid for {minutes} minutes. Do not share this OTP with anyone.",
    OTPType.LOGIN: "Your FixMyArea login OTP is: {otp}. Valid for {minutes} minutes. Do not share this OTP with anyone.",
    OTPType.PASSWORD_RESET: "Your FixMyArea password reset OTP is: {otp}. Valid for {minutes} minutes. Do not share this OTP with anyone.",
}

EMAIL_SUBJECTS = {
    OTPType.REGISTRATION: "FixMyArea - Registration OTP",
    OTPType.LOGIN: "FixMyArea - Login OTP",
    OTPType.PASSWORD_RESET: "FixMyArea - Password Reset OTP",
}

EMAIL_HTML = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #2563eb;">FixMyArea</h2>
  <h3>Your OTP Code</h3>
  <p>Your OTP code is: <strong style="font-size: 24px; color: #2563eb;">{otp}</strong></p>
  <p>This code is valid for {minutes} minutes.</p>
  <p><strong>Important:</strong> Do not share this OTP with anyone.</p>
  <hr>
  <p style="color: #666; font-size: 12px;">If you didn't request this OTP, please ignore this email.</p>
</div>
"""


def normalize_phone(phone: str) -> str:
    """E.164 for Twilio; bare 10-digit numbers are Indian"""
    phone = phone.replace(" ", "")
    if not phone.startswith("+"):
        phone = f"+91{phone}"
    return phone


def sms_message(otp: str, otp_type: OTPType, minutes: int) -> str:
    template = SMS_TEMPLATES.get(OTPType(otp_type), SMS_TEMPLATES[OTPType.REGISTRATION])
    return template.format(otp=otp, minutes=minutes)


class OTPDispatcher:
    """Sends OTP codes over SMS and email when the providers are configured"""

    def __init__(self, settings: Settings = None):
        self.settings = settings or default_settings
        self.twilio_client = None
        self._init_twilio()

    def _init_twilio(self):
        if self.settings.TWILIO_ACCOUNT_SID and self.settings.TWILIO_AUTH_TOKEN:
            self.twilio_client = TwilioClient(
                self.settings.TWILIO_ACCOUNT_SID,
                self.settings.TWILIO_AUTH_TOKEN,
            )

    @property
    def sms_configured(self) -> bool:
        return self.twilio_client is not None and bool(self.settings.TWILIO_PHONE_NUMBER)

    @property
    def email_configured(self) -> bool:
        return bool(self.settings.SMTP_HOST and self.settings.SMTP_USER and self.settings.SMTP_PASSWORD)

    async def send_via_sms(self, phone: str, otp: str, otp_type: OTPType = OTPType.REGISTRATION) -> DispatchResult:
        if not self.sms_configured:
            logger.info("Twilio not configured, skipping SMS to %s", phone)
            return DispatchResult(False, error="SMS service not configured")

        body = sms_message(otp, otp_type, self.settings.OTP_EXPIRE_MINUTES)
        try:
            # Twilio's client is blocking
            message = await asyncio.to_thread(
                self.twilio_client.messages.create,
                body=body,
                from_=self.settings.TWILIO_PHONE_NUMBER,
                to=normalize_phone(phone),
            )
        except TwilioRestException as e:
            logger.error("SMS to %s failed: %s", phone, e)
            return DispatchResult(False, error=str(e))

        logger.info("SMS sent to %s: %s", phone, message.sid)
        return DispatchResult(True, message_id=message.sid)

    async def send_via_email(self, email: str, otp: str, otp_type: OTPType = OTPType.REGISTRATION) -> DispatchResult:
        if not self.email_configured:
            logger.info("SMTP not configured, skipping email to %s", email)
            return DispatchResult(False, error="Email service not configured")

        otp_type = OTPType(otp_type)
        minutes = self.settings.OTP_EXPIRE_MINUTES
        sender = self.settings.EMAIL_FROM or self.settings.SMTP_USER

        msg = MIMEMultipart("alternative")
        msg["Subject"] = EMAIL_SUBJECTS.get(otp_type, EMAIL_SUBJECTS[OTPType.REGISTRATION])
        msg["From"] = sender
        msg["To"] = email
        msg.attach(MIMEText(sms_message(otp, otp_type, minutes), "plain"))
        msg.attach(MIMEText(EMAIL_HTML.format(otp=otp, minutes=minutes), "html"))

        try:
            await aiosmtplib.send(
                msg,
                hostname=self.settings.SMTP_HOST,
                port=self.settings.SMTP_PORT,
                username=self.settings.SMTP_USER,
                password=self.settings.SMTP_PASSWORD,
                use_tls=self.settings.SMTP_USE_TLS,
                start_tls=not self.settings.SMTP_USE_TLS,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("Email to %s failed: %s", email, e)
            return DispatchResult(False, error=str(e))

        logger.info("Email sent to %s", email)
        return DispatchResult(True, message_id=msg.get("Message-ID"))


_dispatcher: Optional[OTPDispatcher] = None


def get_dispatcher() -> OTPDispatcher:
    """FastAPI dependency; overridden with a fake in tests"""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = OTPDispatcher()
    return _dispatcher
