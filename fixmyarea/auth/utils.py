"""
FixMyArea - Password hashing and JWT helpers
"""
from passlib.context import CryptContext
from jose import ExpiredSignatureError, JWTError, jwt
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fixmyarea.config import settings
from fixmyarea.exceptions import InvalidTokenError, TokenExpiredError

VERIFICATION_PURPOSE = "phone_verified"

# ========== PASSWORD HASHING ==========
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def hash_password(password: str) -> str:
    """Hash a password using salted bcrypt"""
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)

# ========== SESSION TOKENS ==========

def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> str:
    """Create a signed session token; default lifetime ACCESS_TOKEN_EXPIRE_DAYS"""
    to_encode = data.copy()
    issued = now or datetime.now(timezone.utc)
    expire = issued + (expires_delta or timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS))
    to_encode.update({"iat": issued, "exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def create_session_token(user) -> str:
    """Session claims are {id, role, status}"""
    return create_access_token({
        "id": str(user.id),
        "role": user.role.value,
        "status": user.status.value,
    })

def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify signature and expiry; raise the matching auth error"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise TokenExpiredError()
    except JWTError:
        raise InvalidTokenError()

# ========== VERIFICATION TICKETS ==========

def create_verification_ticket(phone: str) -> str:
    """Short-lived assertion that `phone` just passed registration OTP"""
    return create_access_token(
        {"sub": phone, "purpose": VERIFICATION_PURPOSE},
        expires_delta=timedelta(minutes=settings.VERIFICATION_TICKET_EXPIRE_MINUTES),
    )

def verify_verification_ticket(ticket: Optional[str], phone: str) -> bool:
    if not ticket:
        return False
    try:
        payload = jwt.decode(ticket, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return False
    return payload.get("purpose") == VERIFICATION_PURPOSE and payload.get("sub") == phone
