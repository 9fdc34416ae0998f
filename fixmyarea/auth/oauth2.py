"""
FixMyArea - Access Control
Authenticate bearer tokens against the live user row, then gate by role.
"""
from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from fixmyarea.auth.utils import decode_access_token
from fixmyarea.database import get_db
from fixmyarea.exceptions import (
    AccountDisabledError,
    AuthenticationError,
    InvalidTokenError,
    NoTokenError,
    PermissionDeniedError,
    UserNotFoundForTokenError,
)
from fixmyarea.models.db_models import User, UserRole, UserStatus

# auto_error=False so a missing header reaches us and gets the "no token" reason
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


@dataclass(frozen=True)
class Identity:
    """Request-scoped caller identity"""
    id: str
    role: UserRole
    status: UserStatus
    phone: str


async def authenticate(db: AsyncSession, token: Optional[str]) -> Identity:
    """
    Verify signature and expiry, then re-read the user so a disabled
    account is refused even while its token is unexpired.
    """
    if not token:
        raise NoTokenError()

    payload = decode_access_token(token)
    user_id = payload.get("id")
    if not user_id:
        raise InvalidTokenError()

    user = await db.get(User, str(user_id))
    if user is None:
        raise UserNotFoundForTokenError()
    if user.status != UserStatus.ACTIVE:
        raise AccountDisabledError()

    return Identity(id=user.id, role=user.role, status=user.status, phone=user.phone)


def authorize(identity: Optional[Identity], allowed_roles: Iterable[UserRole] = ()) -> Identity:
    """Empty allowed_roles means any authenticated user"""
    if identity is None:
        raise AuthenticationError("Not authorized")
    allowed = {UserRole(role) for role in allowed_roles}
    if allowed and identity.role not in allowed:
        raise PermissionDeniedError()
    return identity


async def get_current_identity(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    """
    Dependency for any protected route:
    identity: Identity = Depends(get_current_identity)
    """
    identity = await authenticate(db, token)
    return identity


def require_roles(*roles: UserRole):
    """Dependency factory: authenticate, then authorize against roles"""

    async def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        return authorize(identity, roles)

    return dependency
