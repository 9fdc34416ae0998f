"""
FixMyArea - Custom Exceptions

Services raise these instead of HTTPException so they can be exercised
without a request; the API layer renders them as
{"success": false, "message": ..., "code": ...} with the mapped status.
"""
from typing import Any, Dict, List, Optional


class FixMyAreaError(Exception):
    """Base exception for all FixMyArea errors"""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ):
        self.message = message
        if code:
            self.code = code
        self.errors = errors or []
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "message": self.message, "code": self.code}
        if self.errors:
            body["errors"] = self.errors
        return body


# ==================== VALIDATION ====================

class ValidationError(FixMyAreaError):
    status_code = 400
    code = "VALIDATION_ERROR"


class ConflictError(FixMyAreaError):
    """Unique key already taken (e.g. phone number)"""

    status_code = 400
    code = "CONFLICT"


# ==================== AUTHENTICATION ====================

class AuthenticationError(FixMyAreaError):
    status_code = 401
    code = "AUTH_FAILED"


class NoTokenError(AuthenticationError):
    code = "NO_TOKEN"

    def __init__(self):
        super().__init__("Not authorized, no token")


class InvalidTokenError(AuthenticationError):
    code = "INVALID_TOKEN"

    def __init__(self):
        super().__init__("Invalid token. Please login again.")


class TokenExpiredError(AuthenticationError):
    code = "TOKEN_EXPIRED"

    def __init__(self):
        super().__init__("Token expired. Please login again.")


class UserNotFoundForTokenError(AuthenticationError):
    code = "USER_NOT_FOUND"

    def __init__(self):
        super().__init__("User not found")


class InvalidCredentialsError(AuthenticationError):
    code = "INVALID_CREDENTIALS"

    def __init__(self):
        super().__init__("Invalid credentials")


# ==================== AUTHORIZATION ====================

class PermissionDeniedError(FixMyAreaError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(message)


class AccountDisabledError(PermissionDeniedError):
    code = "ACCOUNT_DISABLED"

    def __init__(self):
        super().__init__("Account is disabled. Please contact administrator.")


# ==================== NOT FOUND ====================

class NotFoundError(FixMyAreaError):
    status_code = 404
    code = "NOT_FOUND"


# ==================== OTP ====================

class OTPError(FixMyAreaError):
    """OTP rejected; message is the discriminated reason"""

    status_code = 400
    code = "OTP_REJECTED"


class RateLimitError(FixMyAreaError):
    status_code = 429
    code = "RATE_LIMITED"

    def __init__(self, message: str = "Too many OTP requests. Please wait 15 minutes before trying again."):
        super().__init__(message)
