"""
Domain exceptions for the AgriModel backend.

Services raise these; the handlers registered in app.py turn them into
HTTP responses of the form {"detail": message}.
"""
from typing import Optional, Any, Dict


class AgriModelError(Exception):
    """Base exception for all AgriModel errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(AgriModelError):
    """Missing, invalid or expired credentials, or an inactive account"""

    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


class InvalidTokenError(AuthenticationError):
    """JWT token is invalid"""

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)
        self.code = "INVALID_TOKEN"


class TokenExpiredError(InvalidTokenError):
    """JWT token has expired"""

    def __init__(self):
        super().__init__("Token has expired")
        self.code = "TOKEN_EXPIRED"


class AuthorizationError(AgriModelError):
    """Principal is authenticated but not allowed to do this"""

    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message, code="NOT_AUTHORIZED")


# ============================================
# Request / State Errors
# ============================================

class ValidationFailedError(AgriModelError):
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class ConflictError(AgriModelError):
    """Duplicate record or an invalid state transition"""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFLICT", details=details)


class NotFoundError(AgriModelError):
    status_code = 404

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        super().__init__(
            message,
            code="NOT_FOUND",
            details={"resource": resource, "id": resource_id} if resource_id is not None else None
        )
