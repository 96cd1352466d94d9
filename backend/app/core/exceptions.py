"""
Custom Exceptions for Stremio Panel
===================================

Every error carries a machine readable code and the HTTP status the API
layer answers with. Services raise these; the exception handler registered
in main.py turns them into JSON responses.

Usage:
    from app.core.exceptions import NotFoundError, NotSyncedError

    if not user:
        raise NotFoundError("User", user_id)

    if not user.stremio_auth_key:
        raise NotSyncedError(user.username)
"""

from typing import Optional, Any, Dict


class PanelError(Exception):
    """Base exception for all panel errors"""

    status_code: int = 500

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

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Entity & Ownership Errors
# ============================================

class NotFoundError(PanelError):
    """Entity does not exist"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: Optional[str] = None):
        message = f"{resource_type} not found"
        super().__init__(
            message,
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class ForbiddenError(PanelError):
    """Role or ownership check failed"""

    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message, code="FORBIDDEN")


class ConflictError(PanelError):
    """Uniqueness violation (username, email, transport URL, PIN)"""

    status_code = 409

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, code="CONFLICT", details={"field": field} if field else None)


class ValidationError(PanelError):
    """Request passed schema validation but is not acceptable"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, code="VALIDATION_ERROR", details={"field": field} if field else None)


class InsufficientCreditsError(PanelError):
    """Reseller has no credits left to create an account"""

    status_code = 400

    def __init__(self, available: int = 0):
        super().__init__(
            "Insufficient credits",
            code="INSUFFICIENT_CREDITS",
            details={"available": available}
        )


# ============================================
# Addon Manifest Errors
# ============================================

class InvalidManifestError(PanelError):
    """Manifest could not be fetched or lacks id/name"""

    status_code = 400

    def __init__(self, transport_url: str, reason: str = "Manifest must contain id and name"):
        super().__init__(
            f"Invalid addon manifest: {reason}",
            code="INVALID_MANIFEST",
            details={"transport_url": transport_url, "reason": reason}
        )


# ============================================
# Remote Service Errors
# ============================================

class RemoteServiceError(PanelError):
    """Base class for Stremio API failures"""

    status_code = 502

    def __init__(self, message: str, code: str = "REMOTE_ERROR", operation: Optional[str] = None):
        super().__init__(message, code=code, details={"operation": operation} if operation else None)


class RemoteUnavailableError(RemoteServiceError):
    """Transport failure: connection refused, timeout, 5xx"""

    status_code = 503

    def __init__(self, message: str = "Stremio API unavailable", operation: Optional[str] = None):
        super().__init__(message, code="REMOTE_UNAVAILABLE", operation=operation)


class RemoteRejectedError(RemoteServiceError):
    """The remote side answered with an error payload"""

    status_code = 502

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message, code="REMOTE_REJECTED", operation=operation)


class NotSyncedError(PanelError):
    """Operation needs a Stremio auth key the account does not have"""

    status_code = 400

    def __init__(self, username: Optional[str] = None):
        super().__init__(
            "User is not synced with Stremio",
            code="NOT_SYNCED",
            details={"username": username} if username else None
        )


# ============================================
# PIN Login Errors
# ============================================

class InvalidOrExpiredPinError(PanelError):
    """No pending session holds this PIN"""

    status_code = 400

    def __init__(self):
        super().__init__("Invalid or expired PIN", code="INVALID_PIN")


class PinExpiredError(PanelError):
    """PIN session found but past its expiry"""

    status_code = 400

    def __init__(self):
        super().__init__("PIN has expired", code="PIN_EXPIRED")


class InvalidSessionError(PanelError):
    """Unknown PIN session id"""

    status_code = 404

    def __init__(self, session_id: Optional[str] = None):
        super().__init__(
            "Invalid session ID",
            code="INVALID_SESSION",
            details={"session_id": session_id} if session_id else None
        )


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: PanelError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "detail": error.message,
        "error": error.to_dict()
    }
