"""PIN login: log a device in by confirming a short PIN from a Stremio session."""

from app.modules.pin_auth.notifier import PinSessionNotifier, pin_notifier
from app.modules.pin_auth.service import PinAuthService, pin_auth_service

__all__ = [
    "PinSessionNotifier",
    "pin_notifier",
    "PinAuthService",
    "pin_auth_service",
]
