# Re-export all models for convenient imports
from app.models.user import User, UserRole
from app.models.addon import Addon, AddonResource, AddonType, user_addons
from app.models.pin_session import PinSession, PinStatus

__all__ = [
    # Accounts
    "User",
    "UserRole",
    # Addons
    "Addon",
    "AddonResource",
    "AddonType",
    "user_addons",
    # PIN login
    "PinSession",
    "PinStatus",
]
