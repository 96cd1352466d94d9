# API endpoints
from . import auth, users, resellers, addons, health

__all__ = ["auth", "users", "resellers", "addons", "health"]
