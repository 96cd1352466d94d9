# Pydantic schemas
from app.schemas.auth import (
    UserRegister,
    UserLogin,
    StremioCredentials,
    UserResponse,
    TokenResponse,
)
from app.schemas.addon import (
    AddonCreate,
    AddonUpdate,
    AddonResponse,
    AddonDetailResponse,
    SyncReport,
)
from app.schemas.user import (
    UserCreate,
    UserUpdate,
    UserDetailResponse,
    AssignAddonRequest,
)
from app.schemas.reseller import (
    ResellerCreate,
    ResellerUpdate,
    CreditsRequest,
    ResellerStats,
)
from app.schemas.pin import (
    PinGenerateRequest,
    PinGenerateResponse,
    PinVerifyRequest,
    PinStatusResponse,
)

__all__ = [
    "UserRegister",
    "UserLogin",
    "StremioCredentials",
    "UserResponse",
    "TokenResponse",
    "AddonCreate",
    "AddonUpdate",
    "AddonResponse",
    "AddonDetailResponse",
    "SyncReport",
    "UserCreate",
    "UserUpdate",
    "UserDetailResponse",
    "AssignAddonRequest",
    "ResellerCreate",
    "ResellerUpdate",
    "CreditsRequest",
    "ResellerStats",
    "PinGenerateRequest",
    "PinGenerateResponse",
    "PinVerifyRequest",
    "PinStatusResponse",
]
