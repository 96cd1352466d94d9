"""
Addon Schemas - Request/Response models for addon registrations and sync reports
"""

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from typing import Annotated, Any, Dict, List, Optional
from datetime import datetime

from app.models.addon import AddonResource, AddonType


def _check_transport_url(v: str) -> str:
    v = v.strip()
    if not v.startswith(("http://", "https://")):
        raise ValueError("Transport URL must start with http:// or https://")
    return v


TransportUrl = Annotated[str, AfterValidator(_check_transport_url)]


# ============== Addon Schemas ==============

class AddonCreate(BaseModel):
    """Register an addon by manifest URL; omitted fields come from the manifest"""
    transport_url: TransportUrl = Field(..., max_length=1024)
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    version: Optional[str] = Field(None, max_length=50)
    resources: Optional[List[AddonResource]] = None
    types: Optional[List[AddonType]] = None
    is_public: bool = False
    config: Dict[str, Any] = Field(default_factory=dict)


class AddonUpdate(BaseModel):
    transport_url: Optional[TransportUrl] = Field(None, max_length=1024)
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    version: Optional[str] = Field(None, max_length=50)
    resources: Optional[List[AddonResource]] = None
    types: Optional[List[AddonType]] = None
    is_public: Optional[bool] = None
    is_active: Optional[bool] = None
    config: Optional[Dict[str, Any]] = None


class AddonSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    transport_url: str
    version: str
    is_public: bool
    is_active: bool


class AddonResponse(AddonSummary):
    description: str
    addon_id: Optional[str] = None
    resources: List[str] = []
    types: List[str] = []
    creator_id: Optional[str] = None
    config: Dict[str, Any] = {}
    validated: bool
    last_validated: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class AddonDetailResponse(AddonResponse):
    manifest: Optional[Dict[str, Any]] = None


class ValidateAddonRequest(BaseModel):
    transport_url: TransportUrl


class ValidateAddonResponse(BaseModel):
    valid: bool
    manifest: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class OfficialAddon(BaseModel):
    name: str
    transport_url: str
    addon_id: str
    description: str


class ImportOfficialRequest(BaseModel):
    transport_url: str
    is_public: bool = True


# ============== Sync Reports ==============

class SyncErrorItem(BaseModel):
    identity: str
    username: Optional[str] = None
    message: str


class SyncReport(BaseModel):
    total: int
    successful: int
    failed: int
    errors: List[SyncErrorItem] = []


class RemoteSyncOutcome(BaseModel):
    """Result of pushing a single change to Stremio"""
    attempted: bool
    success: bool = False
    changed: bool = False
    error: Optional[str] = None


class AddonMutationResponse(BaseModel):
    success: bool = True
    message: str
    addon: Optional[AddonResponse] = None
    sync: Optional[SyncReport] = None
