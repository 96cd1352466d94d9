from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import List, Optional
from datetime import datetime

from app.models.user import UserRole
from app.schemas.auth import UserResponse
from app.schemas.addon import AddonSummary, RemoteSyncOutcome, SyncReport


class UserCreate(BaseModel):
    """Account created by an admin or reseller"""
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Optional[UserRole] = None  # admins only; resellers always create users
    is_active: bool = True
    expires_at: Optional[datetime] = None
    credits: int = Field(0, ge=0)

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, v):
        return v.lower()


class UserUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    expires_at: Optional[datetime] = None

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, v):
        return v.lower() if v else v


class UserDetailResponse(UserResponse):
    addons: List[AddonSummary] = []


class UserListResponse(BaseModel):
    items: List[UserResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class AssignAddonRequest(BaseModel):
    user_id: str
    addon_id: str


class AddonAssignmentResponse(BaseModel):
    success: bool = True
    message: str
    remote_sync: RemoteSyncOutcome


class SyncAddonsResponse(BaseModel):
    success: bool
    message: str
    added_count: int = 0
    report: Optional[SyncReport] = None


class StremioStatusResponse(BaseModel):
    synced: bool
    valid: bool
    stremio_user_id: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None
