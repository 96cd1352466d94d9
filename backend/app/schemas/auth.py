from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime

from app.models.user import UserRole


class UserRegister(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)

    @field_validator('username')
    @classmethod
    def strip_username(cls, v):
        return v.strip()

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, v):
        return v.lower()


class UserLogin(BaseModel):
    username: str
    password: str


class StremioCredentials(BaseModel):
    """Stremio account email/password, used to link or create a Stremio account"""
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    email: str
    role: UserRole
    is_active: bool
    expires_at: Optional[datetime] = None
    stremio_synced: bool
    stremio_user_id: Optional[str] = None
    reseller_id: Optional[str] = None
    credits: int = 0
    created_at: datetime


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class StremioLinkResponse(BaseModel):
    success: bool = True
    message: str
    user: UserResponse
