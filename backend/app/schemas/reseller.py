from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime


class ResellerCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    credits: int = Field(0, ge=0)
    expires_at: Optional[datetime] = None

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, v):
        return v.lower()


class ResellerUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    credits: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    expires_at: Optional[datetime] = None

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, v):
        return v.lower() if v else v


class CreditsRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Credits to add; must be positive")


class CreditsResponse(BaseModel):
    success: bool = True
    message: str
    credits: int


class ResellerStats(BaseModel):
    total_users: int
    active_users: int
    expired_users: int
    synced_users: int
    new_users: int  # last 30 days
    credits: int
