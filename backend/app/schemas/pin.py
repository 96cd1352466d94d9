"""
PIN Login Schemas
"""

from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional
from datetime import datetime

from app.models.pin_session import PinStatus
from app.models.user import UserRole


class PinGenerateRequest(BaseModel):
    expiry_minutes: Optional[int] = Field(None, ge=1, description="PIN lifetime, capped by PIN_MAX_TTL_MINUTES")


class PinGenerateResponse(BaseModel):
    pin: str
    session_id: str
    expires_at: datetime
    qr_code: str  # data:image/png;base64,...


class DeviceInfo(BaseModel):
    user_agent: Optional[str] = None
    ip: Optional[str] = None
    timestamp: Optional[datetime] = None


class PinVerifyRequest(BaseModel):
    pin: str = Field(..., pattern=r'^\d{4,6}$')
    stremio_auth_key: str = Field(..., min_length=1)
    device_info: Optional[DeviceInfo] = None


class PinVerifyResponse(BaseModel):
    success: bool = True
    message: str = "PIN verified successfully"
    session_id: str
    user_id: str


class PinLoginStremioRequest(BaseModel):
    """Log in to Stremio with email/password and verify the PIN with the resulting auth key"""
    pin: str = Field(..., pattern=r'^\d{4,6}$')
    email: EmailStr
    password: str = Field(..., min_length=1)


class PinUser(BaseModel):
    id: str
    username: str
    email: str
    role: UserRole


class PinStatusResponse(BaseModel):
    status: PinStatus
    token: Optional[str] = None
    user: Optional[PinUser] = None


class PinSessionSummary(BaseModel):
    pin: str
    session_id: str
    status: PinStatus
    user_id: Optional[str] = None
    expires_at: datetime
    created_at: datetime


class PinStatsResponse(BaseModel):
    total: int
    pending: int
    verified: int
    used: int
    expired: int
    recent: List[PinSessionSummary] = []


class PinCleanupResponse(BaseModel):
    success: bool = True
    deleted: int
