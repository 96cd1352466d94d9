from sqlalchemy import Column, String, DateTime, ForeignKey, Enum as SQLEnum, JSON, Index
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid, utcnow


class PinStatus(str, enum.Enum):
    """PIN login lifecycle: pending -> verified -> used, or expired"""
    PENDING = "pending"
    VERIFIED = "verified"
    USED = "used"
    EXPIRED = "expired"


class PinSession(Base):
    """Short-lived PIN used to log a TV/secondary device in through Stremio"""
    __tablename__ = "pin_sessions"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    pin = Column(String(6), unique=True, nullable=False)
    session_id = Column(String(36), unique=True, index=True, nullable=False, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    device_info = Column(JSON, nullable=True)
    status = Column(SQLEnum(PinStatus), default=PinStatus.PENDING, nullable=False)

    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User")

    __table_args__ = (
        Index("ix_pin_sessions_status_expires", "status", "expires_at"),
    )

    @property
    def is_expired(self) -> bool:
        return self.expires_at < utcnow()

    def __repr__(self):
        return f"<PinSession {self.session_id} {self.status.value}>"
