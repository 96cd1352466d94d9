from sqlalchemy import Column, String, Boolean, DateTime, Enum as SQLEnum, Integer, ForeignKey
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid, utcnow


class UserRole(str, enum.Enum):
    """User roles"""
    ADMIN = "admin"
    RESELLER = "reseller"
    USER = "user"


class User(Base):
    """Panel account, optionally linked to a Stremio account"""
    __tablename__ = "users"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    username = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    role = Column(SQLEnum(UserRole), default=UserRole.USER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    expires_at = Column(DateTime, nullable=True)

    # Stremio link
    stremio_auth_key = Column(String(255), index=True, nullable=True)
    stremio_user_id = Column(String(100), nullable=True)
    stremio_synced = Column(Boolean, default=False, nullable=False)

    # Reseller ownership; credits only mean something when role == reseller
    reseller_id = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    credits = Column(Integer, default=0, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    reseller = relationship("User", remote_side=[id])
    addons = relationship("Addon", secondary="user_addons", back_populates="users")

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at < utcnow()

    @property
    def has_stremio_link(self) -> bool:
        return bool(self.stremio_synced and self.stremio_auth_key)

    def __repr__(self):
        return f"<User {self.username}>"
