"""
Addon registrations

An addon is identified by its transport URL (the manifest location). The
many-to-many ``user_addons`` table is the set of accounts the addon should
be installed for on Stremio.
"""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Table, Text, JSON
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid, utcnow


class AddonResource(str, enum.Enum):
    """Capabilities a manifest may declare"""
    CATALOG = "catalog"
    META = "meta"
    STREAM = "stream"
    SUBTITLES = "subtitles"
    ADDON_CATALOG = "addon_catalog"


class AddonType(str, enum.Enum):
    """Media types a manifest may declare"""
    MOVIE = "movie"
    SERIES = "series"
    CHANNEL = "channel"
    TV = "tv"
    MUSIC = "music"
    OTHER = "other"


user_addons = Table(
    "user_addons",
    Base.metadata,
    Column("user_id", GUID, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("addon_id", GUID, ForeignKey("addons.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_at", DateTime, default=utcnow, nullable=False),
)


class Addon(Base):
    """Registered Stremio addon"""
    __tablename__ = "addons"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="No description provided", nullable=False)
    version = Column(String(50), default="1.0.0", nullable=False)
    transport_url = Column(String(1024), unique=True, index=True, nullable=False)
    addon_id = Column(String(255), nullable=True)  # manifest "id"

    resources = Column(JSON, default=list, nullable=False)
    types = Column(JSON, default=list, nullable=False)

    creator_id = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    is_public = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    config = Column(JSON, default=dict, nullable=False)
    manifest = Column(JSON, nullable=True)
    validated = Column(Boolean, default=False, nullable=False)
    last_validated = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    creator = relationship("User", foreign_keys=[creator_id])
    users = relationship("User", secondary=user_addons, back_populates="addons")

    def __repr__(self):
        return f"<Addon {self.name} ({self.transport_url})>"
