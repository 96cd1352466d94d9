"""
Addon Service - Addon registry business logic

An addon is only registered once its manifest has been fetched and checked;
fields the caller leaves out are taken from the manifest. The transport URL
is unique across the registry.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from app.core.logging_config import logger
from app.core.types import utcnow
from app.models.addon import Addon, AddonResource, AddonType, user_addons
from app.models.user import User, UserRole
from app.modules.stremio.client import StremioClient
from app.schemas.addon import AddonCreate, AddonUpdate
from app.services.account_service import account_service


OFFICIAL_ADDONS: List[Dict[str, Any]] = [
    {
        "name": "Cinemeta",
        "description": "The official addon for movie and series catalogs",
        "transport_url": "https://v3-cinemeta.strem.io/manifest.json",
        "addon_id": "com.linvo.cinemeta",
    },
    {
        "name": "Stremio Channels",
        "description": "Watch YouTube channels within Stremio",
        "transport_url": "https://v3-channels.strem.io/manifest.json",
        "addon_id": "com.linvo.stremiochannels",
    },
    {
        "name": "WatchHub",
        "description": "Find where to watch movies and shows",
        "transport_url": "https://watchhub.strem.io/manifest.json",
        "addon_id": "org.stremio.watchhub",
    },
    {
        "name": "OpenSubtitles",
        "description": "The official addon for subtitles",
        "transport_url": "https://v3-opensubs.strem.io/manifest.json",
        "addon_id": "org.stremio.opensubtitles",
    },
]

_KNOWN_RESOURCES = {r.value for r in AddonResource}
_KNOWN_TYPES = {t.value for t in AddonType}


def manifest_resources(manifest: Dict[str, Any]) -> List[str]:
    """Resource names from a manifest; entries may be strings or ``{"name": ...}`` objects"""
    names = []
    for item in manifest.get("resources") or []:
        name = item.get("name") if isinstance(item, dict) else item
        if name in _KNOWN_RESOURCES and name not in names:
            names.append(name)
    return names


def manifest_types(manifest: Dict[str, Any]) -> List[str]:
    return [t for t in dict.fromkeys(manifest.get("types") or []) if t in _KNOWN_TYPES]


def _values(items) -> List[str]:
    return [getattr(i, "value", i) for i in items]


class AddonService:
    """Service for the addon registry"""

    # ==================== LOOKUPS ====================

    async def get_addon(self, db: AsyncSession, addon_id: str, with_users: bool = False) -> Addon:
        query = select(Addon).where(Addon.id == addon_id)
        if with_users:
            query = query.options(selectinload(Addon.users))
        result = await db.execute(query)
        addon = result.scalar_one_or_none()
        if not addon:
            raise NotFoundError("Addon", addon_id)
        return addon

    async def get_by_url(self, db: AsyncSession, transport_url: str) -> Optional[Addon]:
        result = await db.execute(select(Addon).where(Addon.transport_url == transport_url))
        return result.scalar_one_or_none()

    async def list_visible(self, db: AsyncSession, actor: User) -> List[Addon]:
        """Admins see everything, resellers their own plus public, users assigned plus public"""
        query = select(Addon)
        if actor.role == UserRole.RESELLER:
            query = query.where(or_(Addon.creator_id == actor.id, Addon.is_public.is_(True)))
        elif actor.role == UserRole.USER:
            assigned = select(user_addons.c.addon_id).where(user_addons.c.user_id == actor.id)
            query = query.where(or_(Addon.id.in_(assigned), Addon.is_public.is_(True)))
        result = await db.execute(query.order_by(Addon.created_at.desc()))
        return list(result.scalars().all())

    async def ensure_visible(self, db: AsyncSession, actor: User, addon: Addon) -> None:
        if actor.role != UserRole.USER or addon.is_public:
            return
        assigned = await db.execute(
            select(user_addons.c.addon_id).where(
                user_addons.c.user_id == actor.id,
                user_addons.c.addon_id == addon.id,
            )
        )
        if not assigned.first():
            raise ForbiddenError("Access denied")

    def ensure_can_manage(self, actor: User, addon: Addon) -> None:
        """Only the creator or an admin may change an addon"""
        if actor.role == UserRole.ADMIN or addon.creator_id == actor.id:
            return
        raise ForbiddenError("Access denied")

    def ensure_can_use(self, actor: User, addon: Addon) -> None:
        """Managers may assign, sync and inspect their own addons; resellers also public ones"""
        if actor.role == UserRole.ADMIN or addon.creator_id == actor.id:
            return
        if actor.role == UserRole.RESELLER and addon.is_public:
            return
        raise ForbiddenError("Access denied")

    async def members(self, db: AsyncSession, addon: Addon, actor: User) -> List[User]:
        query = (
            select(User)
            .join(user_addons, user_addons.c.user_id == User.id)
            .where(user_addons.c.addon_id == addon.id)
        )
        # A reseller looking at a public addon only sees its own customers
        if actor.role == UserRole.RESELLER and addon.creator_id != actor.id:
            query = query.where(User.reseller_id == actor.id)
        result = await db.execute(query.order_by(User.username))
        return list(result.scalars().all())

    # ==================== REGISTRY ====================

    async def _ensure_url_free(self, db: AsyncSession, transport_url: str) -> None:
        if await self.get_by_url(db, transport_url):
            raise ConflictError("Addon with this URL already exists", field="transport_url")

    async def register_addon(
        self,
        db: AsyncSession,
        data: AddonCreate,
        creator: User,
        client: StremioClient,
    ) -> Addon:
        """Fetch and check the manifest, then store the registration.

        Raises ConflictError for a known URL and InvalidManifestError (no row
        written) when the manifest is unusable.
        """
        await self._ensure_url_free(db, data.transport_url)
        manifest = await client.fetch_manifest(data.transport_url)

        addon = Addon(
            name=data.name or manifest["name"],
            description=data.description or manifest.get("description") or "No description provided",
            version=data.version or manifest.get("version") or "1.0.0",
            transport_url=data.transport_url,
            addon_id=manifest["id"],
            resources=_values(data.resources) if data.resources else manifest_resources(manifest),
            types=_values(data.types) if data.types else manifest_types(manifest),
            creator_id=creator.id,
            is_public=data.is_public,
            config=data.config or {},
            manifest=manifest,
            validated=True,
            last_validated=utcnow(),
        )
        db.add(addon)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("Addon with this URL already exists", field="transport_url")

        logger.info(f"[Addons] {creator.username} registered {addon.name} ({addon.transport_url})")
        return addon

    async def import_official(
        self,
        db: AsyncSession,
        transport_url: str,
        creator: User,
        client: StremioClient,
        is_public: bool = True,
    ) -> Addon:
        return await self.register_addon(
            db,
            AddonCreate(transport_url=transport_url, is_public=is_public),
            creator,
            client,
        )

    async def update_addon(
        self,
        db: AsyncSession,
        addon: Addon,
        data: AddonUpdate,
        client: StremioClient,
    ) -> Addon:
        """Apply changes; a new transport URL is re-validated and refreshes omitted fields"""
        changes = data.model_dump(exclude_unset=True)
        new_url = changes.get("transport_url")

        if new_url and new_url != addon.transport_url:
            await self._ensure_url_free(db, new_url)
            manifest = await client.fetch_manifest(new_url)
            addon.transport_url = new_url
            addon.manifest = manifest
            addon.addon_id = manifest["id"]
            addon.validated = True
            addon.last_validated = utcnow()
            addon.name = changes.get("name") or manifest["name"]
            addon.description = changes.get("description") or manifest.get("description") or "No description provided"
            addon.version = changes.get("version") or manifest.get("version") or "1.0.0"
            addon.resources = _values(changes["resources"]) if changes.get("resources") else manifest_resources(manifest)
            addon.types = _values(changes["types"]) if changes.get("types") else manifest_types(manifest)
        else:
            for field in ("name", "description", "version"):
                if changes.get(field):
                    setattr(addon, field, changes[field])
            if changes.get("resources"):
                addon.resources = _values(changes["resources"])
            if changes.get("types"):
                addon.types = _values(changes["types"])

        if changes.get("is_public") is not None:
            addon.is_public = changes["is_public"]
        if changes.get("is_active") is not None:
            addon.is_active = changes["is_active"]
        if changes.get("config"):
            addon.config = {**(addon.config or {}), **changes["config"]}

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("Addon with this URL already exists", field="transport_url")
        return addon

    async def delete_addon(self, db: AsyncSession, addon: Addon) -> List[User]:
        """Drop the registration and its memberships.

        Returns the synced members captured before the delete so the caller
        can remove the addon from their Stremio collections afterwards.
        """
        synced = await account_service.synced_members(db, addon.id)
        await db.execute(delete(user_addons).where(user_addons.c.addon_id == addon.id))
        db.expire(addon, ["users"])
        await db.delete(addon)
        await db.commit()
        logger.info(f"[Addons] Deleted {addon.name} ({addon.transport_url})")
        return synced


# Singleton instance
addon_service = AddonService()
