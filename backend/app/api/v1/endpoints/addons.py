"""
Addons API

Registry of Stremio addons (by manifest URL) and fan-out of addon changes
to the Stremio collections of every synced member. Fan-out results are
always returned as a report with HTTP 200; one failing account never
aborts the rest.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.core.database import get_db
from app.core.exceptions import InvalidManifestError, RemoteServiceError, ValidationError
from app.core.logging_config import logger
from app.models.user import User, UserRole
from app.modules.auth.dependencies import get_current_user, get_current_manager
from app.modules.stremio.client import StremioClient, get_stremio_client
from app.schemas.addon import (
    AddonCreate,
    AddonDetailResponse,
    AddonMutationResponse,
    AddonResponse,
    AddonUpdate,
    ImportOfficialRequest,
    OfficialAddon,
    SyncReport,
    ValidateAddonRequest,
    ValidateAddonResponse,
)
from app.schemas.auth import UserResponse
from app.services.account_service import account_service
from app.services.addon_service import OFFICIAL_ADDONS, addon_service
from app.services.addon_sync import AddonSyncService, get_addon_sync_service

router = APIRouter()


def _scoped(members: List[User], addon, actor: User) -> List[User]:
    # A reseller syncing a public addon only reaches its own customers
    if actor.role == UserRole.RESELLER and addon.creator_id != actor.id:
        return [m for m in members if m.reseller_id == actor.id]
    return members


# ==================== Registry ====================

@router.get("", response_model=List[AddonResponse])
async def list_addons(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Addons visible to the caller"""
    return await addon_service.list_visible(db, current_user)


@router.get("/official", response_model=List[OfficialAddon])
async def official_addons(current_user: User = Depends(get_current_manager)):
    """Catalogue of official Stremio addons that can be imported"""
    return OFFICIAL_ADDONS


@router.post("/validate", response_model=ValidateAddonResponse)
async def validate_addon(
    data: ValidateAddonRequest,
    current_user: User = Depends(get_current_manager),
    client: StremioClient = Depends(get_stremio_client)
):
    """Fetch a manifest without registering it"""
    try:
        manifest = await client.fetch_manifest(data.transport_url)
    except (InvalidManifestError, RemoteServiceError) as e:
        return ValidateAddonResponse(valid=False, error=e.message)
    return ValidateAddonResponse(valid=True, manifest=manifest)


@router.post("/import-official", response_model=AddonResponse, status_code=status.HTTP_201_CREATED)
async def import_official_addon(
    data: ImportOfficialRequest,
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db),
    client: StremioClient = Depends(get_stremio_client)
):
    if data.transport_url not in {a["transport_url"] for a in OFFICIAL_ADDONS}:
        raise ValidationError("Not an official addon", field="transport_url")
    return await addon_service.import_official(
        db, data.transport_url, current_user, client, is_public=data.is_public
    )


@router.post("", response_model=AddonResponse, status_code=status.HTTP_201_CREATED)
async def create_addon(
    data: AddonCreate,
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db),
    client: StremioClient = Depends(get_stremio_client)
):
    """Register an addon; the manifest is fetched and checked first"""
    return await addon_service.register_addon(db, data, current_user, client)


@router.get("/{addon_id}", response_model=AddonDetailResponse)
async def get_addon(
    addon_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    addon = await addon_service.get_addon(db, addon_id)
    await addon_service.ensure_visible(db, current_user, addon)
    return addon


@router.put("/{addon_id}", response_model=AddonMutationResponse)
async def update_addon(
    addon_id: str,
    data: AddonUpdate,
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db),
    client: StremioClient = Depends(get_stremio_client),
    sync: AddonSyncService = Depends(get_addon_sync_service)
):
    """
    Update an addon and push it again to every synced member.

    When the transport URL changes the old URL is removed from each member's
    collection before the new one is added.
    """
    addon = await addon_service.get_addon(db, addon_id)
    addon_service.ensure_can_manage(current_user, addon)

    old_url = addon.transport_url
    addon = await addon_service.update_addon(db, addon, data, client)

    report = None
    if addon.is_active:
        members = await account_service.synced_members(db, addon.id)
        if addon.transport_url != old_url:
            removed = await sync.sync_accounts(members, old_url, action="remove")
            logger.info(f"[Addons] Removed old URL from {removed.successful}/{removed.total} accounts")
        result = await sync.sync_accounts(members, addon.transport_url, action="add")
        report = SyncReport(**result.to_dict())

    return AddonMutationResponse(
        message="Addon updated successfully",
        addon=AddonResponse.model_validate(addon),
        sync=report,
    )


@router.delete("/{addon_id}", response_model=AddonMutationResponse)
async def delete_addon(
    addon_id: str,
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db),
    sync: AddonSyncService = Depends(get_addon_sync_service)
):
    """Delete an addon, then remove it from every synced member's collection"""
    addon = await addon_service.get_addon(db, addon_id)
    addon_service.ensure_can_manage(current_user, addon)

    transport_url = addon.transport_url
    members = await addon_service.delete_addon(db, addon)
    result = await sync.sync_accounts(members, transport_url, action="remove")

    return AddonMutationResponse(
        message="Addon deleted successfully",
        sync=SyncReport(**result.to_dict()),
    )


# ==================== Members ====================

@router.get("/{addon_id}/users", response_model=List[UserResponse])
async def addon_users(
    addon_id: str,
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db)
):
    addon = await addon_service.get_addon(db, addon_id)
    addon_service.ensure_can_use(current_user, addon)
    return await addon_service.members(db, addon, current_user)


@router.post("/{addon_id}/sync", response_model=SyncReport)
async def sync_addon(
    addon_id: str,
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db),
    sync: AddonSyncService = Depends(get_addon_sync_service)
):
    """Install the addon for every synced member"""
    addon = await addon_service.get_addon(db, addon_id)
    addon_service.ensure_can_use(current_user, addon)

    members = _scoped(await account_service.synced_members(db, addon.id), addon, current_user)
    result = await sync.sync_accounts(members, addon.transport_url, action="add")
    return SyncReport(**result.to_dict())
