"""
Users Management API

Admins manage every account, resellers only the accounts they created.

Addon assignment changes are applied locally first; the Stremio collection
of a linked account is then updated best-effort and the outcome returned
as ``remote_sync``. ``/sync-addons`` pushes every assigned addon at once.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Literal, Optional

from app.core.database import get_db
from app.core.exceptions import NotFoundError, NotSyncedError, RemoteRejectedError, ValidationError
from app.models.user import User, UserRole
from app.modules.auth.dependencies import get_current_user, get_current_manager
from app.modules.stremio.client import StremioClient, get_stremio_client
from app.schemas.addon import RemoteSyncOutcome, SyncReport
from app.schemas.user import (
    AddonAssignmentResponse,
    AssignAddonRequest,
    StremioStatusResponse,
    SyncAddonsResponse,
    UserCreate,
    UserDetailResponse,
    UserListResponse,
    UserUpdate,
)
from app.schemas.auth import UserResponse
from app.services.account_service import account_service
from app.services.addon_service import addon_service
from app.services.addon_sync import AddonSyncService, ItemOutcome, get_addon_sync_service

router = APIRouter()


def _remote_outcome(outcome: Optional[ItemOutcome]) -> RemoteSyncOutcome:
    if outcome is None:
        return RemoteSyncOutcome(attempted=False, error="User is not synced with Stremio")
    return RemoteSyncOutcome(
        attempted=True,
        success=outcome.success,
        changed=outcome.changed,
        error=outcome.error,
    )


# ==================== Endpoints ====================

@router.get("", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    search: Optional[str] = Query(None, description="Search by username or email"),
    role: Optional[UserRole] = Query(None, description="Filter by role"),
    reseller_id: Optional[str] = Query(None, description="Filter by owning reseller (admins only)"),
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db)
):
    """List accounts visible to the caller; resellers only see their own users"""
    return await account_service.list_accounts(
        db,
        current_user,
        page=page,
        page_size=page_size,
        search=search,
        role=role,
        reseller_id=reseller_id,
    )


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    data: UserCreate,
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db)
):
    """Create an account. Resellers spend one credit per account."""
    return await account_service.create_account(db, data, current_user)


@router.post("/assign-addon", response_model=AddonAssignmentResponse)
async def assign_addon(
    data: AssignAddonRequest,
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db),
    sync: AddonSyncService = Depends(get_addon_sync_service)
):
    """Assign an addon to a user and install it in their Stremio collection"""
    user = await account_service.get_user(db, data.user_id, with_addons=True)
    account_service.ensure_access(current_user, user)

    addon = await addon_service.get_addon(db, data.addon_id)
    addon_service.ensure_can_use(current_user, addon)

    await account_service.assign_addon(db, user, addon)

    outcome = None
    if user.has_stremio_link:
        outcome = await sync.add_one(user.stremio_auth_key, addon.transport_url)

    return AddonAssignmentResponse(
        message="Addon assigned successfully",
        remote_sync=_remote_outcome(outcome),
    )


@router.get("/{user_id}", response_model=UserDetailResponse)
async def get_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get one account with its assigned addons"""
    user = await account_service.get_user(db, user_id, with_addons=True)
    if user.id != current_user.id:
        account_service.ensure_access(current_user, user)
    return user


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    data: UserUpdate,
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db)
):
    """Update an account. Only admins can change roles."""
    user = await account_service.get_user(db, user_id)
    account_service.ensure_access(current_user, user)
    return await account_service.update_account(db, user, data, current_user)


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db)
):
    """Delete an account and its addon assignments"""
    if user_id == current_user.id:
        raise ValidationError("Cannot delete your own account")

    user = await account_service.get_user(db, user_id)
    account_service.ensure_access(current_user, user)
    await account_service.delete_account(db, user)

    return {"success": True, "message": "User deleted successfully"}


@router.delete("/{user_id}/addons/{addon_id}", response_model=AddonAssignmentResponse)
async def remove_addon(
    user_id: str,
    addon_id: str,
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db),
    sync: AddonSyncService = Depends(get_addon_sync_service)
):
    """Unassign an addon and remove it from the user's Stremio collection"""
    user = await account_service.get_user(db, user_id, with_addons=True)
    account_service.ensure_access(current_user, user)
    addon = await addon_service.get_addon(db, addon_id)

    if not await account_service.unassign_addon(db, user, addon):
        raise NotFoundError("Addon assignment", addon_id)

    outcome = None
    if user.has_stremio_link:
        outcome = await sync.remove_one(user.stremio_auth_key, addon.transport_url)

    return AddonAssignmentResponse(
        message="Addon removed successfully",
        remote_sync=_remote_outcome(outcome),
    )


@router.post("/{user_id}/sync-addons", response_model=SyncAddonsResponse, response_model_exclude_none=True)
async def sync_user_addons(
    user_id: str,
    strategy: Literal["batch", "each"] = Query("batch", description="One collection write, or one per addon"),
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db),
    sync: AddonSyncService = Depends(get_addon_sync_service)
):
    """
    Install every active assigned addon in the user's Stremio collection.

    - batch: single write; a Stremio failure is returned as the matching HTTP error
    - each: one write per addon; failures are listed in ``report``
    """
    user = await account_service.get_user(db, user_id, with_addons=True)
    account_service.ensure_access(current_user, user)

    if not user.has_stremio_link:
        raise NotSyncedError(user.username)

    urls = [addon.transport_url for addon in user.addons if addon.is_active]

    if strategy == "each":
        report = await sync.sync_each(user.stremio_auth_key, urls)
        return SyncAddonsResponse(
            success=report.failed == 0,
            message=f"Synced {report.successful} of {report.total} addons",
            added_count=report.successful,
            report=SyncReport(**report.to_dict()),
        )

    result = await sync.sync_many(user.stremio_auth_key, urls)
    result.raise_for_error()
    return SyncAddonsResponse(**result.to_dict())


@router.get("/{user_id}/stremio-status", response_model=StremioStatusResponse)
async def stremio_status(
    user_id: str,
    current_user: User = Depends(get_current_manager),
    db: AsyncSession = Depends(get_db),
    client: StremioClient = Depends(get_stremio_client)
):
    """Check that the stored Stremio auth key still works"""
    user = await account_service.get_user(db, user_id)
    account_service.ensure_access(current_user, user)

    if not user.has_stremio_link:
        return StremioStatusResponse(synced=False, valid=False, message="User is not synced with Stremio")

    try:
        identity = await client.get_user(user.stremio_auth_key)
    except RemoteRejectedError as e:
        return StremioStatusResponse(
            synced=True,
            valid=False,
            stremio_user_id=user.stremio_user_id,
            message=e.message,
        )

    return StremioStatusResponse(
        synced=True,
        valid=True,
        stremio_user_id=identity.id or user.stremio_user_id,
        email=identity.email,
    )
