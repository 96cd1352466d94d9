"""
Addon Collection Sync
=====================

Keeps an account's Stremio addon collection a superset of the addons
assigned to it in the panel. Addons the account installed on its own are
never touched.

Every operation is a read-modify-write of the whole remote collection
(Stremio has no per-item endpoint). Writes for one auth key are serialized
with an in-process lock so two syncs for the same account cannot overwrite
each other's changes.

Single-item operations (add_one / remove_one) never raise on Stremio
failures; they return an ItemOutcome. Batch operations run items one by
one in input order and collect failures into a BatchReport.
"""

import asyncio
import weakref
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from fastapi import Depends

from app.core.exceptions import NotSyncedError, RemoteServiceError
from app.core.logging_config import logger
from app.modules.stremio.client import AddonDescriptor, StremioClient, get_stremio_client


@dataclass
class ItemOutcome:
    transport_url: str
    success: bool
    changed: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transport_url": self.transport_url,
            "success": self.success,
            "changed": self.changed,
            "error": self.error,
        }


@dataclass
class SyncManyResult:
    success: bool
    added_count: int = 0
    message: str = ""
    error: Optional[RemoteServiceError] = None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "added_count": self.added_count,
            "message": self.message,
        }


@dataclass
class SyncFailure:
    identity: str
    message: str
    username: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"identity": self.identity, "username": self.username, "message": self.message}


@dataclass
class BatchReport:
    total: int = 0
    successful: int = 0
    failed: int = 0
    errors: List[SyncFailure] = field(default_factory=list)

    def record_success(self) -> None:
        self.total += 1
        self.successful += 1

    def record_failure(self, identity: str, message: str, username: Optional[str] = None) -> None:
        self.total += 1
        self.failed += 1
        self.errors.append(SyncFailure(identity=identity, message=message, username=username))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "errors": [e.to_dict() for e in self.errors],
        }


class AccountLocks:
    """One asyncio.Lock per auth key, dropped once nobody holds a reference."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, auth_key: str) -> asyncio.Lock:
        lock = self._locks.get(auth_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[auth_key] = lock
        return lock


def _unique(urls: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for url in urls:
        if url and url not in seen:
            seen.add(url)
            ordered.append(url)
    return ordered


class AddonSyncService:
    """Reconciles panel addon assignments with Stremio addon collections"""

    def __init__(self, client: StremioClient, locks: Optional[AccountLocks] = None):
        self.client = client
        self.locks = locks or _default_locks

    async def add_one(self, auth_key: str, transport_url: str) -> ItemOutcome:
        """Install one addon unless the collection already has it."""
        try:
            async with self.locks.get(auth_key):
                collection = await self.client.get_addon_collection(auth_key)
                if any(d.transport_url == transport_url for d in collection):
                    return ItemOutcome(transport_url, success=True, changed=False)

                collection.append(AddonDescriptor(transport_url=transport_url, transport_name="http"))
                await self.client.set_addon_collection(auth_key, collection)
                return ItemOutcome(transport_url, success=True, changed=True)
        except RemoteServiceError as e:
            return ItemOutcome(transport_url, success=False, error=e.message)

    async def remove_one(self, auth_key: str, transport_url: str) -> ItemOutcome:
        """Uninstall one addon; absent addons are a no-op."""
        try:
            async with self.locks.get(auth_key):
                collection = await self.client.get_addon_collection(auth_key)
                remaining = [d for d in collection if d.transport_url != transport_url]
                if len(remaining) == len(collection):
                    return ItemOutcome(transport_url, success=True, changed=False)

                await self.client.set_addon_collection(auth_key, remaining)
                return ItemOutcome(transport_url, success=True, changed=True)
        except RemoteServiceError as e:
            return ItemOutcome(transport_url, success=False, error=e.message)

    async def sync_many(self, auth_key: str, transport_urls: Sequence[str]) -> SyncManyResult:
        """Install every missing addon with a single collection write."""
        wanted = _unique(transport_urls)
        try:
            async with self.locks.get(auth_key):
                collection = await self.client.get_addon_collection(auth_key)
                existing = {d.transport_url for d in collection}
                missing = [url for url in wanted if url not in existing]

                if not missing:
                    return SyncManyResult(success=True, added_count=0, message="No new addons to sync")

                collection.extend(AddonDescriptor(transport_url=url, transport_name="http") for url in missing)
                await self.client.set_addon_collection(auth_key, collection)
        except RemoteServiceError as e:
            logger.warning(f"[AddonSync] sync_many failed: {e.message}")
            return SyncManyResult(success=False, message=e.message, error=e)

        return SyncManyResult(
            success=True,
            added_count=len(missing),
            message=f"Synced {len(missing)} addon{'s' if len(missing) != 1 else ''}",
        )

    async def sync_accounts(self, accounts: Sequence[Any], transport_url: str, action: str = "add") -> BatchReport:
        """Apply one addon change to many accounts, isolating failures.

        ``accounts`` are User rows; accounts without a Stremio link are
        reported as failures without any remote call.
        """
        if action not in ("add", "remove"):
            raise ValueError(f"Unknown sync action: {action}")

        report = BatchReport()
        for account in accounts:
            identity = str(account.id)
            if not (account.stremio_synced and account.stremio_auth_key):
                message = NotSyncedError(account.username).message
                report.record_failure(identity, message, username=account.username)
                logger.log_sync_event(action, account.username, False, transport_url, reason=message)
                continue

            if action == "add":
                outcome = await self.add_one(account.stremio_auth_key, transport_url)
            else:
                outcome = await self.remove_one(account.stremio_auth_key, transport_url)

            if outcome.success:
                report.record_success()
            else:
                report.record_failure(identity, outcome.error or "Unknown error", username=account.username)
            logger.log_sync_event(action, account.username, outcome.success, transport_url, reason=outcome.error)

        return report

    async def sync_each(self, auth_key: str, transport_urls: Sequence[str]) -> BatchReport:
        """Install addons one write at a time, reporting per addon."""
        report = BatchReport()
        for url in _unique(transport_urls):
            outcome = await self.add_one(auth_key, url)
            if outcome.success:
                report.record_success()
            else:
                report.record_failure(url, outcome.error or "Unknown error")
        return report


_default_locks = AccountLocks()


def get_addon_sync_service(client: StremioClient = Depends(get_stremio_client)) -> AddonSyncService:
    """FastAPI dependency wired to the shared Stremio client"""
    return AddonSyncService(client)
