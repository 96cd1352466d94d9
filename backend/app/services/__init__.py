from app.services.account_service import AccountService, account_service
from app.services.addon_service import AddonService, addon_service, OFFICIAL_ADDONS
from app.services.addon_sync import AddonSyncService, BatchReport, get_addon_sync_service

__all__ = [
    # Accounts
    "AccountService",
    "account_service",
    # Addon registry
    "AddonService",
    "addon_service",
    "OFFICIAL_ADDONS",
    # Stremio reconciliation
    "AddonSyncService",
    "BatchReport",
    "get_addon_sync_service",
]
