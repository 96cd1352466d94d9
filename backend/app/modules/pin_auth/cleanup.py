"""
PIN Session Cleanup - periodic purge of expired and used PIN sessions.

Expiry is already enforced on every read; this only keeps the table small.
"""

import asyncio
from datetime import timedelta
from typing import Optional

from app.core.config import settings
from app.core.database import get_session_local
from app.core.logging_config import logger
from app.core.types import utcnow
from app.modules.pin_auth.service import PinAuthService, pin_auth_service


class PinCleanupService:
    """Background task deleting stale PIN sessions every few minutes"""

    def __init__(
        self,
        service: PinAuthService = pin_auth_service,
        interval_minutes: Optional[int] = None,
    ):
        self.service = service
        self.interval = timedelta(minutes=interval_minutes or settings.PIN_CLEANUP_INTERVAL_MINUTES)
        self.running = False
        self._task: Optional[asyncio.Task] = None
        self.stats = {"runs": 0, "total_deleted": 0, "last_cleanup": None}

    async def start(self):
        if self.running:
            logger.warning("[PinCleanup] Service already running")
            return

        self.running = True
        self._task = asyncio.create_task(self._cleanup_loop())
        logger.info(f"[PinCleanup] Started - Interval: {self.interval}")

    async def stop(self):
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("[PinCleanup] Stopped")

    async def run_once(self) -> int:
        async with get_session_local()() as db:
            deleted = await self.service.cleanup(db)
        self.stats["runs"] += 1
        self.stats["total_deleted"] += deleted
        self.stats["last_cleanup"] = utcnow().isoformat()
        return deleted

    async def _cleanup_loop(self):
        while self.running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"[PinCleanup] Error in cleanup loop: {e}", exc_info=True)

            await asyncio.sleep(self.interval.total_seconds())


# Singleton instance
pin_cleanup_service = PinCleanupService()
