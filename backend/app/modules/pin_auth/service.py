"""
PIN Login Service
=================

Lets a device without a keyboard (TV, set-top box) log in to the panel:

1. The device calls ``issue`` and shows the 6-digit PIN / QR code.
2. The person enters the PIN somewhere already signed in to Stremio, which
   calls ``verify`` with the Stremio auth key. The auth key is bound to a
   panel account (created if needed) and the session becomes ``verified``.
3. The device polls ``check_status`` (or listens on the WebSocket) and
   exchanges the verified session for an access token exactly once.

Lifecycle: pending -> verified -> used. Any session read after its expiry
is marked ``expired``.
"""

import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from app.core.config import settings
from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidOrExpiredPinError,
    InvalidSessionError,
    PinExpiredError,
)
from app.core.logging_config import logger
from app.core.security import create_user_token
from app.core.types import generate_uuid, utcnow
from app.models.pin_session import PinSession, PinStatus
from app.modules.pin_auth.notifier import PinSessionNotifier, pin_notifier
from app.modules.stremio.client import RemoteIdentity, StremioClient
from app.services.account_service import AccountService, account_service
from app.utils.qr import generate_pin_qr


@dataclass
class PinIssue:
    pin: str
    session_id: str
    expires_at: Any
    qr_code: str


@dataclass
class PinVerification:
    session_id: str
    user_id: str
    created_account: bool = False


@dataclass
class PinStatusResult:
    status: PinStatus
    token: Optional[str] = None
    user: Optional[Dict[str, Any]] = None


def generate_pin() -> str:
    """Six digits, never starting with 0"""
    return str(100000 + secrets.randbelow(900000))


class PinAuthService:
    """PIN session coordinator"""

    def __init__(
        self,
        accounts: AccountService = account_service,
        notifier: PinSessionNotifier = pin_notifier,
        qr_renderer: Callable[[str, str, Any], str] = generate_pin_qr,
        pin_factory: Callable[[], str] = generate_pin,
    ):
        self.accounts = accounts
        self.notifier = notifier
        self.qr_renderer = qr_renderer
        self.pin_factory = pin_factory

    # ==================== ISSUE ====================

    async def issue(self, db: AsyncSession, ttl_minutes: Optional[int] = None) -> PinIssue:
        ttl = ttl_minutes or settings.PIN_DEFAULT_TTL_MINUTES
        ttl = max(1, min(ttl, settings.PIN_MAX_TTL_MINUTES))

        for attempt in range(1, settings.PIN_GENERATION_ATTEMPTS + 1):
            pin = self.pin_factory()

            holder = (await db.execute(select(PinSession).where(PinSession.pin == pin))).scalar_one_or_none()
            if holder is not None:
                if holder.status in (PinStatus.PENDING, PinStatus.VERIFIED) and not holder.is_expired:
                    logger.debug(f"[PinAuth] PIN collision on attempt {attempt}")
                    continue
                # Stale holder: free the value for reuse
                await db.delete(holder)
                await db.flush()

            session = PinSession(
                pin=pin,
                session_id=generate_uuid(),
                status=PinStatus.PENDING,
                expires_at=utcnow() + timedelta(minutes=ttl),
            )
            db.add(session)
            try:
                await db.commit()
            except IntegrityError:
                # Another request took the same PIN between the check and the insert
                await db.rollback()
                logger.warning(f"[PinAuth] PIN unique constraint hit on attempt {attempt}")
                continue

            logger.info(f"[PinAuth] Issued PIN session {session.session_id} (ttl {ttl}m)")
            return PinIssue(
                pin=session.pin,
                session_id=session.session_id,
                expires_at=session.expires_at,
                qr_code=self.qr_renderer(session.pin, session.session_id, session.expires_at),
            )

        raise ConflictError("Could not allocate a unique PIN, try again", field="pin")

    # ==================== VERIFY ====================

    async def verify(
        self,
        db: AsyncSession,
        pin: str,
        auth_key: str,
        device_info: Optional[Dict[str, Any]] = None,
        identity: Optional[RemoteIdentity] = None,
        client: Optional[StremioClient] = None,
    ) -> PinVerification:
        """Bind a Stremio auth key to the pending session holding ``pin``"""
        result = await db.execute(
            select(PinSession).where(PinSession.pin == pin, PinSession.status == PinStatus.PENDING)
        )
        session = result.scalar_one_or_none()
        if session is None:
            raise InvalidOrExpiredPinError()

        if session.is_expired:
            session.status = PinStatus.EXPIRED
            await db.commit()
            raise PinExpiredError()

        if identity is None and client is not None and settings.PIN_VERIFY_REMOTE_CREDENTIAL:
            identity = await client.get_user(auth_key)

        user, created = await self.accounts.resolve_or_create_for_remote_credential(db, auth_key, identity)
        try:
            self.accounts.ensure_can_sign_in(user)
        except ForbiddenError as e:
            logger.log_auth_event("pin_verify", False, username=user.username, reason=e.message)
            await db.rollback()
            raise

        # Only one verify may win a pending session
        flipped = await db.execute(
            update(PinSession)
            .where(PinSession.id == session.id, PinSession.status == PinStatus.PENDING)
            .values(status=PinStatus.VERIFIED, user_id=user.id, device_info=device_info)
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount != 1:
            await db.rollback()
            raise InvalidOrExpiredPinError()

        await db.commit()
        set_committed_value(session, "status", PinStatus.VERIFIED)
        set_committed_value(session, "user_id", user.id)
        set_committed_value(session, "device_info", device_info)

        logger.log_auth_event("pin_verify", True, username=user.username, session_id=session.session_id)
        self.notifier.publish(
            session.session_id,
            {"type": "pin-verified", "sessionId": session.session_id, "status": PinStatus.VERIFIED.value},
        )
        return PinVerification(session_id=session.session_id, user_id=str(user.id), created_account=created)

    # ==================== STATUS ====================

    async def _load(self, db: AsyncSession, session_id: str) -> Optional[PinSession]:
        result = await db.execute(
            select(PinSession)
            .options(selectinload(PinSession.user))
            .where(PinSession.session_id == session_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def peek_status(self, db: AsyncSession, session_id: str) -> Optional[PinStatus]:
        """Current status without side effects; None for an unknown session"""
        session = await self._load(db, session_id)
        if session is None:
            return None
        if session.status != PinStatus.EXPIRED and session.is_expired:
            return PinStatus.EXPIRED
        return session.status

    async def check_status(self, db: AsyncSession, session_id: str) -> PinStatusResult:
        """Report the session status; a verified session is exchanged for a token once"""
        session = await self._load(db, session_id)
        if session is None:
            raise InvalidSessionError(session_id)

        if session.status != PinStatus.EXPIRED and session.is_expired:
            session.status = PinStatus.EXPIRED
            await db.commit()

        if session.status != PinStatus.VERIFIED:
            return PinStatusResult(status=session.status)

        # The bound account is checked before the token is spent
        user = session.user
        if user is None:
            session.status = PinStatus.EXPIRED
            await db.commit()
            logger.warning(f"[PinAuth] Session {session_id} lost its account")
            return PinStatusResult(status=PinStatus.EXPIRED)
        try:
            self.accounts.ensure_can_sign_in(user)
        except ForbiddenError as e:
            session.status = PinStatus.EXPIRED
            await db.commit()
            logger.log_auth_event("pin_login", False, username=user.username, reason=e.message)
            raise

        flipped = await db.execute(
            update(PinSession)
            .where(PinSession.id == session.id, PinSession.status == PinStatus.VERIFIED)
            .values(status=PinStatus.USED)
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount != 1:
            # Another poll already took the token
            await db.rollback()
            return PinStatusResult(status=PinStatus.USED)
        await db.commit()
        set_committed_value(session, "status", PinStatus.USED)

        logger.log_auth_event("pin_login", True, username=user.username, session_id=session_id)
        return PinStatusResult(
            status=PinStatus.VERIFIED,
            token=create_user_token(user),
            user={"id": str(user.id), "username": user.username, "email": user.email, "role": user.role},
        )

    # ==================== ADMIN ====================

    async def stats(self, db: AsyncSession, recent_limit: int = 10) -> Dict[str, Any]:
        rows = await db.execute(select(PinSession.status, func.count(PinSession.id)).group_by(PinSession.status))
        counts = {status: 0 for status in PinStatus}
        for status, count in rows.all():
            counts[status] = count

        recent = await db.execute(select(PinSession).order_by(PinSession.created_at.desc()).limit(recent_limit))
        recent_sessions: List[PinSession] = list(recent.scalars().all())

        return {
            "total": sum(counts.values()),
            "pending": counts[PinStatus.PENDING],
            "verified": counts[PinStatus.VERIFIED],
            "used": counts[PinStatus.USED],
            "expired": counts[PinStatus.EXPIRED],
            "recent": [
                {
                    "pin": s.pin,
                    "session_id": s.session_id,
                    "status": s.status,
                    "user_id": s.user_id,
                    "expires_at": s.expires_at,
                    "created_at": s.created_at,
                }
                for s in recent_sessions
            ],
        }

    async def cleanup(self, db: AsyncSession) -> int:
        """Delete expired and used sessions; returns the number removed"""
        result = await db.execute(
            delete(PinSession)
            .where(
                or_(
                    PinSession.status.in_([PinStatus.EXPIRED, PinStatus.USED]),
                    PinSession.expires_at < utcnow(),
                )
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        deleted = result.rowcount or 0
        if deleted:
            logger.info(f"[PinAuth] Cleaned up {deleted} PIN session(s)")
        return deleted


# Singleton instance
pin_auth_service = PinAuthService()
