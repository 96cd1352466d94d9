"""
Account Service - Business logic for panel accounts

Handles:
- Account creation by admins/resellers (reseller credits)
- Ownership checks (resellers only manage their own users)
- Addon assignment bookkeeping
- Linking accounts to Stremio, including accounts created on the fly
  from a Stremio auth key (PIN login)
"""

import math
import secrets
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InsufficientCreditsError,
    NotFoundError,
)
from app.core.logging_config import logger
from app.core.security import generate_random_password, get_password_hash
from app.core.types import utcnow
from app.models.addon import Addon, user_addons
from app.models.user import User, UserRole
from app.modules.stremio.client import RemoteIdentity, RemoteSession
from app.schemas.auth import UserRegister
from app.schemas.reseller import ResellerCreate, ResellerUpdate
from app.schemas.user import UserCreate, UserUpdate


class AccountService:
    """Service for managing panel accounts"""

    # ==================== LOOKUPS ====================

    async def get_user(self, db: AsyncSession, user_id: str, with_addons: bool = False) -> User:
        query = select(User).where(User.id == user_id)
        if with_addons:
            query = query.options(selectinload(User.addons))
        result = await db.execute(query)
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundError("User", user_id)
        return user

    async def get_reseller(self, db: AsyncSession, reseller_id: str) -> User:
        result = await db.execute(
            select(User).where(User.id == reseller_id, User.role == UserRole.RESELLER)
        )
        reseller = result.scalar_one_or_none()
        if not reseller:
            raise NotFoundError("Reseller", reseller_id)
        return reseller

    def ensure_access(self, actor: User, target: User) -> None:
        """Admins reach every account, resellers only the ones they own"""
        if actor.role == UserRole.ADMIN:
            return
        if actor.role == UserRole.RESELLER and target.reseller_id == actor.id:
            return
        raise ForbiddenError("Access denied")

    def ensure_can_sign_in(self, user: User) -> None:
        """Token-issuing paths other than password login apply the same account checks"""
        if not user.is_active:
            raise ForbiddenError("Account is inactive")
        if user.is_expired:
            raise ForbiddenError("Account has expired")

    async def list_accounts(
        self,
        db: AsyncSession,
        actor: User,
        page: int = 1,
        page_size: int = 20,
        search: Optional[str] = None,
        role: Optional[UserRole] = None,
        reseller_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        query = select(User)

        if actor.role == UserRole.RESELLER:
            query = query.where(User.reseller_id == actor.id)
        elif reseller_id:
            query = query.where(User.reseller_id == reseller_id)

        if role:
            query = query.where(User.role == role)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(User.username.ilike(pattern), User.email.ilike(pattern)))

        total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

        page = max(1, page)
        page_size = max(1, min(100, page_size))
        result = await db.execute(
            query.order_by(User.created_at.desc()).offset((page - 1) * page_size).limit(page_size)
        )

        return {
            "items": result.scalars().all(),
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": math.ceil(total / page_size) if total > 0 else 1,
        }

    # ==================== CREATE / UPDATE / DELETE ====================

    async def _ensure_unique(
        self,
        db: AsyncSession,
        username: Optional[str] = None,
        email: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> None:
        if username:
            query = select(User.id).where(User.username == username)
            if exclude_id:
                query = query.where(User.id != exclude_id)
            if (await db.execute(query)).first():
                raise ConflictError("Username already exists", field="username")
        if email:
            query = select(User.id).where(User.email == email.lower())
            if exclude_id:
                query = query.where(User.id != exclude_id)
            if (await db.execute(query)).first():
                raise ConflictError("Email already exists", field="email")

    async def register(self, db: AsyncSession, data: UserRegister) -> User:
        """Public self-registration; always a plain user"""
        await self._ensure_unique(db, data.username, data.email)
        user = User(
            username=data.username,
            email=data.email,
            hashed_password=get_password_hash(data.password),
            role=UserRole.USER,
        )
        db.add(user)
        await db.commit()
        return user

    async def create_account(self, db: AsyncSession, data: UserCreate, actor: User) -> User:
        """Account created from the panel.

        A reseller always creates a plain user it owns and spends one credit.
        Only admins choose the role.
        """
        await self._ensure_unique(db, data.username, data.email)

        user = User(
            username=data.username,
            email=data.email,
            hashed_password=get_password_hash(data.password),
            role=UserRole.USER,
            is_active=data.is_active,
            expires_at=data.expires_at,
        )

        if actor.role == UserRole.ADMIN:
            user.role = data.role or UserRole.USER
            if user.role == UserRole.RESELLER:
                user.credits = data.credits
        else:
            # Conditional decrement so two concurrent creates cannot overspend
            result = await db.execute(
                update(User)
                .where(User.id == actor.id, User.credits > 0)
                .values(credits=User.credits - 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InsufficientCreditsError(actor.credits)
            set_committed_value(actor, "credits", max(0, (actor.credits or 0) - 1))
            user.reseller = actor

        db.add(user)
        await db.commit()

        logger.info(f"[Accounts] {actor.username} created {user.role.value} {user.username}")
        return user

    async def update_account(self, db: AsyncSession, user: User, data: UserUpdate, actor: User) -> User:
        changes = data.model_dump(exclude_unset=True)

        if "username" in changes or "email" in changes:
            await self._ensure_unique(
                db,
                changes.get("username") if changes.get("username") != user.username else None,
                changes.get("email") if changes.get("email") != user.email else None,
                exclude_id=user.id,
            )

        if changes.get("username"):
            user.username = changes["username"]
        if changes.get("email"):
            user.email = changes["email"]
        if changes.get("password"):
            user.hashed_password = get_password_hash(changes["password"])
        # Role changes are silently ignored for non-admins
        if changes.get("role") and actor.role == UserRole.ADMIN:
            user.role = changes["role"]
        if changes.get("is_active") is not None:
            user.is_active = changes["is_active"]
        if "expires_at" in changes:
            user.expires_at = changes["expires_at"]

        await db.commit()
        return user

    async def delete_account(self, db: AsyncSession, user: User) -> None:
        """Delete an account and every reference to it"""
        await db.execute(delete(user_addons).where(user_addons.c.user_id == user.id))
        db.expire(user, ["addons"])
        await db.execute(update(User).where(User.reseller_id == user.id).values(reseller_id=None))
        await db.execute(update(Addon).where(Addon.creator_id == user.id).values(creator_id=None))
        await db.delete(user)
        await db.commit()
        logger.info(f"[Accounts] Deleted {user.role.value} {user.username}")

    # ==================== RESELLERS ====================

    async def create_reseller(self, db: AsyncSession, data: ResellerCreate) -> User:
        await self._ensure_unique(db, data.username, data.email)
        reseller = User(
            username=data.username,
            email=data.email,
            hashed_password=get_password_hash(data.password),
            role=UserRole.RESELLER,
            credits=data.credits,
            expires_at=data.expires_at,
        )
        db.add(reseller)
        await db.commit()
        return reseller

    async def update_reseller(self, db: AsyncSession, reseller: User, data: ResellerUpdate) -> User:
        changes = data.model_dump(exclude_unset=True)
        await self._ensure_unique(
            db,
            changes.get("username") if changes.get("username") != reseller.username else None,
            changes.get("email") if changes.get("email") != reseller.email else None,
            exclude_id=reseller.id,
        )
        for field in ("username", "email", "credits", "is_active"):
            if changes.get(field) is not None:
                setattr(reseller, field, changes[field])
        if changes.get("password"):
            reseller.hashed_password = get_password_hash(changes["password"])
        if "expires_at" in changes:
            reseller.expires_at = changes["expires_at"]
        await db.commit()
        return reseller

    async def add_credits(self, db: AsyncSession, reseller: User, amount: int) -> User:
        await db.execute(
            update(User)
            .where(User.id == reseller.id)
            .values(credits=User.credits + amount)
            .execution_options(synchronize_session=False)
        )
        set_committed_value(reseller, "credits", (reseller.credits or 0) + amount)
        await db.commit()
        logger.info(f"[Accounts] Added {amount} credits to {reseller.username}")
        return reseller

    async def reseller_stats(self, db: AsyncSession, reseller: User) -> Dict[str, int]:
        now = utcnow()
        owned = User.reseller_id == reseller.id

        async def count(*conditions) -> int:
            result = await db.execute(select(func.count(User.id)).where(owned, *conditions))
            return result.scalar() or 0

        return {
            "total_users": await count(),
            "active_users": await count(User.is_active.is_(True)),
            "expired_users": await count(User.expires_at.is_not(None), User.expires_at < now),
            "synced_users": await count(User.stremio_synced.is_(True)),
            "new_users": await count(User.created_at >= now - timedelta(days=30)),
            "credits": reseller.credits or 0,
        }

    # ==================== ADDON ASSIGNMENT ====================

    async def assign_addon(self, db: AsyncSession, user: User, addon: Addon) -> None:
        """Add the addon to the user's set. ``user.addons`` must be loaded."""
        if any(a.id == addon.id for a in user.addons):
            raise ConflictError("Addon already assigned to user", field="addon_id")
        user.addons.append(addon)
        await db.commit()

    async def unassign_addon(self, db: AsyncSession, user: User, addon: Addon) -> bool:
        """Remove the addon from the user's set; returns False if it was not there"""
        for assigned in list(user.addons):
            if assigned.id == addon.id:
                user.addons.remove(assigned)
                await db.commit()
                return True
        return False

    # ==================== STREMIO LINK ====================

    async def link_remote_account(self, db: AsyncSession, user: User, session: RemoteSession) -> User:
        user.stremio_auth_key = session.auth_key
        user.stremio_user_id = session.user.id
        user.stremio_synced = True
        await db.commit()
        logger.log_sync_event("link", user.username, True)
        return user

    async def resolve_or_create_for_remote_credential(
        self,
        db: AsyncSession,
        auth_key: str,
        identity: Optional[RemoteIdentity] = None,
    ) -> Tuple[User, bool]:
        """Find the account holding this Stremio auth key, creating one if none does.

        New accounts get a generated ``stremio_<hex>`` username, a placeholder
        email and a random password; they can only log in through Stremio
        until an admin sets real credentials. Returns ``(user, created)``.
        Does not commit.
        """
        result = await db.execute(select(User).where(User.stremio_auth_key == auth_key).limit(1))
        user = result.scalar_one_or_none()
        if user:
            if identity and identity.id and user.stremio_user_id != identity.id:
                user.stremio_user_id = identity.id
            return user, False

        username = f"stremio_{secrets.token_hex(4)}"
        while (await db.execute(select(User.id).where(User.username == username))).first():
            username = f"stremio_{secrets.token_hex(4)}"

        user = User(
            username=username,
            email=f"{username}@stremio.user",
            hashed_password=get_password_hash(generate_random_password()),
            role=UserRole.USER,
            stremio_auth_key=auth_key,
            stremio_user_id=identity.id if identity else None,
            stremio_synced=True,
        )
        db.add(user)
        await db.flush()
        logger.info(f"[Accounts] Created {username} from Stremio credential")
        return user, True

    async def synced_members(self, db: AsyncSession, addon_id: str) -> List[User]:
        """Accounts the addon is assigned to that can be synced, oldest assignment first"""
        result = await db.execute(
            select(User)
            .join(user_addons, user_addons.c.user_id == User.id)
            .where(
                user_addons.c.addon_id == addon_id,
                User.stremio_synced.is_(True),
                User.stremio_auth_key.is_not(None),
            )
            .order_by(user_addons.c.assigned_at, User.username)
        )
        return list(result.scalars().all())


# Singleton instance
account_service = AccountService()
