"""Create (or reset) an admin account

Usage: python create_admin.py <username> <email> <password>
"""
import asyncio
import sys
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import close_db, get_session_local, init_db
from app.core.exceptions import ConflictError
from app.core.security import get_password_hash
from app.models.user import User, UserRole


async def _find(db: AsyncSession, column, value: str) -> Optional[User]:
    result = await db.execute(select(User).where(column == value))
    return result.scalar_one_or_none()


async def upsert_admin(db: AsyncSession, username: str, email: str, password: str) -> bool:
    """Promote the account matching username/email, or create one. Returns True when created."""
    email = email.lower()
    by_username = await _find(db, User.username, username)
    by_email = await _find(db, User.email, email)

    if by_username and by_email and by_username.id != by_email.id:
        raise ConflictError(
            f"Username {username} and email {email} belong to different accounts",
            field="email",
        )

    existing = by_username or by_email
    if existing:
        existing.hashed_password = get_password_hash(password)
        existing.role = UserRole.ADMIN
        existing.is_active = True
        existing.expires_at = None
        await db.commit()
        print(f"Updated existing user {existing.username} to admin")
        return False

    db.add(User(
        username=username,
        email=email,
        hashed_password=get_password_hash(password),
        role=UserRole.ADMIN,
        is_active=True,
    ))
    await db.commit()
    print(f"Created admin user: {username}")
    return True


async def create_admin(username: str, email: str, password: str) -> int:
    await init_db()

    try:
        async with get_session_local()() as db:
            await upsert_admin(db, username, email, password)
    except ConflictError as e:
        print(f"Error: {e.message}")
        return 1
    finally:
        await close_db()

    print("\nLogin credentials:")
    print(f"Username: {username}")
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 4:
        print(__doc__)
        sys.exit(1)
    sys.exit(asyncio.run(create_admin(*sys.argv[1:4])))
