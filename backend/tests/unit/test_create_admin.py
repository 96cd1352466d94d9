"""
Unit Tests for the admin bootstrap script
"""
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from app.core.exceptions import ConflictError
from app.core.security import verify_password
from app.core.types import utcnow
from app.models.user import User, UserRole
from create_admin import upsert_admin
from tests.factories import create_user


class TestUpsertAdmin:

    @pytest.mark.asyncio
    async def test_creates_admin(self, db_session):
        created = await upsert_admin(db_session, 'root', 'Root@Panel.test', 'admin-pass')

        user = (await db_session.execute(select(User).where(User.username == 'root'))).scalar_one()
        assert created
        assert user.role == UserRole.ADMIN
        assert user.email == 'root@panel.test'
        assert verify_password('admin-pass', user.hashed_password)

    @pytest.mark.asyncio
    async def test_promotes_account_found_by_email(self, db_session):
        user = await create_user(
            db_session, is_active=False, expires_at=utcnow() - timedelta(days=1)
        )

        created = await upsert_admin(db_session, 'someone-else', user.email, 'new-pass')

        await db_session.refresh(user)
        assert not created
        assert user.role == UserRole.ADMIN
        assert user.is_active
        assert user.expires_at is None
        assert verify_password('new-pass', user.hashed_password)

    @pytest.mark.asyncio
    async def test_username_and_email_of_different_accounts(self, db_session):
        first = await create_user(db_session)
        second = await create_user(db_session)

        with pytest.raises(ConflictError):
            await upsert_admin(db_session, first.username, second.email, 'admin-pass')

        admins = await db_session.execute(
            select(func.count(User.id)).where(User.role == UserRole.ADMIN)
        )
        assert admins.scalar() == 0
