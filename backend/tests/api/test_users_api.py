"""
API Tests for account management, addon assignment and per-user sync
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.models.addon import user_addons
from app.models.user import User, UserRole
from app.modules.stremio.client import AddonDescriptor
from tests.factories import assign, create_addon, create_user, fake, headers_for


def new_account(**extra) -> dict:
    return {
        'username': fake.unique.user_name(),
        'email': fake.unique.email(),
        'password': 'securePassword123!',
        **extra,
    }


class TestListUsers:

    @pytest.mark.asyncio
    async def test_admin_sees_everyone(self, client: AsyncClient, db_session, admin_headers, reseller_user):
        await create_user(db_session, reseller=reseller_user)
        await create_user(db_session)

        response = await client.get('/api/v1/users', headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data['total'] == 4
        assert data['page'] == 1
        assert data['total_pages'] == 1

    @pytest.mark.asyncio
    async def test_reseller_sees_only_own_users(self, client: AsyncClient, db_session, reseller_user, reseller_headers):
        own = await create_user(db_session, reseller=reseller_user)
        await create_user(db_session)

        response = await client.get('/api/v1/users', headers=reseller_headers)

        assert response.status_code == 200
        assert [u['id'] for u in response.json()['items']] == [own.id]

    @pytest.mark.asyncio
    async def test_search_and_role_filter(self, client: AsyncClient, db_session, admin_headers):
        target = await create_user(db_session, username='needle-user')
        await create_user(db_session, role=UserRole.RESELLER, username='needle-reseller')

        response = await client.get(
            '/api/v1/users', headers=admin_headers, params={'search': 'needle', 'role': 'user'}
        )

        assert [u['id'] for u in response.json()['items']] == [target.id]

    @pytest.mark.asyncio
    async def test_plain_user_is_forbidden(self, client: AsyncClient, auth_headers):
        response = await client.get('/api/v1/users', headers=auth_headers)

        assert response.status_code == 403


class TestCreateUser:

    @pytest.mark.asyncio
    async def test_admin_chooses_role(self, client: AsyncClient, admin_headers):
        response = await client.post(
            '/api/v1/users', headers=admin_headers, json=new_account(role='reseller', credits=5)
        )

        assert response.status_code == 201
        data = response.json()
        assert data['role'] == 'reseller'
        assert data['credits'] == 5

    @pytest.mark.asyncio
    async def test_reseller_spends_a_credit(self, client: AsyncClient, db_session, reseller_user, reseller_headers):
        response = await client.post(
            '/api/v1/users', headers=reseller_headers, json=new_account(role='admin')
        )

        assert response.status_code == 201
        data = response.json()
        assert data['role'] == 'user'
        assert data['reseller_id'] == reseller_user.id

        await db_session.refresh(reseller_user)
        assert reseller_user.credits == 1

    @pytest.mark.asyncio
    async def test_reseller_without_credits(self, client: AsyncClient, db_session):
        broke = await create_user(db_session, role=UserRole.RESELLER, credits=0)

        response = await client.post('/api/v1/users', headers=headers_for(broke), json=new_account())

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'INSUFFICIENT_CREDITS'
        count = (await db_session.execute(select(User).where(User.reseller_id == broke.id))).all()
        assert count == []

    @pytest.mark.asyncio
    async def test_duplicate_username(self, client: AsyncClient, admin_headers, test_user):
        response = await client.post(
            '/api/v1/users', headers=admin_headers, json=new_account(username=test_user.username)
        )

        assert response.status_code == 409


class TestUserDetail:

    @pytest.mark.asyncio
    async def test_user_can_read_self(self, client: AsyncClient, db_session, test_user, auth_headers):
        addon = await create_addon(db_session)
        await assign(db_session, test_user, addon)

        response = await client.get(f'/api/v1/users/{test_user.id}', headers=auth_headers)

        assert response.status_code == 200
        assert [a['id'] for a in response.json()['addons']] == [addon.id]

    @pytest.mark.asyncio
    async def test_reseller_cannot_read_foreign_user(self, client: AsyncClient, reseller_headers, test_user):
        response = await client.get(f'/api/v1/users/{test_user.id}', headers=reseller_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient, admin_headers):
        response = await client.get('/api/v1/users/00000000-0000-0000-0000-000000000000', headers=admin_headers)

        assert response.status_code == 404
        assert response.json()['error']['code'] == 'USER_NOT_FOUND'


class TestUpdateDelete:

    @pytest.mark.asyncio
    async def test_reseller_cannot_change_role(self, client: AsyncClient, db_session, reseller_user, reseller_headers):
        own = await create_user(db_session, reseller=reseller_user)

        response = await client.put(
            f'/api/v1/users/{own.id}', headers=reseller_headers, json={'role': 'admin', 'is_active': False}
        )

        assert response.status_code == 200
        assert response.json()['role'] == 'user'
        assert response.json()['is_active'] is False

    @pytest.mark.asyncio
    async def test_admin_changes_role(self, client: AsyncClient, admin_headers, test_user):
        response = await client.put(f'/api/v1/users/{test_user.id}', headers=admin_headers, json={'role': 'reseller'})

        assert response.json()['role'] == 'reseller'

    @pytest.mark.asyncio
    async def test_delete_removes_assignments(self, client: AsyncClient, db_session, admin_headers, test_user):
        addon = await create_addon(db_session)
        await assign(db_session, test_user, addon)

        response = await client.delete(f'/api/v1/users/{test_user.id}', headers=admin_headers)

        assert response.status_code == 200
        rows = (await db_session.execute(select(user_addons))).all()
        assert rows == []

    @pytest.mark.asyncio
    async def test_cannot_delete_self(self, client: AsyncClient, admin_user, admin_headers):
        response = await client.delete(f'/api/v1/users/{admin_user.id}', headers=admin_headers)

        assert response.status_code == 400


class TestAddonAssignment:

    @pytest.mark.asyncio
    async def test_assign_installs_on_stremio(self, client: AsyncClient, db_session, admin_headers, synced_user, fake_stremio):
        addon = await create_addon(db_session)

        response = await client.post('/api/v1/users/assign-addon', headers=admin_headers, json={
            'user_id': synced_user.id,
            'addon_id': addon.id,
        })

        assert response.status_code == 200
        assert response.json()['remote_sync'] == {
            'attempted': True, 'success': True, 'changed': True, 'error': None,
        }
        assert fake_stremio.urls(synced_user.stremio_auth_key) == [addon.transport_url]

    @pytest.mark.asyncio
    async def test_assign_twice_conflicts(self, client: AsyncClient, db_session, admin_headers, test_user):
        addon = await create_addon(db_session)
        await assign(db_session, test_user, addon)

        response = await client.post('/api/v1/users/assign-addon', headers=admin_headers, json={
            'user_id': test_user.id,
            'addon_id': addon.id,
        })

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_assign_to_unlinked_user_skips_stremio(self, client: AsyncClient, db_session, admin_headers, test_user, fake_stremio):
        addon = await create_addon(db_session)

        response = await client.post('/api/v1/users/assign-addon', headers=admin_headers, json={
            'user_id': test_user.id,
            'addon_id': addon.id,
        })

        assert response.status_code == 200
        assert response.json()['remote_sync']['attempted'] is False
        assert fake_stremio.calls == []

    @pytest.mark.asyncio
    async def test_assign_keeps_local_change_when_stremio_fails(
        self, client: AsyncClient, db_session, admin_headers, synced_user, fake_stremio
    ):
        addon = await create_addon(db_session)
        fake_stremio.unavailable_keys.add(synced_user.stremio_auth_key)

        response = await client.post('/api/v1/users/assign-addon', headers=admin_headers, json={
            'user_id': synced_user.id,
            'addon_id': addon.id,
        })

        assert response.status_code == 200
        outcome = response.json()['remote_sync']
        assert outcome['attempted'] is True
        assert outcome['success'] is False
        rows = (await db_session.execute(select(user_addons))).all()
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_reseller_cannot_assign_foreign_private_addon(
        self, client: AsyncClient, db_session, reseller_user, reseller_headers, admin_user
    ):
        own = await create_user(db_session, reseller=reseller_user)
        addon = await create_addon(db_session, creator_id=admin_user.id, is_public=False)

        response = await client.post('/api/v1/users/assign-addon', headers=reseller_headers, json={
            'user_id': own.id,
            'addon_id': addon.id,
        })

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_remove_uninstalls_from_stremio(self, client: AsyncClient, db_session, admin_headers, synced_user, fake_stremio):
        addon = await create_addon(db_session)
        other = await create_addon(db_session)
        await assign(db_session, synced_user, addon, other)
        install(fake_stremio, synced_user, addon, other)

        response = await client.delete(
            f'/api/v1/users/{synced_user.id}/addons/{addon.id}', headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()['remote_sync']['changed'] is True
        assert fake_stremio.urls(synced_user.stremio_auth_key) == [other.transport_url]

    @pytest.mark.asyncio
    async def test_remove_unassigned_addon(self, client: AsyncClient, db_session, admin_headers, test_user):
        addon = await create_addon(db_session)

        response = await client.delete(f'/api/v1/users/{test_user.id}/addons/{addon.id}', headers=admin_headers)

        assert response.status_code == 404


def install(fake_stremio, user, *addons) -> None:
    """Put addons straight into the fake Stremio collection"""
    fake_stremio.collections[user.stremio_auth_key].extend(AddonDescriptor(a.transport_url) for a in addons)


class TestSyncAddons:

    @pytest.mark.asyncio
    async def test_not_synced_user(self, client: AsyncClient, admin_headers, test_user):
        response = await client.post(f'/api/v1/users/{test_user.id}/sync-addons', headers=admin_headers)

        assert response.status_code == 400
        assert response.json()['detail'] == 'User is not synced with Stremio'

    @pytest.mark.asyncio
    async def test_batch_adds_missing(self, client: AsyncClient, db_session, admin_headers, synced_user, fake_stremio):
        first = await create_addon(db_session)
        second = await create_addon(db_session)
        inactive = await create_addon(db_session, is_active=False)
        await assign(db_session, synced_user, first, second, inactive)

        response = await client.post(f'/api/v1/users/{synced_user.id}/sync-addons', headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data['success'] is True
        assert data['added_count'] == 2
        assert sorted(fake_stremio.urls(synced_user.stremio_auth_key)) == sorted(
            [first.transport_url, second.transport_url]
        )
        assert fake_stremio.write_count[synced_user.stremio_auth_key] == 1

    @pytest.mark.asyncio
    async def test_batch_nothing_to_do(self, client: AsyncClient, admin_headers, synced_user):
        response = await client.post(f'/api/v1/users/{synced_user.id}/sync-addons', headers=admin_headers)

        assert response.status_code == 200
        assert response.json()['message'] == 'No new addons to sync'

    @pytest.mark.asyncio
    async def test_batch_surfaces_remote_failure(self, client: AsyncClient, db_session, admin_headers, synced_user, fake_stremio):
        await assign(db_session, synced_user, await create_addon(db_session))
        fake_stremio.unavailable_keys.add(synced_user.stremio_auth_key)

        response = await client.post(f'/api/v1/users/{synced_user.id}/sync-addons', headers=admin_headers)

        assert response.status_code == 503
        assert response.json()['error']['code'] == 'REMOTE_UNAVAILABLE'

    @pytest.mark.asyncio
    async def test_each_strategy_reports(self, client: AsyncClient, db_session, admin_headers, synced_user, fake_stremio):
        await assign(db_session, synced_user, await create_addon(db_session), await create_addon(db_session))

        response = await client.post(
            f'/api/v1/users/{synced_user.id}/sync-addons', headers=admin_headers, params={'strategy': 'each'}
        )

        assert response.status_code == 200
        data = response.json()
        assert data['report']['total'] == 2
        assert data['report']['successful'] == 2
        assert fake_stremio.write_count[synced_user.stremio_auth_key] == 2


class TestStremioStatus:

    @pytest.mark.asyncio
    async def test_valid_link(self, client: AsyncClient, admin_headers, synced_user):
        response = await client.get(f'/api/v1/users/{synced_user.id}/stremio-status', headers=admin_headers)

        data = response.json()
        assert data['synced'] is True
        assert data['valid'] is True
        assert data['stremio_user_id'] == synced_user.stremio_user_id

    @pytest.mark.asyncio
    async def test_revoked_auth_key(self, client: AsyncClient, admin_headers, synced_user, fake_stremio):
        fake_stremio.rejected_keys.add(synced_user.stremio_auth_key)

        response = await client.get(f'/api/v1/users/{synced_user.id}/stremio-status', headers=admin_headers)

        assert response.status_code == 200
        assert response.json()['valid'] is False

    @pytest.mark.asyncio
    async def test_unlinked_user(self, client: AsyncClient, admin_headers, test_user):
        response = await client.get(f'/api/v1/users/{test_user.id}/stremio-status', headers=admin_headers)

        assert response.json() == {
            'synced': False,
            'valid': False,
            'stremio_user_id': None,
            'email': None,
            'message': 'User is not synced with Stremio',
        }
