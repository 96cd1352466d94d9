"""
API Tests for reseller management
"""
from datetime import timedelta

import pytest
from httpx import AsyncClient

from app.core.types import utcnow
from app.models.user import User, UserRole
from tests.factories import create_user, fake, headers_for


class TestResellerAdmin:

    @pytest.mark.asyncio
    async def test_create_and_list(self, client: AsyncClient, admin_headers):
        response = await client.post('/api/v1/resellers', headers=admin_headers, json={
            'username': fake.unique.user_name(),
            'email': fake.unique.email(),
            'password': 'securePassword123!',
            'credits': 10,
        })

        assert response.status_code == 201
        created = response.json()
        assert created['role'] == 'reseller'
        assert created['credits'] == 10

        listing = await client.get('/api/v1/resellers', headers=admin_headers)
        assert [r['id'] for r in listing.json()['items']] == [created['id']]

    @pytest.mark.asyncio
    async def test_reseller_cannot_create_resellers(self, client: AsyncClient, reseller_headers):
        response = await client.post('/api/v1/resellers', headers=reseller_headers, json={
            'username': fake.unique.user_name(),
            'email': fake.unique.email(),
            'password': 'securePassword123!',
        })

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_add_credits(self, client: AsyncClient, admin_headers, reseller_user):
        response = await client.post(
            f'/api/v1/resellers/{reseller_user.id}/credits', headers=admin_headers, json={'amount': 5}
        )

        assert response.status_code == 200
        assert response.json()['credits'] == 7

    @pytest.mark.asyncio
    async def test_credits_must_be_positive(self, client: AsyncClient, admin_headers, reseller_user):
        response = await client.post(
            f'/api/v1/resellers/{reseller_user.id}/credits', headers=admin_headers, json={'amount': 0}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_update(self, client: AsyncClient, admin_headers, reseller_user):
        response = await client.put(
            f'/api/v1/resellers/{reseller_user.id}', headers=admin_headers, json={'is_active': False, 'credits': 0}
        )

        assert response.status_code == 200
        assert response.json()['is_active'] is False
        assert response.json()['credits'] == 0

    @pytest.mark.asyncio
    async def test_plain_user_is_not_a_reseller(self, client: AsyncClient, admin_headers, test_user):
        response = await client.get(f'/api/v1/resellers/{test_user.id}', headers=admin_headers)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_detaches_customers(self, client: AsyncClient, db_session, admin_headers, reseller_user):
        customer = await create_user(db_session, reseller=reseller_user)

        response = await client.delete(f'/api/v1/resellers/{reseller_user.id}', headers=admin_headers)

        assert response.status_code == 200
        await db_session.refresh(customer)
        assert customer.reseller_id is None


class TestResellerSelfService:

    @pytest.mark.asyncio
    async def test_reseller_reads_self(self, client: AsyncClient, reseller_user, reseller_headers):
        response = await client.get(f'/api/v1/resellers/{reseller_user.id}', headers=reseller_headers)

        assert response.status_code == 200
        assert response.json()['id'] == reseller_user.id

    @pytest.mark.asyncio
    async def test_reseller_cannot_read_other_reseller(self, client: AsyncClient, db_session, reseller_headers):
        other = await create_user(db_session, role=UserRole.RESELLER)

        response = await client.get(f'/api/v1/resellers/{other.id}', headers=reseller_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_reseller_users(self, client: AsyncClient, db_session, reseller_user, reseller_headers):
        customer = await create_user(db_session, reseller=reseller_user)
        await create_user(db_session)

        response = await client.get(f'/api/v1/resellers/{reseller_user.id}/users', headers=reseller_headers)

        assert [u['id'] for u in response.json()['items']] == [customer.id]

    @pytest.mark.asyncio
    async def test_stats(self, client: AsyncClient, db_session, reseller_user, reseller_headers):
        await create_user(db_session, reseller=reseller_user, stremio_synced=True, stremio_auth_key='k1')
        await create_user(db_session, reseller=reseller_user, is_active=False)
        await create_user(db_session, reseller=reseller_user, expires_at=utcnow() - timedelta(days=1))

        response = await client.get('/api/v1/resellers/stats/me', headers=reseller_headers)

        assert response.status_code == 200
        assert response.json() == {
            'total_users': 3,
            'active_users': 2,
            'expired_users': 1,
            'synced_users': 1,
            'new_users': 3,
            'credits': 2,
        }

    @pytest.mark.asyncio
    async def test_admin_reads_reseller_stats(self, client: AsyncClient, admin_headers, reseller_user):
        response = await client.get(f'/api/v1/resellers/{reseller_user.id}/stats', headers=admin_headers)

        assert response.status_code == 200
        assert response.json()['total_users'] == 0

    @pytest.mark.asyncio
    async def test_stats_me_requires_reseller(self, client: AsyncClient, admin_headers):
        response = await client.get('/api/v1/resellers/stats/me', headers=admin_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_created_users_count_against_credits(self, client: AsyncClient, db_session, reseller_user):
        headers = headers_for(reseller_user)
        for _ in range(2):
            response = await client.post('/api/v1/users', headers=headers, json={
                'username': fake.unique.user_name(),
                'email': fake.unique.email(),
                'password': 'securePassword123!',
            })
            assert response.status_code == 201

        third = await client.post('/api/v1/users', headers=headers, json={
            'username': fake.unique.user_name(),
            'email': fake.unique.email(),
            'password': 'securePassword123!',
        })

        assert third.status_code == 400
        refreshed = await db_session.get(User, reseller_user.id, populate_existing=True)
        assert refreshed.credits == 0
