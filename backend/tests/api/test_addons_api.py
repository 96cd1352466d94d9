"""
API Tests for the addon registry and addon fan-out
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.models.addon import Addon
from app.models.user import UserRole
from app.modules.stremio.client import AddonDescriptor
from app.services.addon_service import OFFICIAL_ADDONS
from tests.factories import assign, create_addon, create_user, fake, headers_for

ADDON_URL = 'https://torrentio.addons.test/manifest.json'


async def linked_user(db, fake_stremio, **kwargs):
    """Panel account linked to a fresh Stremio account in the fake"""
    session = fake_stremio.add_account(fake.unique.email(), 'stremio-pass')
    user = await create_user(
        db,
        stremio_auth_key=session.auth_key,
        stremio_user_id=session.user.id,
        stremio_synced=True,
        **kwargs
    )
    return user, session.auth_key


class TestRegisterAddon:

    @pytest.mark.asyncio
    async def test_register_from_manifest(self, client: AsyncClient, admin_user, admin_headers, fake_stremio):
        fake_stremio.add_manifest(ADDON_URL, 'com.torrentio', 'Torrentio', resources=['stream', {'name': 'meta'}])

        response = await client.post('/api/v1/addons', headers=admin_headers, json={'transport_url': ADDON_URL})

        assert response.status_code == 201
        data = response.json()
        assert data['name'] == 'Torrentio'
        assert data['addon_id'] == 'com.torrentio'
        assert data['resources'] == ['stream', 'meta']
        assert data['types'] == ['movie', 'series']
        assert data['creator_id'] == admin_user.id
        assert data['validated'] is True

    @pytest.mark.asyncio
    async def test_caller_fields_win_over_manifest(self, client: AsyncClient, admin_headers, fake_stremio):
        fake_stremio.add_manifest(ADDON_URL, 'com.torrentio', 'Torrentio')

        response = await client.post('/api/v1/addons', headers=admin_headers, json={
            'transport_url': ADDON_URL,
            'name': 'Premium Streams',
            'types': ['movie'],
        })

        assert response.json()['name'] == 'Premium Streams'
        assert response.json()['types'] == ['movie']

    @pytest.mark.asyncio
    async def test_duplicate_url(self, client: AsyncClient, db_session, admin_headers, fake_stremio):
        await create_addon(db_session, transport_url=ADDON_URL)
        fake_stremio.add_manifest(ADDON_URL, 'com.torrentio', 'Torrentio')

        response = await client.post('/api/v1/addons', headers=admin_headers, json={'transport_url': ADDON_URL})

        assert response.status_code == 409
        assert 'fetchManifest' not in fake_stremio.calls

    @pytest.mark.asyncio
    async def test_invalid_manifest_writes_nothing(self, client: AsyncClient, db_session, admin_headers, fake_stremio):
        fake_stremio.manifests[ADDON_URL] = {'id': 'com.nameless'}

        response = await client.post('/api/v1/addons', headers=admin_headers, json={'transport_url': ADDON_URL})

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'INVALID_MANIFEST'
        assert (await db_session.execute(select(Addon))).first() is None

    @pytest.mark.asyncio
    async def test_non_http_url_rejected(self, client: AsyncClient, admin_headers):
        response = await client.post('/api/v1/addons', headers=admin_headers, json={
            'transport_url': 'ftp://addons.test/manifest.json'
        })

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_plain_user_cannot_register(self, client: AsyncClient, auth_headers, fake_stremio):
        fake_stremio.add_manifest(ADDON_URL, 'com.torrentio', 'Torrentio')

        response = await client.post('/api/v1/addons', headers=auth_headers, json={'transport_url': ADDON_URL})

        assert response.status_code == 403


class TestValidateAndOfficial:

    @pytest.mark.asyncio
    async def test_validate_valid(self, client: AsyncClient, admin_headers, fake_stremio):
        fake_stremio.add_manifest(ADDON_URL, 'com.torrentio', 'Torrentio')

        response = await client.post('/api/v1/addons/validate', headers=admin_headers, json={'transport_url': ADDON_URL})

        assert response.status_code == 200
        assert response.json()['valid'] is True
        assert response.json()['manifest']['id'] == 'com.torrentio'

    @pytest.mark.asyncio
    async def test_validate_unreachable(self, client: AsyncClient, admin_headers, fake_stremio):
        fake_stremio.unreachable_urls.add(ADDON_URL)

        response = await client.post('/api/v1/addons/validate', headers=admin_headers, json={'transport_url': ADDON_URL})

        assert response.status_code == 200
        assert response.json()['valid'] is False
        assert response.json()['error']

    @pytest.mark.asyncio
    async def test_official_catalogue(self, client: AsyncClient, reseller_headers):
        response = await client.get('/api/v1/addons/official', headers=reseller_headers)

        assert response.status_code == 200
        assert [a['name'] for a in response.json()] == [a['name'] for a in OFFICIAL_ADDONS]

    @pytest.mark.asyncio
    async def test_import_official(self, client: AsyncClient, admin_headers, fake_stremio):
        official = OFFICIAL_ADDONS[0]
        fake_stremio.add_manifest(official['transport_url'], official['addon_id'], official['name'])

        response = await client.post('/api/v1/addons/import-official', headers=admin_headers, json={
            'transport_url': official['transport_url']
        })

        assert response.status_code == 201
        assert response.json()['is_public'] is True
        assert response.json()['addon_id'] == official['addon_id']

    @pytest.mark.asyncio
    async def test_import_rejects_unknown_url(self, client: AsyncClient, admin_headers):
        response = await client.post('/api/v1/addons/import-official', headers=admin_headers, json={
            'transport_url': ADDON_URL
        })

        assert response.status_code == 400
        assert response.json()['detail'] == 'Not an official addon'


class TestVisibility:

    @pytest.mark.asyncio
    async def test_user_sees_assigned_and_public(self, client: AsyncClient, db_session, test_user, auth_headers):
        assigned = await create_addon(db_session)
        public = await create_addon(db_session, is_public=True)
        await create_addon(db_session)
        await assign(db_session, test_user, assigned)

        response = await client.get('/api/v1/addons', headers=auth_headers)

        assert {a['id'] for a in response.json()} == {assigned.id, public.id}

    @pytest.mark.asyncio
    async def test_reseller_sees_own_and_public(self, client: AsyncClient, db_session, reseller_user, reseller_headers):
        own = await create_addon(db_session, creator_id=reseller_user.id)
        public = await create_addon(db_session, is_public=True)
        await create_addon(db_session)

        response = await client.get('/api/v1/addons', headers=reseller_headers)

        assert {a['id'] for a in response.json()} == {own.id, public.id}

    @pytest.mark.asyncio
    async def test_user_cannot_open_private_addon(self, client: AsyncClient, db_session, auth_headers):
        private = await create_addon(db_session)

        response = await client.get(f'/api/v1/addons/{private.id}', headers=auth_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_addon(self, client: AsyncClient, admin_headers):
        response = await client.get('/api/v1/addons/does-not-exist', headers=admin_headers)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_members(self, client: AsyncClient, db_session, admin_headers, test_user):
        addon = await create_addon(db_session)
        await assign(db_session, test_user, addon)

        response = await client.get(f'/api/v1/addons/{addon.id}/users', headers=admin_headers)

        assert [u['id'] for u in response.json()] == [test_user.id]

    @pytest.mark.asyncio
    async def test_reseller_sees_only_own_members_of_public_addon(
        self, client: AsyncClient, db_session, reseller_user, reseller_headers
    ):
        addon = await create_addon(db_session, is_public=True)
        mine = await create_user(db_session, reseller=reseller_user)
        other = await create_user(db_session)
        await assign(db_session, mine, addon)
        await assign(db_session, other, addon)

        response = await client.get(f'/api/v1/addons/{addon.id}/users', headers=reseller_headers)

        assert [u['id'] for u in response.json()] == [mine.id]


class TestAddonFanOut:

    @pytest.mark.asyncio
    async def test_update_with_new_url_moves_members(self, client: AsyncClient, db_session, admin_headers, fake_stremio):
        addon = await create_addon(db_session, transport_url=ADDON_URL)
        user, key = await linked_user(db_session, fake_stremio)
        await assign(db_session, user, addon)
        fake_stremio.collections[key] = [AddonDescriptor(ADDON_URL)]
        new_url = 'https://torrentio-v2.addons.test/manifest.json'
        fake_stremio.add_manifest(new_url, 'com.torrentio', 'Torrentio v2')

        response = await client.put(f'/api/v1/addons/{addon.id}', headers=admin_headers, json={
            'transport_url': new_url
        })

        assert response.status_code == 200
        body = response.json()
        assert body['addon']['transport_url'] == new_url
        assert body['addon']['name'] == 'Torrentio v2'
        assert body['sync'] == {'total': 1, 'successful': 1, 'failed': 0, 'errors': []}
        assert fake_stremio.urls(key) == [new_url]

    @pytest.mark.asyncio
    async def test_update_to_taken_url(self, client: AsyncClient, db_session, admin_headers):
        addon = await create_addon(db_session)
        other = await create_addon(db_session)

        response = await client.put(f'/api/v1/addons/{addon.id}', headers=admin_headers, json={
            'transport_url': other.transport_url
        })

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_deactivated_addon_is_not_pushed(self, client: AsyncClient, db_session, admin_headers, fake_stremio):
        addon = await create_addon(db_session)
        user, key = await linked_user(db_session, fake_stremio)
        await assign(db_session, user, addon)

        response = await client.put(f'/api/v1/addons/{addon.id}', headers=admin_headers, json={'is_active': False})

        assert response.json()['sync'] is None
        assert fake_stremio.urls(key) == []

    @pytest.mark.asyncio
    async def test_only_creator_updates(self, client: AsyncClient, db_session, reseller_headers):
        addon = await create_addon(db_session, is_public=True)

        response = await client.put(f'/api/v1/addons/{addon.id}', headers=reseller_headers, json={'name': 'Mine now'})

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_delete_removes_from_members(self, client: AsyncClient, db_session, admin_headers, fake_stremio):
        addon = await create_addon(db_session, transport_url=ADDON_URL)
        user, key = await linked_user(db_session, fake_stremio)
        await assign(db_session, user, addon)
        own_addon = AddonDescriptor('https://own.addons.test/manifest.json', extra={'flags': {'official': False}})
        fake_stremio.collections[key] = [AddonDescriptor(ADDON_URL), own_addon]

        response = await client.delete(f'/api/v1/addons/{addon.id}', headers=admin_headers)

        assert response.status_code == 200
        assert response.json()['sync']['successful'] == 1
        assert fake_stremio.urls(key) == [own_addon.transport_url]
        assert (await db_session.execute(select(Addon).where(Addon.id == addon.id))).first() is None

    @pytest.mark.asyncio
    async def test_sync_isolates_failing_account(self, client: AsyncClient, db_session, admin_headers, fake_stremio):
        addon = await create_addon(db_session)
        healthy, healthy_key = await linked_user(db_session, fake_stremio)
        broken, broken_key = await linked_user(db_session, fake_stremio)
        await assign(db_session, healthy, addon)
        await assign(db_session, broken, addon)
        fake_stremio.unavailable_keys.add(broken_key)

        response = await client.post(f'/api/v1/addons/{addon.id}/sync', headers=admin_headers)

        assert response.status_code == 200
        report = response.json()
        assert report['total'] == 2
        assert report['successful'] == 1
        assert report['failed'] == 1
        assert report['errors'][0]['identity'] == broken.id
        assert report['errors'][0]['username'] == broken.username
        assert fake_stremio.urls(healthy_key) == [addon.transport_url]

    @pytest.mark.asyncio
    async def test_sync_skips_unlinked_members(self, client: AsyncClient, db_session, admin_headers, test_user):
        addon = await create_addon(db_session)
        await assign(db_session, test_user, addon)

        response = await client.post(f'/api/v1/addons/{addon.id}/sync', headers=admin_headers)

        assert response.json() == {'total': 0, 'successful': 0, 'failed': 0, 'errors': []}

    @pytest.mark.asyncio
    async def test_reseller_sync_of_public_addon_reaches_own_customers(
        self, client: AsyncClient, db_session, reseller_user, fake_stremio
    ):
        addon = await create_addon(db_session, is_public=True)
        mine, my_key = await linked_user(db_session, fake_stremio, reseller=reseller_user)
        theirs, their_key = await linked_user(db_session, fake_stremio)
        await assign(db_session, mine, addon)
        await assign(db_session, theirs, addon)

        response = await client.post(f'/api/v1/addons/{addon.id}/sync', headers=headers_for(reseller_user))

        assert response.json()['total'] == 1
        assert fake_stremio.urls(my_key) == [addon.transport_url]
        assert fake_stremio.urls(their_key) == []

    @pytest.mark.asyncio
    async def test_plain_user_cannot_sync(self, client: AsyncClient, db_session):
        addon = await create_addon(db_session, is_public=True)
        user = await create_user(db_session, role=UserRole.USER)

        response = await client.post(f'/api/v1/addons/{addon.id}/sync', headers=headers_for(user))

        assert response.status_code == 403
