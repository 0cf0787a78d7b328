"""Tests for /api/user endpoints (profile, list, role changes)."""

from __future__ import annotations

import pytest

from portal_fakes import COOKIE_NAME, make_token


@pytest.mark.asyncio
async def test_profile_requires_authentication(client_for):
    async with client_for() as client:
        resp = await client.get('/api/user/profile')

    assert resp.status_code == 401
    assert resp.json()['detail']['error'] == 'unauthorized'


@pytest.mark.asyncio
async def test_rejected_cookie_is_expired_on_401(client_for):
    async with client_for(make_token(secret='not-the-secret')) as client:
        resp = await client.get('/api/user/profile')

    assert resp.status_code == 401
    assert resp.json()['detail']['error'] == 'unauthorized'
    assert resp.headers['www-authenticate'] == 'Bearer'
    expired = [
        header for header in resp.headers.get_list('set-cookie')
        if header.startswith(f'{COOKIE_NAME}=')
    ]
    assert len(expired) == 1
    assert 'Max-Age=0' in expired[0]


@pytest.mark.asyncio
async def test_rejected_bearer_leaves_cookies_alone(client_for):
    async with client_for(bearer='forged') as client:
        resp = await client.get('/api/user/profile')

    assert resp.status_code == 401
    assert resp.headers.get_list('set-cookie') == []


@pytest.mark.asyncio
async def test_profile_missing_row_is_404(client_for):
    async with client_for(make_token('ghost')) as client:
        resp = await client.get('/api/user/profile')

    assert resp.status_code == 404
    assert resp.json()['error'] == 'profile_not_found'


@pytest.mark.asyncio
async def test_profile_includes_workspace(client_for, seed):
    user = await seed('user-1', workspace=True)

    async with client_for(make_token('user-1')) as client:
        resp = await client.get('/api/user/profile')

    body = resp.json()
    assert resp.status_code == 200
    assert body['user']['workspace_id'] == user['workspace']['id']
    assert body['workspace']['name'] == user['workspace']['name']


@pytest.mark.asyncio
async def test_bearer_token_is_accepted(client_for, seed):
    await seed('user-1')

    async with client_for(bearer=make_token('user-1')) as client:
        resp = await client.get('/api/user/profile')

    assert resp.status_code == 200
    assert resp.json()['workspace'] is None


@pytest.mark.asyncio
async def test_bearer_takes_precedence_over_cookie(client_for, seed):
    await seed('user-1')
    await seed('user-2', 'other@example.com')

    async with client_for(
        make_token('user-2', 'other@example.com'), bearer=make_token('user-1'),
    ) as client:
        resp = await client.get('/api/user/profile')

    assert resp.json()['user']['id'] == 'user-1'


# ── Admin-only ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_users_forbidden_for_client(client_for, seed):
    await seed('user-1')

    async with client_for(make_token('user-1')) as client:
        resp = await client.get('/api/user/list')

    assert resp.status_code == 403
    assert resp.json()['detail']['error'] == 'forbidden'


@pytest.mark.asyncio
async def test_list_users_for_admin(client_for, seed):
    await seed('admin-1', 'admin@example.com', role='admin')
    await seed('user-1')

    async with client_for(make_token('admin-1', 'admin@example.com')) as client:
        resp = await client.get('/api/user/list')

    assert resp.status_code == 200
    assert {u['id'] for u in resp.json()['users']} == {'admin-1', 'user-1'}


@pytest.mark.asyncio
async def test_admin_promotes_user(client_for, seed, deps):
    await seed('admin-1', 'admin@example.com', role='admin')
    await seed('user-1')

    async with client_for(make_token('admin-1', 'admin@example.com')) as client:
        resp = await client.post(
            '/api/user/update-role', json={'userId': 'user-1', 'role': 'admin'},
        )

    assert resp.status_code == 200
    assert resp.json()['user']['role'] == 'admin'
    assert (await deps.user_repo.get('user-1'))['role'] == 'admin'


@pytest.mark.asyncio
async def test_admin_cannot_demote_self(client_for, seed):
    await seed('admin-1', 'admin@example.com', role='admin')

    async with client_for(make_token('admin-1', 'admin@example.com')) as client:
        resp = await client.post(
            '/api/user/update-role', json={'userId': 'admin-1', 'role': 'client'},
        )

    assert resp.status_code == 400
    assert resp.json()['error'] == 'cannot_demote_self'


@pytest.mark.asyncio
async def test_update_role_unknown_user_is_404(client_for, seed):
    await seed('admin-1', 'admin@example.com', role='admin')

    async with client_for(make_token('admin-1', 'admin@example.com')) as client:
        resp = await client.post(
            '/api/user/update-role', json={'userId': 'nobody', 'role': 'client'},
        )

    assert resp.status_code == 404
    assert resp.json()['error'] == 'user_not_found'


@pytest.mark.asyncio
async def test_update_role_rejects_unknown_role(client_for, seed):
    await seed('admin-1', 'admin@example.com', role='admin')

    async with client_for(make_token('admin-1', 'admin@example.com')) as client:
        resp = await client.post(
            '/api/user/update-role', json={'userId': 'admin-1', 'role': 'owner'},
        )

    assert resp.status_code == 422
