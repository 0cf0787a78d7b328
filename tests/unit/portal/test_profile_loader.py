"""Tests for the two-tier profile loader."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from portal.app.db import SupabaseClient, SupabaseUserRepository
from portal.app.db.errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNoRowsError,
)
from portal.app.inmemory import InMemoryUserRepository
from portal.app.security.profile_loader import (
    ProfileLoader,
    ProfileUnavailable,
    UserProfile,
    UserRole,
)
from portal.app.security.token_verify import AuthIdentity

IDENTITY = AuthIdentity(user_id='user-1', email='user@example.com')
ROW = {'id': 'user-1', 'email': 'user@example.com', 'role': 'client', 'workspace_id': 'ws-1'}


class StubUserRepository:
    """UserRepository whose get() returns a row or raises a scripted error."""

    def __init__(self, row: dict[str, Any] | None = None, error: Exception | None = None):
        self.row = row
        self.error = error
        self.get_calls: list[str] = []
        self.created: list[dict[str, Any]] = []

    async def get(self, user_id: str) -> dict[str, Any] | None:
        self.get_calls.append(user_id)
        if self.error is not None:
            raise self.error
        return self.row

    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        self.created.append(data)
        return {**data, 'workspace_id': None}

    async def update(self, user_id: str, data: dict[str, Any]) -> dict[str, Any] | None:
        return None

    async def list_all(self) -> list[dict[str, Any]]:
        return []


def _loader(restricted: StubUserRepository | None, elevated: StubUserRepository):
    seen_tokens: list[str] = []

    def factory(token: str) -> StubUserRepository:
        seen_tokens.append(token)
        return restricted

    loader = ProfileLoader(elevated, factory if restricted is not None else None)
    return loader, seen_tokens


@pytest.mark.asyncio
async def test_restricted_read_is_used_when_it_finds_the_row():
    restricted = StubUserRepository(row=ROW)
    elevated = StubUserRepository(row=None)
    loader, tokens = _loader(restricted, elevated)

    profile = await loader.load(IDENTITY, 'caller-token')

    assert profile == UserProfile('user-1', 'user@example.com', UserRole.CLIENT, 'ws-1')
    assert tokens == ['caller-token']
    assert elevated.get_calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    'error',
    [
        SupabaseNoRowsError(status_code=406, message='0 rows', code='PGRST116'),
        SupabaseAuthError(status_code=401, message='JWT expired'),
        SupabaseError(status_code=500, message='boom'),
    ],
)
async def test_restricted_failure_falls_back_to_elevated(error):
    restricted = StubUserRepository(error=error)
    elevated = StubUserRepository(row={**ROW, 'role': 'admin'})
    loader, _ = _loader(restricted, elevated)

    profile = await loader.load(IDENTITY, 'caller-token')

    assert profile.is_admin is True
    assert elevated.get_calls == ['user-1']


@pytest.mark.asyncio
async def test_restricted_empty_result_falls_back_to_elevated():
    restricted = StubUserRepository(row=None)
    elevated = StubUserRepository(row=ROW)
    loader, _ = _loader(restricted, elevated)

    profile = await loader.load(IDENTITY, 'caller-token')

    assert profile.workspace_id == 'ws-1'
    assert elevated.get_calls == ['user-1']


@pytest.mark.asyncio
async def test_elevated_empty_result_is_not_found():
    loader, _ = _loader(StubUserRepository(row=None), StubUserRepository(row=None))
    assert await loader.load(IDENTITY, 'caller-token') is None


@pytest.mark.asyncio
async def test_elevated_failure_is_profile_unavailable():
    restricted = StubUserRepository(error=SupabaseAuthError(status_code=403, message='rls'))
    elevated = StubUserRepository(error=SupabaseError(status_code=503, message='down'))
    loader, _ = _loader(restricted, elevated)

    with pytest.raises(ProfileUnavailable) as exc_info:
        await loader.load(IDENTITY, 'caller-token')
    assert exc_info.value.user_id == 'user-1'


@pytest.mark.asyncio
async def test_restricted_tier_is_skipped_without_token():
    restricted = StubUserRepository(row=ROW)
    elevated = StubUserRepository(row=ROW)
    loader, tokens = _loader(restricted, elevated)

    await loader.load(IDENTITY, None)

    assert tokens == []
    assert restricted.get_calls == []
    assert elevated.get_calls == ['user-1']


@pytest.mark.asyncio
async def test_unknown_role_is_not_admin():
    loader = ProfileLoader(StubUserRepository(row={**ROW, 'role': 'owner'}))
    profile = await loader.load(IDENTITY)
    assert profile.role is None
    assert profile.is_admin is False


@pytest.mark.asyncio
async def test_ensure_profile_creates_client_row():
    repo = InMemoryUserRepository()
    loader = ProfileLoader(repo)

    profile = await loader.ensure_profile(IDENTITY)

    assert profile.role is UserRole.CLIENT
    assert profile.has_workspace is False
    assert (await repo.get('user-1'))['email'] == 'user@example.com'


@pytest.mark.asyncio
async def test_ensure_profile_returns_existing_row():
    repo = StubUserRepository(row=ROW)
    loader = ProfileLoader(repo)

    profile = await loader.ensure_profile(IDENTITY)

    assert profile.workspace_id == 'ws-1'
    assert repo.created == []


@pytest.mark.asyncio
async def test_ensure_profile_rereads_after_concurrent_create():
    class RacingRepository(StubUserRepository):
        async def create(self, data):
            self.row = ROW
            raise SupabaseConflictError(status_code=409, message='duplicate key')

    loader = ProfileLoader(RacingRepository(row=None))
    profile = await loader.ensure_profile(IDENTITY)
    assert profile.workspace_id == 'ws-1'


def test_profile_as_dict_shape():
    profile = UserProfile.from_row({**ROW, 'role': 'admin'})
    assert profile.as_dict() == {
        'id': 'user-1',
        'email': 'user@example.com',
        'role': 'admin',
        'isAdmin': True,
        'workspace_id': 'ws-1',
    }


# ── Supabase repositories over a mocked transport ────────────────────

SUPABASE_URL = 'https://test.supabase.co'


def _connect_error(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError('restricted path down', request=request)


def _row_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json=ROW)


def _supabase_loader(restricted_handler, elevated_handler) -> ProfileLoader:
    elevated = SupabaseUserRepository(
        SupabaseClient.service_role(
            SUPABASE_URL,
            'svc-key',
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(elevated_handler)),
        )
    )

    def restricted(token: str) -> SupabaseUserRepository:
        return SupabaseUserRepository(
            SupabaseClient.for_user(
                SUPABASE_URL,
                'anon-key',
                token,
                http_client=httpx.AsyncClient(
                    transport=httpx.MockTransport(restricted_handler),
                ),
            )
        )

    return ProfileLoader(elevated, restricted)


@pytest.mark.asyncio
async def test_restricted_connect_error_falls_back_to_elevated():
    loader = _supabase_loader(_connect_error, _row_handler)

    profile = await loader.load(IDENTITY, 'caller-token')

    assert profile == UserProfile('user-1', 'user@example.com', UserRole.CLIENT, 'ws-1')


@pytest.mark.asyncio
async def test_elevated_connect_error_is_profile_unavailable():
    loader = _supabase_loader(_connect_error, _connect_error)

    with pytest.raises(ProfileUnavailable) as exc_info:
        await loader.load(IDENTITY, 'caller-token')

    assert isinstance(exc_info.value.__cause__, SupabaseError)
    assert exc_info.value.__cause__.code == 'transport_error'
