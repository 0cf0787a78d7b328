"""Shared fixtures for portal unit tests."""

from __future__ import annotations

from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from portal.app import PortalSettings, create_app
from portal_fakes import COOKIE_NAME, TEST_SECRET, add_page_stubs


@pytest.fixture
def settings() -> PortalSettings:
    return PortalSettings(supabase_jwt_secret=TEST_SECRET)


@pytest.fixture
def app(settings: PortalSettings) -> FastAPI:
    application = create_app(settings)
    add_page_stubs(application)
    return application


@pytest.fixture
def deps(app: FastAPI):
    return app.state.deps


@pytest.fixture
def client_for(app: FastAPI):
    """Build an AsyncClient, optionally carrying a session cookie or Bearer token."""

    def _client(
        token: str | None = None,
        *,
        bearer: str | None = None,
        cookies: dict[str, str] | None = None,
    ) -> AsyncClient:
        jar = dict(cookies or {})
        if token:
            jar[COOKIE_NAME] = token
        headers = {'Authorization': f'Bearer {bearer}'} if bearer else None
        return AsyncClient(
            transport=ASGITransport(app=app),
            base_url='http://testserver',
            cookies=jar,
            headers=headers,
        )

    return _client


@pytest.fixture
def seed(deps):
    """Create a user row (and optionally a workspace) in the in-memory repos."""

    async def _seed(
        user_id: str = 'user-1',
        email: str = 'user@example.com',
        role: str = 'client',
        workspace: bool = False,
    ) -> dict[str, Any]:
        user = await deps.user_repo.create({'id': user_id, 'email': email, 'role': role})
        if workspace:
            ws = await deps.workspace_repo.create_for_owner(user_id, f'{email} Co')
            user = {**(await deps.user_repo.get(user_id)), 'workspace': ws}
        return user

    return _seed
