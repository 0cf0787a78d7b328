"""Repository and provider protocol interfaces for dependency injection.

These protocols define the contracts that concrete implementations (InMemory
for local dev and tests, Supabase for non-local) must satisfy. The app
factory accepts any implementation that matches them.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol, runtime_checkable

from .security.token_verify import AuthIdentity, SessionTokens


@runtime_checkable
class UserRepository(Protocol):
    """Application-level user records (role, workspace link)."""

    async def get(self, user_id: str) -> dict[str, Any] | None: ...
    async def create(self, data: dict[str, Any]) -> dict[str, Any]: ...
    async def update(self, user_id: str, data: dict[str, Any]) -> dict[str, Any] | None: ...
    async def list_all(self) -> list[dict[str, Any]]: ...


# Builds a user repository bound to the caller's access token (RLS-scoped).
RestrictedUserRepositoryFactory = Callable[[str], UserRepository]


@runtime_checkable
class WorkspaceRepository(Protocol):
    """Workspace reads plus the transactional create-and-link write."""

    async def get(self, workspace_id: str) -> dict[str, Any] | None: ...
    async def get_for_owner(self, owner_id: str) -> dict[str, Any] | None: ...
    async def create_for_owner(
        self, owner_id: str, name: str, subdomain: str | None = None,
    ) -> dict[str, Any]: ...
    async def list_all(self) -> list[dict[str, Any]]: ...


@runtime_checkable
class OnboardingRepository(Protocol):
    """One onboarding record per workspace."""

    async def get_for_workspace(self, workspace_id: str) -> dict[str, Any] | None: ...
    async def create(self, workspace_id: str, data: dict[str, Any]) -> dict[str, Any]: ...
    async def update(self, workspace_id: str, data: dict[str, Any]) -> dict[str, Any] | None: ...
    async def list_all(self) -> list[dict[str, Any]]: ...


@runtime_checkable
class IdentityProvider(Protocol):
    """Session token verification and the auth flows built on it."""

    async def get_user(self, access_token: str) -> AuthIdentity: ...
    async def refresh_session(self, refresh_token: str) -> SessionTokens: ...
    async def sign_in_with_password(self, email: str, password: str) -> SessionTokens: ...
    async def sign_up(self, email: str, password: str) -> dict[str, Any]: ...
    async def sign_out(self, access_token: str) -> None: ...
    async def exchange_code(self, auth_code: str, code_verifier: str) -> SessionTokens: ...
    async def verify_otp(self, token_hash: str, otp_type: str) -> SessionTokens: ...
