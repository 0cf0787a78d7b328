"""Portal FastAPI application factory.

The create_app() factory is the single entry point for building the portal
ASGI application. It wires middleware (request-ID, structured logging, CORS,
auth gate), the JSON API routers, and injects repository/provider
implementations via dependency injection.

Usage:
    # Local development (in-memory repositories, local JWT verification)
    from portal.app import create_app, PortalSettings
    app = create_app(PortalSettings())

    # Non-local (Supabase auth API + PostgREST repositories)
    settings = PortalSettings.from_env()
    app = create_app(settings)

    # Testing (full DI control)
    app = create_app(settings, identity_provider=fake, user_repo=repo, ...)
"""

from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .logging_middleware import add_logging_middleware
from .protocols import (
    IdentityProvider,
    OnboardingRepository,
    RestrictedUserRepositoryFactory,
    UserRepository,
    WorkspaceRepository,
)
from .routes import (
    create_admin_router,
    create_auth_router,
    create_onboarding_router,
    create_user_router,
    create_workspace_router,
)
from .routes.context import SessionRequired, session_required_response
from .security.auth_gate import AuthGateMiddleware
from .security.profile_loader import ProfileLoader
from .security.session_resolver import SessionResolver
from .security.token_verify import JWTIdentityProvider, create_token_verifier
from .settings import PortalSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppDependencies:
    """Container for all injected repository/provider instances.

    Stored on ``app.state.deps`` so route handlers can access them.
    """

    identity_provider: IdentityProvider
    session_resolver: SessionResolver
    profile_loader: ProfileLoader
    user_repo: UserRepository
    workspace_repo: WorkspaceRepository
    onboarding_repo: OnboardingRepository


def _build_local_deps(settings: PortalSettings) -> tuple[
    IdentityProvider, UserRepository, WorkspaceRepository, OnboardingRepository,
]:
    """In-memory repositories and local JWT verification for development."""
    from .inmemory import (
        InMemoryOnboardingRepository,
        InMemoryUserRepository,
        InMemoryWorkspaceRepository,
    )

    jwt_secret = settings.supabase_jwt_secret
    if not jwt_secret and not settings.supabase_url:
        # Nothing to verify against; no token will be accepted.
        jwt_secret = secrets.token_urlsafe(32)
    verifier = create_token_verifier(settings.supabase_url or None, jwt_secret or None)

    users = InMemoryUserRepository()
    return (
        JWTIdentityProvider(verifier),
        users,
        InMemoryWorkspaceRepository(users),
        InMemoryOnboardingRepository(),
    )


def _build_supabase_deps(settings: PortalSettings) -> tuple[
    IdentityProvider,
    UserRepository,
    WorkspaceRepository,
    OnboardingRepository,
    RestrictedUserRepositoryFactory,
]:
    """Supabase auth API and service-role PostgREST repositories."""
    from .db import (
        SupabaseClient,
        SupabaseOnboardingRepository,
        SupabaseUserRepository,
        SupabaseWorkspaceRepository,
    )
    from .security.supabase_auth import SupabaseAuthClient

    service = SupabaseClient.service_role(
        settings.supabase_url, settings.supabase_service_role_key,
    )

    def restricted_users(access_token: str) -> UserRepository:
        return SupabaseUserRepository(
            SupabaseClient.for_user(
                settings.supabase_url, settings.supabase_anon_key, access_token,
            )
        )

    return (
        SupabaseAuthClient(
            supabase_url=settings.supabase_url,
            anon_key=settings.supabase_anon_key,
        ),
        SupabaseUserRepository(service),
        SupabaseWorkspaceRepository(service),
        SupabaseOnboardingRepository(service),
        restricted_users,
    )


# ── Factory ─────────────────────────────────────────────────────────


def create_app(
    settings: PortalSettings | None = None,
    *,
    identity_provider: IdentityProvider | None = None,
    user_repo: UserRepository | None = None,
    workspace_repo: WorkspaceRepository | None = None,
    onboarding_repo: OnboardingRepository | None = None,
    restricted_user_repo_factory: RestrictedUserRepositoryFactory | None = None,
) -> FastAPI:
    """Create a configured portal FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        identity_provider..onboarding_repo: Provider/repository overrides.
            When None, local mode uses InMemory implementations and local
            JWT verification; other environments use Supabase.
        restricted_user_repo_factory: Builds the RLS-scoped user repository
            for the first profile read. Local mode has no restricted tier
            unless one is injected.

    Returns:
        Configured FastAPI application ready for uvicorn.

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = PortalSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Portal settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    if settings.is_local:
        defaults = _build_local_deps(settings)
        restricted_factory = restricted_user_repo_factory
    else:
        *defaults, default_restricted = _build_supabase_deps(settings)
        restricted_factory = restricted_user_repo_factory or default_restricted

    default_provider, default_users, default_workspaces, default_onboarding = defaults
    identity_provider = identity_provider or default_provider
    user_repo = user_repo or default_users
    workspace_repo = workspace_repo or default_workspaces
    onboarding_repo = onboarding_repo or default_onboarding

    session_resolver = SessionResolver(identity_provider, settings.session_cookie_name)
    profile_loader = ProfileLoader(user_repo, restricted_factory)

    deps = AppDependencies(
        identity_provider=identity_provider,
        session_resolver=session_resolver,
        profile_loader=profile_loader,
        user_repo=user_repo,
        workspace_repo=workspace_repo,
        onboarding_repo=onboarding_repo,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Portal startup (environment=%s, session_cookie=%s)",
            settings.environment,
            settings.session_cookie_name,
        )
        yield
        logger.info("Portal shutdown")

    app = FastAPI(
        title="Workspace Portal",
        description="Onboarding and admin API with a session-aware page gate",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.settings = settings

    # ── Middleware stack (applied in reverse order) ──────────────
    # Order of execution: RequestID -> StructuredLogging -> CORS -> AuthGate -> handler

    app.add_middleware(
        AuthGateMiddleware,
        session_resolver=session_resolver,
        profile_loader=profile_loader,
        routes=settings.routes,
        cookie_secure=settings.secure_cookies,
        cookie_domain=settings.cookie_domain,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    add_logging_middleware(app)

    # ── Routes ──────────────────────────────────────────────────

    app.add_exception_handler(SessionRequired, session_required_response)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "environment": settings.environment,
        }

    app.include_router(
        create_auth_router(identity_provider, session_resolver, profile_loader, settings)
    )
    app.include_router(create_user_router(user_repo, workspace_repo))
    app.include_router(create_workspace_router(workspace_repo, profile_loader))
    app.include_router(create_onboarding_router(onboarding_repo))
    app.include_router(create_admin_router(user_repo, workspace_repo, onboarding_repo))

    return app


# For uvicorn, use --factory flag:
#   uvicorn portal.app.main:create_app --factory
# This avoids executing create_app() at import time.
