"""Portal configuration settings.

PortalSettings is the single configuration object accepted by create_app().
It is a plain frozen dataclass (not env-coupled) so tests can inject config
without touching os.environ. RouteConfig describes which paths the auth gate
treats as public, admin-only or out of scope, and is injected into the gate
at construction time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

SESSION_COOKIE_TEMPLATE = "sb-{ref}-auth-token"
DEFAULT_CORS_ORIGINS: tuple[str, ...] = ("http://localhost:3000",)


@dataclass(frozen=True, slots=True)
class RouteConfig:
    """Path layout the auth gate and routing policy work against."""

    public_routes: frozenset[str] = frozenset({
        "/login",
        "/signup",
        "/verify",
        "/forgot-password",
        "/reset-password",
    })
    admin_prefix: str = "/admin"
    login_path: str = "/login"
    workspace_path: str = "/workspace"
    dashboard_path: str = "/dashboard"
    admin_path: str = "/admin"
    verify_path: str = "/verify"

    excluded_prefixes: tuple[str, ...] = (
        "/api/",
        "/_next/",
        "/static/",
    )
    excluded_exact: frozenset[str] = frozenset({
        "/health",
        "/favicon.ico",
    })
    static_extensions: tuple[str, ...] = (
        ".ico", ".png", ".jpg", ".jpeg", ".svg", ".css", ".js", ".webp",
    )

    @staticmethod
    def _under(path: str, base: str) -> bool:
        # Path-boundary match: "/admin" and "/admin/x", never "/administrator".
        base = base.rstrip("/") or "/"
        return path == base or path.startswith(base + "/")

    def is_public(self, path: str) -> bool:
        return any(self._under(path, route) for route in self.public_routes)

    def is_admin(self, path: str) -> bool:
        return self._under(path, self.admin_prefix)

    def is_excluded(self, path: str) -> bool:
        """Paths the gate never inspects (API, static assets, health)."""
        if path in self.excluded_exact:
            return True
        if any(path.startswith(prefix) for prefix in self.excluded_prefixes):
            return True
        return path.lower().endswith(self.static_extensions)


DEFAULT_ROUTES = RouteConfig()


def derive_project_ref(supabase_url: str) -> str:
    """Return the project ref from ``https://<ref>.supabase.co``.

    Falls back to the first host label for self-hosted URLs, and to
    ``local`` when no URL is configured.
    """
    if not supabase_url:
        return "local"
    host = urlparse(supabase_url).hostname or ""
    if not host:
        return "local"
    return host.split(".", 1)[0]


@dataclass(frozen=True, slots=True)
class PortalSettings:
    """Configuration for the portal FastAPI application.

    All fields have sensible defaults for local development.
    Non-local environments must supply real values for supabase_url,
    supabase_anon_key and supabase_service_role_key.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    # ── Supabase ───────────────────────────────────────────────────
    supabase_url: str = ""
    """Supabase project URL (e.g. https://xyz.supabase.co)."""

    supabase_anon_key: str = ""
    """Anon/publishable key. Combined with the caller's token for RLS-scoped reads."""

    supabase_service_role_key: str = ""
    """Service-role key for elevated PostgREST calls. Never log this."""

    supabase_jwt_secret: str = ""
    """HS256 secret for local token verification (local dev only)."""

    supabase_project_ref: str = ""
    """Explicit project ref. Derived from supabase_url when empty."""

    # ── Cookies ────────────────────────────────────────────────────
    cookie_secure: bool = False
    """Set the Secure flag on session cookies. Forced on outside local."""

    cookie_domain: str | None = None

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS

    # ── Routing ────────────────────────────────────────────────────
    routes: RouteConfig = field(default_factory=RouteConfig)

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    @property
    def project_ref(self) -> str:
        return self.supabase_project_ref or derive_project_ref(self.supabase_url)

    @property
    def session_cookie_name(self) -> str:
        return SESSION_COOKIE_TEMPLATE.format(ref=self.project_ref)

    @property
    def secure_cookies(self) -> bool:
        return self.cookie_secure or not self.is_local

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.is_local:
            if not self.supabase_url:
                errors.append(f"{self.environment}: supabase_url is required")
            if not self.supabase_anon_key:
                errors.append(f"{self.environment}: supabase_anon_key is required")
            if not self.supabase_service_role_key:
                errors.append(
                    f"{self.environment}: supabase_service_role_key is required"
                )
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> PortalSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct PortalSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = (
            tuple(o.strip() for o in cors_raw.split(",") if o.strip())
            if cors_raw
            else DEFAULT_CORS_ORIGINS
        )

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            supabase_url=env.get("SUPABASE_URL", ""),
            supabase_anon_key=env.get("SUPABASE_ANON_KEY", ""),
            supabase_service_role_key=env.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            supabase_jwt_secret=env.get("SUPABASE_JWT_SECRET", ""),
            supabase_project_ref=env.get("SUPABASE_PROJECT_REF", ""),
            cookie_secure=env.get("COOKIE_SECURE", "").lower() in ("1", "true", "yes"),
            cookie_domain=env.get("COOKIE_DOMAIN") or None,
            cors_origins=cors,
        )
