"""Request context for JSON API handlers.

API paths are outside the auth gate, so each handler resolves the caller
itself through ``get_portal_context``. Transport precedence: Bearer token >
session cookie. A cookie session refreshed during resolution is written
back on the response.

Error responses follow the API convention ``{"error": ..., "detail": ...}``
(nested under ``detail`` when raised as HTTPException).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from portal.app.security.profile_loader import ProfileUnavailable, UserProfile
from portal.app.security.session_cookies import (
    apply_session_cookies,
    clear_session_cookies,
)
from portal.app.security.session_resolver import SessionResult
from portal.app.security.token_verify import (
    AuthIdentity,
    SessionTokens,
    extract_bearer_token,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PortalContext:
    """The authenticated caller of an API request."""

    identity: AuthIdentity
    session: SessionResult
    profile: UserProfile | None

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def access_token(self) -> str | None:
        return self.session.access_token

    @property
    def is_admin(self) -> bool:
        return self.profile is not None and self.profile.is_admin

    @property
    def workspace_id(self) -> str | None:
        return self.profile.workspace_id if self.profile else None


def error_detail(error: str, detail: str, **extra: str) -> dict[str, str]:
    return {'error': error, 'detail': detail, **extra}


class SessionRequired(Exception):
    """No valid session for an API request (answered with 401).

    A plain HTTPException would drop the cookie deletions written to the
    injected response, so the 401 is built by ``session_required_response``.
    """

    def __init__(self, expire_cookie: bool = False) -> None:
        super().__init__('authentication required')
        self.expire_cookie = expire_cookie


async def session_required_response(request: Request, exc: SessionRequired) -> JSONResponse:
    """Exception handler for ``SessionRequired``; expires a rejected cookie."""
    response = JSONResponse(
        status_code=401,
        content={'detail': error_detail('unauthorized', 'Authentication required')},
        headers={'WWW-Authenticate': 'Bearer'},
    )
    if exc.expire_cookie:
        clear_session_cookies(
            response,
            request.cookies,
            request.app.state.deps.session_resolver.cookie_name,
            domain=request.app.state.settings.cookie_domain,
        )
    return response


async def resolve_request_session(request: Request, response: Response) -> SessionResult:
    """Resolve the caller's session from a Bearer token or the session cookie."""
    deps = request.app.state.deps
    settings = request.app.state.settings
    resolver = deps.session_resolver

    bearer = extract_bearer_token(request)
    if bearer:
        return await resolver.resolve_tokens(SessionTokens(access_token=bearer))

    session = await resolver.resolve(request.cookies)
    apply_session_cookies(
        response,
        request.cookies,
        resolver.cookie_name,
        session,
        secure=settings.secure_cookies,
        domain=settings.cookie_domain,
    )
    return session


async def get_portal_context(request: Request, response: Response) -> PortalContext:
    """FastAPI dependency returning the authenticated caller.

    Raises:
        SessionRequired: no valid session (401).
        HTTPException: 503 when the profile cannot be loaded.
    """
    session = await resolve_request_session(request, response)
    if not session.authenticated:
        raise SessionRequired(
            expire_cookie=session.clear_cookie and not extract_bearer_token(request),
        )
    request.state.auth_identity = session.identity

    try:
        profile = await request.app.state.deps.profile_loader.load(
            session.identity, session.access_token,
        )
    except ProfileUnavailable:
        logger.warning('Profile unavailable for %s', session.identity.user_id)
        raise HTTPException(
            status_code=503,
            detail=error_detail('profile_unavailable', 'User profile could not be loaded'),
        )
    request.state.user_profile = profile

    return PortalContext(identity=session.identity, session=session, profile=profile)


def require_admin(ctx: PortalContext = Depends(get_portal_context)) -> PortalContext:
    """FastAPI dependency that only lets admins through (403 otherwise)."""
    if not ctx.is_admin:
        raise HTTPException(
            status_code=403,
            detail=error_detail('forbidden', 'Admin access required'),
        )
    return ctx
