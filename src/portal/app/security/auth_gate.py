"""Auth gate middleware for portal pages.

For each page request:
  1. Excluded paths (``/api/*``, static assets, health) and CORS preflight
     pass through untouched.
  2. The session cookie is resolved to an identity (SessionResolver).
  3. For authenticated callers the profile is loaded (ProfileLoader).
  4. The routing policy decides: pass through, or redirect.

Failure policy: when the authorization decision cannot be made (profile
unavailable, or anything unexpected in steps 2-4) the gate fails closed. It
redirects to ``/login?error=auth_error`` unless the path is public, and
never puts error text into the response.

Downstream handlers find ``request.state.auth_identity`` and
``request.state.user_profile`` (both None when unknown).
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from ..settings import DEFAULT_ROUTES, RouteConfig
from .profile_loader import ProfileLoader, ProfileUnavailable
from .routing_policy import Decision, decide
from .session_cookies import apply_session_cookies
from .session_resolver import SessionResolver, SessionResult

logger = logging.getLogger(__name__)

AUTH_ERROR_CODE = 'auth_error'
REDIRECT_STATUS_CODE = 302


class AuthGateMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that enforces the routing policy on pages.

    Args:
        app: The ASGI application.
        session_resolver: Resolves the session cookie to an identity.
        profile_loader: Loads role and workspace for an identity.
        routes: Route layout (public set, admin prefix, landing paths).
        cookie_secure: Secure flag for refreshed session cookies.
        cookie_domain: Domain for refreshed session cookies.
    """

    def __init__(
        self,
        app,
        session_resolver: SessionResolver,
        profile_loader: ProfileLoader,
        routes: RouteConfig = DEFAULT_ROUTES,
        cookie_secure: bool = True,
        cookie_domain: str | None = None,
    ) -> None:
        super().__init__(app)
        self._resolver = session_resolver
        self._profiles = profile_loader
        self._routes = routes
        self._cookie_secure = cookie_secure
        self._cookie_domain = cookie_domain

    def _redirect(self, target: str, **query: str) -> RedirectResponse:
        url = target
        if query:
            url = f'{target}?{urlencode(query)}'
        return RedirectResponse(url=url, status_code=REDIRECT_STATUS_CODE)

    def _original_path(self, request: Request) -> str:
        path = request.url.path
        if request.url.query:
            path = f'{path}?{request.url.query}'
        return path

    async def _decide(self, request: Request, session: SessionResult) -> Decision:
        path = request.url.path
        if not session.authenticated:
            return decide(path, False, routes=self._routes)

        profile = await self._profiles.load(session.identity, session.access_token)
        request.state.user_profile = profile
        if profile is None:
            # Verified identity without a profile row: a new user who still
            # needs a workspace.
            return decide(path, True, None, False, routes=self._routes)
        return decide(
            path,
            True,
            profile.role,
            profile.has_workspace,
            routes=self._routes,
        )

    def _fail_closed(self, request: Request) -> RedirectResponse | None:
        if self._routes.is_public(request.url.path):
            return None
        return self._redirect(self._routes.login_path, error=AUTH_ERROR_CODE)

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.auth_identity = None
        request.state.user_profile = None

        path = request.url.path
        if request.method == 'OPTIONS' or self._routes.is_excluded(path):
            return await call_next(request)

        request_id = getattr(request.state, 'request_id', None)
        session: SessionResult | None = None
        response: Response | None = None

        try:
            session = await self._resolver.resolve(request.cookies)
            request.state.auth_identity = session.identity
            decision = await self._decide(request, session)
        except ProfileUnavailable:
            logger.warning('[%s] Profile unavailable on %s; failing closed', request_id, path)
            response = self._fail_closed(request)
        except Exception:
            logger.exception('[%s] Auth gate error on %s; failing closed', request_id, path)
            response = self._fail_closed(request)
        else:
            if not decision.is_allowed:
                logger.debug(
                    '[%s] %s -> %s (%s)', request_id, path, decision.target, decision.rule,
                )
                if decision.preserve_original:
                    response = self._redirect(
                        decision.target, redirectTo=self._original_path(request),
                    )
                else:
                    response = self._redirect(decision.target)

        if response is None:
            response = await call_next(request)

        if session is not None:
            apply_session_cookies(
                response,
                request.cookies,
                self._resolver.cookie_name,
                session,
                secure=self._cookie_secure,
                domain=self._cookie_domain,
            )
        return response
