"""Auth endpoints: login, signup, email verification, logout, session, callback.

The session is the Supabase cookie ``sb-<ref>-auth-token``; these handlers
write it (chunked when large) and expire it. Tokens come from the identity
provider: the Supabase auth API outside local development.

Response contracts:
  POST /api/auth/login              -> 200 { user, redirectTo }
  POST /api/auth/signup             -> 200 { user, confirmation_required }
  POST /api/auth/logout             -> 200 { status: logged_out }
  GET  /api/auth/session            -> 200 { authenticated, user }
  GET  /api/auth/callback           -> 302 to ``next`` with session cookie
  GET  /api/auth/verify             -> 302 to the landing page with session cookie
  POST /api/auth/create-user-record -> 200 { user, created }
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field

from portal.app.protocols import IdentityProvider
from portal.app.routes.context import (
    PortalContext,
    get_portal_context,
    resolve_request_session,
)
from portal.app.security.profile_loader import (
    ProfileLoader,
    ProfileUnavailable,
    UserProfile,
)
from portal.app.security.routing_policy import is_safe_redirect, landing_path
from portal.app.security.session_cookies import (
    clear_session_cookies,
    set_session_cookies,
)
from portal.app.security.session_resolver import (
    SessionResolver,
    code_verifier_cookie_name,
    parse_session_cookie,
    read_code_verifier,
    read_session_cookie,
)
from portal.app.security.token_verify import (
    AuthIdentity,
    IdentityProviderUnavailable,
    SessionTokens,
    TokenVerificationError,
)
from portal.app.settings import PortalSettings

logger = logging.getLogger(__name__)


# ── Request schemas ──────────────────────────────────────────────────


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1)
    redirect_to: str | None = Field(default=None, alias='redirectTo')


class SignupRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=6)


# ── Helpers ──────────────────────────────────────────────────────────


def _provider_unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={
            'error': 'auth_unavailable',
            'detail': 'Authentication service is unavailable',
        },
    )


def _profile_unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={
            'error': 'profile_unavailable',
            'detail': 'User profile could not be loaded',
        },
    )


def _anonymous_user(identity: AuthIdentity) -> dict:
    return {
        'id': identity.user_id,
        'email': identity.email,
        'role': None,
        'isAdmin': False,
        'workspace_id': None,
    }


# ── Route factory ────────────────────────────────────────────────────


def create_auth_router(
    identity_provider: IdentityProvider,
    session_resolver: SessionResolver,
    profile_loader: ProfileLoader,
    settings: PortalSettings,
) -> APIRouter:
    """Create the auth router.

    Args:
        identity_provider: Password, signup, email verification, refresh
            and logout flows.
        session_resolver: Verifies tokens and owns the cookie name.
        profile_loader: Loads or creates the caller's profile row.
        settings: Cookie flags and route layout.
    """
    router = APIRouter(tags=['auth'])
    cookie_name = session_resolver.cookie_name
    routes = settings.routes
    verifier_cookie = code_verifier_cookie_name(cookie_name)
    verify_failed_url = f'{routes.verify_path}?error=verification_failed'

    def _write_session(response: Response, request: Request, tokens: SessionTokens) -> None:
        set_session_cookies(
            response,
            request.cookies,
            cookie_name,
            tokens,
            secure=settings.secure_cookies,
            domain=settings.cookie_domain,
        )

    async def _establish_session(
        tokens: SessionTokens,
    ) -> tuple[SessionTokens, UserProfile | None] | None:
        """Verify freshly issued tokens and make sure the profile row exists.

        None when the provider does not accept the tokens. The profile is
        None when the row could not be loaded; the caller still gets a
        session and the row is created again on the next login.
        """
        session = await session_resolver.resolve_tokens(tokens)
        if not session.authenticated:
            return None
        try:
            profile = await profile_loader.ensure_profile(
                session.identity, session.access_token,
            )
        except ProfileUnavailable:
            logger.warning('Profile unavailable after redirect for %s', session.identity.user_id)
            profile = None
        return session.tokens, profile

    def _redirect_with_session(
        request: Request, target: str, tokens: SessionTokens,
    ) -> RedirectResponse:
        response = RedirectResponse(url=target, status_code=302)
        _write_session(response, request, tokens)
        if verifier_cookie in request.cookies:
            response.delete_cookie(verifier_cookie, path='/', domain=settings.cookie_domain)
        return response

    @router.post('/api/auth/login')
    async def login(body: LoginRequest, request: Request, response: Response):
        """Password sign-in. Sets the session cookie on success."""
        try:
            tokens = await identity_provider.sign_in_with_password(
                body.email.strip().lower(), body.password,
            )
        except IdentityProviderUnavailable:
            return _provider_unavailable()
        except TokenVerificationError as exc:
            logger.info('Login rejected: %s', exc.code)
            return JSONResponse(
                status_code=401,
                content={
                    'error': 'invalid_credentials',
                    'code': exc.code,
                    'detail': exc.detail or 'Invalid email or password',
                },
            )

        session = await session_resolver.resolve_tokens(tokens)
        if not session.authenticated:
            return _provider_unavailable()

        try:
            profile = await profile_loader.ensure_profile(
                session.identity, session.access_token,
            )
        except ProfileUnavailable:
            return _profile_unavailable()

        _write_session(response, request, session.tokens)
        target = landing_path(profile.role, profile.has_workspace, routes)
        if is_safe_redirect(body.redirect_to) and not routes.is_public(
            body.redirect_to.split('?', 1)[0]
        ):
            target = body.redirect_to
        return {'user': profile.as_dict(), 'redirectTo': target}

    @router.post('/api/auth/signup')
    async def signup(body: SignupRequest, request: Request, response: Response):
        """Create an auth user and its ``client`` profile row.

        When the provider returns a session (email confirmation disabled)
        the session cookie is set right away; otherwise the caller has to
        confirm the address first.
        """
        try:
            payload = await identity_provider.sign_up(
                body.email.strip().lower(), body.password,
            )
        except IdentityProviderUnavailable:
            return _provider_unavailable()
        except TokenVerificationError as exc:
            logger.info('Signup rejected: %s', exc.code)
            return JSONResponse(
                status_code=400,
                content={
                    'error': 'signup_failed',
                    'code': exc.code,
                    'detail': exc.detail or 'Signup failed',
                },
            )

        user = payload.get('user') if isinstance(payload.get('user'), dict) else payload
        user_id = user.get('id')
        email = (user.get('email') or body.email).lower()

        user_body: dict = {'id': user_id, 'email': email}
        if user_id:
            try:
                profile = await profile_loader.ensure_profile(
                    AuthIdentity(user_id=user_id, email=email),
                )
                user_body = profile.as_dict()
            except ProfileUnavailable:
                # The auth user exists; the row is created again on first login.
                logger.warning('Could not create profile row for new user %s', user_id)

        confirmation_required = not payload.get('access_token')
        if not confirmation_required:
            _write_session(response, request, SessionTokens.from_payload(payload))

        return {'user': user_body, 'confirmation_required': confirmation_required}

    @router.post('/api/auth/logout')
    async def logout(request: Request):
        """Revoke the session (best effort) and expire the cookie."""
        raw = read_session_cookie(request.cookies, cookie_name)
        tokens = parse_session_cookie(raw) if raw else None
        if tokens is not None:
            try:
                await identity_provider.sign_out(tokens.access_token)
            except TokenVerificationError as exc:
                logger.info('Provider sign-out failed: %s', exc.code)

        response = JSONResponse(content={'status': 'logged_out'})
        clear_session_cookies(
            response, request.cookies, cookie_name, domain=settings.cookie_domain,
        )
        return response

    @router.get('/api/auth/session')
    async def get_session(request: Request, response: Response):
        """Current session status. Refreshes the cookie when needed."""
        session = await resolve_request_session(request, response)
        if not session.authenticated:
            return {'authenticated': False, 'user': None}

        try:
            profile = await profile_loader.load(session.identity, session.access_token)
        except ProfileUnavailable:
            return _profile_unavailable()

        user = profile.as_dict() if profile else _anonymous_user(session.identity)
        return {'authenticated': True, 'user': user}

    @router.get('/api/auth/callback')
    async def auth_callback(
        request: Request,
        code: str | None = Query(default=None),
        access_token: str | None = Query(default=None),
        refresh_token: str | None = Query(default=None),
        next_path: str | None = Query(default=None, alias='next'),
    ):
        """Finish an auth redirect, set the cookie, and redirect.

        The redirect carries either a PKCE ``code`` or the tokens themselves.

        1. Exchange the code, or verify the access token.
        2. Make sure the profile row exists.
        3. Redirect to ``next`` (same-origin paths only) or the dashboard.
        """
        if code:
            try:
                tokens = await identity_provider.exchange_code(
                    code, read_code_verifier(request.cookies, cookie_name) or '',
                )
            except IdentityProviderUnavailable:
                return _provider_unavailable()
            except TokenVerificationError as exc:
                logger.info('Code exchange rejected: %s', exc.code)
                return JSONResponse(
                    status_code=401,
                    content={
                        'error': 'auth_callback_failed',
                        'code': exc.code,
                        'detail': 'Auth code could not be exchanged',
                    },
                )
        elif access_token:
            tokens = SessionTokens(access_token=access_token, refresh_token=refresh_token)
        else:
            return JSONResponse(
                status_code=400,
                content={
                    'error': 'missing_token',
                    'detail': 'code or access_token query parameter is required',
                },
            )

        established = await _establish_session(tokens)
        if established is None:
            return JSONResponse(
                status_code=401,
                content={
                    'error': 'auth_callback_failed',
                    'detail': 'Access token could not be verified',
                },
            )

        target = next_path if is_safe_redirect(next_path) else routes.dashboard_path
        return _redirect_with_session(request, target, established[0])

    @router.get('/api/auth/verify')
    async def verify_email(
        request: Request,
        code: str | None = Query(default=None),
        token_hash: str | None = Query(default=None),
        otp_type: str | None = Query(default=None, alias='type'),
    ):
        """Landing point of the confirmation email.

        Accepts a PKCE ``code`` or a ``token_hash`` + ``type`` pair. On
        success the session cookie is set, the ``client`` profile row is
        created, and the caller lands on the dashboard, or on workspace
        setup while they have no workspace. A rejected link goes back to
        the verify page with ``?error=verification_failed``.
        """
        try:
            if code:
                tokens = await identity_provider.exchange_code(
                    code, read_code_verifier(request.cookies, cookie_name) or '',
                )
            elif token_hash and otp_type:
                tokens = await identity_provider.verify_otp(token_hash, otp_type)
            else:
                return JSONResponse(
                    status_code=400,
                    content={
                        'error': 'missing_verification_params',
                        'detail': 'Missing verification parameters',
                    },
                )
        except IdentityProviderUnavailable:
            return RedirectResponse(url=f'{routes.login_path}?error=auth_error', status_code=302)
        except TokenVerificationError as exc:
            logger.info('Email verification rejected: %s', exc.code)
            return RedirectResponse(url=verify_failed_url, status_code=302)

        established = await _establish_session(tokens)
        if established is None:
            return RedirectResponse(url=verify_failed_url, status_code=302)

        tokens, profile = established
        if profile is None:
            target = routes.workspace_path
        else:
            target = landing_path(profile.role, profile.has_workspace, routes)
        return _redirect_with_session(request, target, tokens)

    @router.post('/api/auth/create-user-record')
    async def create_user_record(ctx: PortalContext = Depends(get_portal_context)):
        """Ensure the caller's profile row exists."""
        if ctx.profile is not None:
            return {'user': ctx.profile.as_dict(), 'created': False}
        try:
            profile: UserProfile = await profile_loader.ensure_profile(
                ctx.identity, ctx.access_token,
            )
        except ProfileUnavailable:
            return _profile_unavailable()
        return {'user': profile.as_dict(), 'created': True}

    return router
