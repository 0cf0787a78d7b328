"""Supabase auth (GoTrue) client.

The identity provider used outside local development. Every call is a
single HTTP request; nothing here retries. Errors are normalized to:

  - ``TokenVerificationError(code)`` when the provider answers 4xx.
  - ``IdentityProviderUnavailable`` on transport errors and 5xx answers.

Endpoints:
  - ``GET  /auth/v1/user``                             verify an access token
  - ``POST /auth/v1/token?grant_type=refresh_token``   refresh a session
  - ``POST /auth/v1/token?grant_type=password``        password sign-in
  - ``POST /auth/v1/token?grant_type=pkce``            exchange an auth code
  - ``POST /auth/v1/verify``                           confirm an email link
  - ``POST /auth/v1/signup``                           sign-up
  - ``POST /auth/v1/logout``                           revoke a session
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..db.supabase_client import get_shared_async_client
from .token_verify import (
    AuthIdentity,
    IdentityProviderUnavailable,
    SessionTokens,
    TokenVerificationError,
    is_token_expired,
)

logger = logging.getLogger(__name__)


def _error_code(resp: httpx.Response, default: str) -> tuple[str, str]:
    """Pull ``(code, detail)`` out of a GoTrue error body.

    GoTrue has answered with both ``{"error", "error_description"}`` and
    ``{"error_code", "msg"}`` shapes.
    """
    try:
        payload = resp.json()
    except ValueError:
        return default, ''
    if not isinstance(payload, dict):
        return default, ''
    code = payload.get('error_code') or payload.get('error') or default
    detail = (
        payload.get('msg')
        or payload.get('error_description')
        or payload.get('message')
        or ''
    )
    return str(code), str(detail)


def _identity_from_user(user: dict[str, Any]) -> AuthIdentity:
    user_id = user.get('id')
    if not user_id:
        raise TokenVerificationError('missing_user_id')
    email = user.get('email') or ''
    return AuthIdentity(
        user_id=user_id,
        email=email.lower(),
        role=user.get('role') or 'authenticated',
        user_metadata=user.get('user_metadata') or {},
    )


class SupabaseAuthClient:
    """Async client for the Supabase auth API.

    Args:
        supabase_url: Project URL.
        anon_key: Anon/publishable key, sent as ``apikey``.
        http_client: Optional httpx client (tests inject a mock transport).
    """

    def __init__(
        self,
        *,
        supabase_url: str,
        anon_key: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        if not supabase_url:
            raise ValueError('supabase_url is required')
        if not anon_key:
            raise ValueError('anon_key is required')
        self._base_url = f'{supabase_url.rstrip("/")}/auth/v1'
        self._anon_key = anon_key
        self._client = http_client or get_shared_async_client()
        self._timeout_seconds = float(timeout_seconds)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        bearer: str | None = None,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        error_default: str = 'invalid_token',
    ) -> httpx.Response:
        headers = {'apikey': self._anon_key}
        if bearer:
            headers['Authorization'] = f'Bearer {bearer}'
        try:
            resp = await self._client.request(
                method,
                f'{self._base_url}{path}',
                params=params,
                json=json_body,
                headers=headers,
                timeout=self._timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise IdentityProviderUnavailable(type(exc).__name__) from exc

        if resp.status_code >= 500:
            raise IdentityProviderUnavailable(f'status {resp.status_code}')
        if resp.status_code >= 400:
            code, detail = _error_code(resp, error_default)
            raise TokenVerificationError(code, detail)
        return resp

    async def get_user(self, access_token: str) -> AuthIdentity:
        """Verify an access token and return the identity it belongs to."""
        if not access_token or not access_token.strip():
            raise TokenVerificationError('empty_token')
        # An expired JWT is rejected without a round trip so the caller can
        # go straight to the refresh flow.
        if is_token_expired(access_token):
            raise TokenVerificationError('token_expired')

        resp = await self._request('GET', '/user', bearer=access_token)
        return _identity_from_user(resp.json())

    async def refresh_session(self, refresh_token: str) -> SessionTokens:
        if not refresh_token:
            raise TokenVerificationError('missing_refresh_token')
        resp = await self._request(
            'POST',
            '/token',
            params={'grant_type': 'refresh_token'},
            json_body={'refresh_token': refresh_token},
            error_default='invalid_grant',
        )
        return SessionTokens.from_payload(resp.json())

    async def sign_in_with_password(self, email: str, password: str) -> SessionTokens:
        resp = await self._request(
            'POST',
            '/token',
            params={'grant_type': 'password'},
            json_body={'email': email, 'password': password},
            error_default='invalid_credentials',
        )
        return SessionTokens.from_payload(resp.json())

    async def sign_up(self, email: str, password: str) -> dict[str, Any]:
        """Create an auth user.

        Returns the provider payload: a session (``access_token`` + ``user``)
        when email confirmation is off, otherwise the bare user object.
        """
        resp = await self._request(
            'POST',
            '/signup',
            json_body={'email': email, 'password': password},
            error_default='signup_failed',
        )
        return resp.json()

    async def sign_out(self, access_token: str) -> None:
        await self._request('POST', '/logout', bearer=access_token)
        logger.debug('Supabase session revoked')

    async def exchange_code(self, auth_code: str, code_verifier: str) -> SessionTokens:
        """Trade a PKCE auth code from an email or OAuth link for a session."""
        if not auth_code:
            raise TokenVerificationError('missing_auth_code')
        if not code_verifier:
            raise TokenVerificationError('missing_code_verifier')
        resp = await self._request(
            'POST',
            '/token',
            params={'grant_type': 'pkce'},
            json_body={'auth_code': auth_code, 'code_verifier': code_verifier},
            error_default='invalid_grant',
        )
        return SessionTokens.from_payload(resp.json())

    async def verify_otp(self, token_hash: str, otp_type: str) -> SessionTokens:
        """Confirm an email link (``signup``, ``email``, ``recovery``...)."""
        if not token_hash or not otp_type:
            raise TokenVerificationError('missing_verification_params')
        resp = await self._request(
            'POST',
            '/verify',
            json_body={'type': otp_type, 'token_hash': token_hash},
            error_default='otp_expired',
        )
        return SessionTokens.from_payload(resp.json())
