"""Session resolution: cookie -> verified identity.

The session lives in one cookie named ``sb-<project-ref>-auth-token``. Large
values are split into numbered chunks (``<name>.0``, ``<name>.1``, ...) the
same way the Supabase SSR helpers do. The value is one of:

  - a raw access token,
  - a JSON object with ``access_token`` / ``refresh_token``,
  - a JSON array ``[access_token, refresh_token, ...]``,
  - any of the JSON forms prefixed with ``base64-`` (base64url encoded).

Resolution makes one verification call to the identity provider. When the
access token has expired and a refresh token is available, the session is
refreshed once and the new tokens are returned for the gate to write back.
Any other failure, including the provider being unreachable, resolves to
"not authenticated". There are no retries.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Mapping

from ..protocols import IdentityProvider
from .token_verify import (
    AuthIdentity,
    IdentityProviderUnavailable,
    SessionTokens,
    TokenVerificationError,
)

logger = logging.getLogger(__name__)

BASE64_PREFIX = 'base64-'
CODE_VERIFIER_SUFFIX = '-code-verifier'
MAX_CHUNK_SIZE = 3180
MAX_CHUNKS = 10


# ── Cookie codec ─────────────────────────────────────────────────────


def read_session_cookie(cookies: Mapping[str, str], name: str) -> str | None:
    """Return the joined cookie value, or None when absent."""
    value = cookies.get(name)
    if value:
        return value

    chunks: list[str] = []
    for i in range(MAX_CHUNKS):
        chunk = cookies.get(f'{name}.{i}')
        if chunk is None:
            break
        chunks.append(chunk)
    return ''.join(chunks) or None


def session_cookie_names(cookies: Mapping[str, str], name: str) -> list[str]:
    """All cookie names (plain and chunked) that belong to the session."""
    prefix = f'{name}.'
    return [
        key for key in cookies
        if key == name or (key.startswith(prefix) and key[len(prefix):].isdigit())
    ]


def _b64decode(data: str) -> str:
    padded = data + '=' * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode()).decode('utf-8')


def parse_session_cookie(value: str) -> SessionTokens | None:
    """Decode a session cookie value into tokens. None if unusable."""
    if not value:
        return None

    raw = value
    encoded = raw.startswith(BASE64_PREFIX)
    if encoded:
        try:
            raw = _b64decode(raw[len(BASE64_PREFIX):])
        except (binascii.Error, ValueError):
            return None

    if raw[:1] not in ('{', '['):
        # Bare access token; base64 values always wrap JSON.
        return None if encoded else SessionTokens(access_token=raw)

    try:
        payload = json.loads(raw)
    except ValueError:
        return None

    if isinstance(payload, dict):
        access_token = payload.get('access_token')
        if not isinstance(access_token, str) or not access_token:
            return None
        refresh_token = payload.get('refresh_token')
        expires_at = payload.get('expires_at')
        return SessionTokens(
            access_token=access_token,
            refresh_token=refresh_token if isinstance(refresh_token, str) else None,
            expires_at=expires_at if isinstance(expires_at, int) else None,
        )

    if isinstance(payload, list) and payload and isinstance(payload[0], str):
        refresh_token = payload[1] if len(payload) > 1 else None
        return SessionTokens(
            access_token=payload[0],
            refresh_token=refresh_token if isinstance(refresh_token, str) else None,
        )

    return None


def code_verifier_cookie_name(name: str) -> str:
    return f'{name}{CODE_VERIFIER_SUFFIX}'


def read_code_verifier(cookies: Mapping[str, str], name: str) -> str | None:
    """The PKCE verifier the browser stored when it started an auth flow.

    Stored as a JSON string, optionally ``base64-`` encoded.
    """
    raw = cookies.get(code_verifier_cookie_name(name))
    if not raw:
        return None
    if raw.startswith(BASE64_PREFIX):
        try:
            raw = _b64decode(raw[len(BASE64_PREFIX):])
        except (binascii.Error, ValueError):
            return None
    try:
        value = json.loads(raw)
    except ValueError:
        value = raw
    return value if isinstance(value, str) and value else None


def encode_session_cookie(tokens: SessionTokens) -> str:
    data = json.dumps(tokens.as_cookie_payload(), separators=(',', ':'))
    encoded = base64.urlsafe_b64encode(data.encode()).decode().rstrip('=')
    return f'{BASE64_PREFIX}{encoded}'


def session_cookie_chunks(name: str, value: str) -> list[tuple[str, str]]:
    """Split a cookie value into ``(name, value)`` pairs that fit the browser limit."""
    if len(value) <= MAX_CHUNK_SIZE:
        return [(name, value)]
    return [
        (f'{name}.{i}', value[start:start + MAX_CHUNK_SIZE])
        for i, start in enumerate(range(0, len(value), MAX_CHUNK_SIZE))
    ]


# ── Resolver ─────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class SessionResult:
    """Outcome of resolving one request's session.

    Attributes:
        authenticated: A verified identity was established.
        identity: The verified identity (None when unauthenticated).
        tokens: Tokens the identity was verified with (the new pair after
            a refresh).
        refreshed: ``tokens`` were issued during this resolution and must be
            written back as the session cookie.
        clear_cookie: A cookie was presented and the provider rejected it;
            the caller should expire it.
    """

    authenticated: bool
    identity: AuthIdentity | None = None
    tokens: SessionTokens | None = None
    refreshed: bool = False
    clear_cookie: bool = False

    @classmethod
    def anonymous(cls, clear_cookie: bool = False) -> SessionResult:
        return cls(authenticated=False, clear_cookie=clear_cookie)

    @property
    def access_token(self) -> str | None:
        return self.tokens.access_token if self.tokens else None


class SessionResolver:
    """Turns request cookies into a ``SessionResult``.

    Args:
        identity_provider: Verifies access tokens and refreshes sessions.
        cookie_name: Session cookie name (``sb-<ref>-auth-token``).
    """

    def __init__(self, identity_provider: IdentityProvider, cookie_name: str) -> None:
        self._provider = identity_provider
        self._cookie_name = cookie_name

    @property
    def cookie_name(self) -> str:
        return self._cookie_name

    async def resolve(self, cookies: Mapping[str, str]) -> SessionResult:
        raw = read_session_cookie(cookies, self._cookie_name)
        if raw is None:
            return SessionResult.anonymous()

        tokens = parse_session_cookie(raw)
        if tokens is None:
            logger.info('Session cookie could not be parsed')
            return SessionResult.anonymous(clear_cookie=True)

        return await self.resolve_tokens(tokens)

    async def resolve_tokens(self, tokens: SessionTokens) -> SessionResult:
        """Verify ``tokens``, refreshing once if the access token expired."""
        try:
            identity = await self._provider.get_user(tokens.access_token)
            return SessionResult(authenticated=True, identity=identity, tokens=tokens)
        except IdentityProviderUnavailable as exc:
            logger.warning('Identity provider unavailable: %s', exc.detail or exc.code)
            return SessionResult.anonymous()
        except TokenVerificationError as exc:
            if exc.code != 'token_expired' or not tokens.refresh_token:
                logger.info('Session token rejected: %s', exc.code)
                return SessionResult.anonymous(clear_cookie=True)

        return await self._refresh(tokens.refresh_token)

    async def _refresh(self, refresh_token: str) -> SessionResult:
        try:
            new_tokens = await self._provider.refresh_session(refresh_token)
            identity = await self._provider.get_user(new_tokens.access_token)
        except IdentityProviderUnavailable as exc:
            logger.warning('Session refresh unavailable: %s', exc.detail or exc.code)
            return SessionResult.anonymous()
        except TokenVerificationError as exc:
            logger.info('Session refresh rejected: %s', exc.code)
            return SessionResult.anonymous(clear_cookie=True)

        logger.debug('Session refreshed for user %s', identity.user_id)
        return SessionResult(
            authenticated=True,
            identity=identity,
            tokens=new_tokens,
            refreshed=True,
        )
