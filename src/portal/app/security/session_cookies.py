"""Writing and expiring the session cookie on responses."""

from __future__ import annotations

from typing import Mapping

from starlette.responses import Response

from .session_resolver import (
    SessionResult,
    encode_session_cookie,
    session_cookie_chunks,
    session_cookie_names,
)
from .token_verify import SessionTokens

# Matches the Supabase SSR helpers' default lifetime.
SESSION_COOKIE_MAX_AGE = 400 * 24 * 3600


def set_session_cookies(
    response: Response,
    existing: Mapping[str, str],
    cookie_name: str,
    tokens: SessionTokens,
    *,
    secure: bool = True,
    domain: str | None = None,
) -> None:
    """Write ``tokens`` as the session cookie, expiring leftover chunks."""
    pairs = session_cookie_chunks(cookie_name, encode_session_cookie(tokens))
    written = {name for name, _ in pairs}
    for name, value in pairs:
        response.set_cookie(
            key=name,
            value=value,
            httponly=True,
            secure=secure,
            samesite='lax',
            max_age=SESSION_COOKIE_MAX_AGE,
            path='/',
            domain=domain,
        )
    for stale in session_cookie_names(existing, cookie_name):
        if stale not in written:
            response.delete_cookie(stale, path='/', domain=domain)


def clear_session_cookies(
    response: Response,
    existing: Mapping[str, str],
    cookie_name: str,
    *,
    domain: str | None = None,
) -> None:
    names = session_cookie_names(existing, cookie_name) or [cookie_name]
    for name in names:
        response.delete_cookie(name, path='/', domain=domain)


def apply_session_cookies(
    response: Response,
    existing: Mapping[str, str],
    cookie_name: str,
    session: SessionResult,
    *,
    secure: bool = True,
    domain: str | None = None,
) -> None:
    """Reflect a resolution outcome onto the response cookies."""
    if session.refreshed and session.tokens is not None:
        set_session_cookies(
            response, existing, cookie_name, session.tokens,
            secure=secure, domain=domain,
        )
    elif session.clear_cookie:
        clear_session_cookies(response, existing, cookie_name, domain=domain)
