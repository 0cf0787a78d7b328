"""Identity types and local verification of Supabase access tokens.

``JWTIdentityProvider`` checks tokens in-process against the project's
signing key and is what local development runs with. Deployed environments
ask the Supabase auth API instead (``supabase_auth.SupabaseAuthClient``).
Both report failures as ``TokenVerificationError`` with the same codes.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import jwt
from jwt import PyJWKClient, PyJWKClientError
from starlette.requests import Request

# ── Constants ─────────────────────────────────────────────────────────

DEFAULT_AUDIENCE = 'authenticated'
DEFAULT_ALGORITHMS = ['RS256']
JWKS_CACHE_TTL_SECONDS = 300
BEARER_PREFIX = 'Bearer '

# ── Types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class AuthIdentity:
    """Verified identity of the caller.

    Attributes:
        user_id: The Supabase auth.users UUID (``sub`` claim / ``id`` field).
        email: Normalized email address.
        role: Supabase auth role (typically ``authenticated``). This is not
            the portal role; that lives on the user profile row.
        user_metadata: Provider-side metadata for the user.
    """

    user_id: str
    email: str
    role: str = 'authenticated'
    user_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SessionTokens:
    """An access/refresh token pair as issued by the auth provider."""

    access_token: str
    refresh_token: str | None = None
    expires_at: int | None = None
    token_type: str = 'bearer'
    user: dict[str, Any] | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SessionTokens:
        """Build tokens from an auth API session payload.

        Raises:
            TokenVerificationError: the payload carries no access token.
        """
        access_token = payload.get('access_token')
        if not access_token:
            raise TokenVerificationError('missing_access_token')
        expires_at = payload.get('expires_at')
        if expires_at is None and payload.get('expires_in') is not None:
            expires_at = int(time.time()) + int(payload['expires_in'])
        return cls(
            access_token=access_token,
            refresh_token=payload.get('refresh_token'),
            expires_at=int(expires_at) if expires_at is not None else None,
            token_type=payload.get('token_type') or 'bearer',
            user=payload.get('user'),
        )

    def as_cookie_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            'access_token': self.access_token,
            'token_type': self.token_type,
        }
        if self.refresh_token:
            payload['refresh_token'] = self.refresh_token
        if self.expires_at is not None:
            payload['expires_at'] = self.expires_at
        return payload


class TokenVerificationError(Exception):
    """Raised when the identity provider rejects a token."""

    def __init__(self, code: str, detail: str = '') -> None:
        self.code = code
        self.detail = detail
        super().__init__(f'{code}: {detail}' if detail else code)


class IdentityProviderUnavailable(TokenVerificationError):
    """The identity provider could not be reached or answered unexpectedly."""

    def __init__(self, detail: str = '') -> None:
        super().__init__('provider_unavailable', detail)


# ── Key providers ─────────────────────────────────────────────────────


class KeyProvider(Protocol):
    def get_signing_key(self, token: str) -> Any: ...


class JWKSKeyProvider:
    """RS256 keys from the project's JWKS document, cached by PyJWKClient."""

    def __init__(self, jwks_url: str, cache_ttl: int = JWKS_CACHE_TTL_SECONDS) -> None:
        self.jwks_url = jwks_url
        self._jwks = PyJWKClient(jwks_url, cache_jwk_set=True, lifespan=cache_ttl)

    def get_signing_key(self, token: str) -> Any:
        # An unreachable JWKS endpoint is an outage, not a bad token.
        try:
            signing_key = self._jwks.get_signing_key_from_jwt(token)
        except PyJWKClientError as exc:
            raise IdentityProviderUnavailable(str(exc)) from exc
        return signing_key.key


class StaticKeyProvider:
    """Shared HS256 secret (local development)."""

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def get_signing_key(self, token: str) -> str:
        return self._secret


# ── Token Verifier ───────────────────────────────────────────────────

# Checked in order; the first matching PyJWT error decides the code.
_DECODE_ERROR_CODES: tuple[tuple[type[Exception], str], ...] = (
    (jwt.ExpiredSignatureError, 'token_expired'),
    (jwt.InvalidAudienceError, 'invalid_audience'),
    (jwt.DecodeError, 'decode_error'),
    (jwt.InvalidTokenError, 'invalid_token'),
)


class TokenVerifier:
    """Checks signature, audience and expiry, then reads the caller identity."""

    def __init__(
        self,
        key_provider: KeyProvider,
        audience: str = DEFAULT_AUDIENCE,
        algorithms: list[str] | None = None,
        require_email: bool = True,
    ) -> None:
        self._key_provider = key_provider
        self._audience = audience
        self._algorithms = list(algorithms or DEFAULT_ALGORITHMS)
        self._require_email = require_email

    def _decode(self, token: str) -> dict[str, Any]:
        try:
            return jwt.decode(
                token,
                self._key_provider.get_signing_key(token),
                algorithms=self._algorithms,
                audience=self._audience,
                options={'require': ['sub', 'exp', 'aud']},
            )
        except jwt.InvalidTokenError as exc:
            for error_cls, code in _DECODE_ERROR_CODES:
                if isinstance(exc, error_cls):
                    raise TokenVerificationError(code, str(exc)) from exc
            raise

    def verify(self, token: str) -> AuthIdentity:
        """Return the identity carried by ``token``.

        Raises:
            TokenVerificationError: the token is empty, malformed, forged,
                expired, meant for another audience, or missing claims.
        """
        if not (token or '').strip():
            raise TokenVerificationError('empty_token')

        claims = self._decode(token)
        if not claims.get('sub'):
            raise TokenVerificationError('missing_sub_claim')

        email = (claims.get('email') or '').lower()
        if not email and self._require_email:
            raise TokenVerificationError('missing_email_claim')

        return AuthIdentity(
            user_id=claims['sub'],
            email=email,
            role=claims.get('role') or 'authenticated',
            user_metadata=claims.get('user_metadata') or {},
        )


# ── Helpers ──────────────────────────────────────────────────────────


def token_expires_at(token: str) -> int | None:
    """Read the ``exp`` claim without verifying the signature.

    Returns None for tokens that are not JWTs or carry no ``exp``.
    """
    try:
        claims = jwt.decode(
            token,
            options={'verify_signature': False, 'verify_exp': False},
        )
    except jwt.InvalidTokenError:
        return None
    exp = claims.get('exp')
    return int(exp) if isinstance(exp, (int, float)) else None


def is_token_expired(token: str, leeway: int = 0) -> bool:
    exp = token_expires_at(token)
    return exp is not None and exp <= int(time.time()) + leeway


def extract_bearer_token(request: Request) -> str | None:
    """Extract a Bearer token from the Authorization header.

    Returns None if no Authorization header or non-Bearer scheme.
    """
    auth_header = request.headers.get('authorization', '')
    if auth_header.startswith(BEARER_PREFIX):
        return auth_header[len(BEARER_PREFIX):].strip() or None
    return None


# ── Local identity provider ──────────────────────────────────────────


class JWTIdentityProvider:
    """Identity provider that verifies tokens locally (no auth API).

    Only ``get_user`` is supported; the password, refresh and email
    verification flows need the Supabase auth API and raise
    ``TokenVerificationError``.
    """

    def __init__(self, verifier: TokenVerifier) -> None:
        self._verifier = verifier

    async def get_user(self, access_token: str) -> AuthIdentity:
        return self._verifier.verify(access_token)

    async def refresh_session(self, refresh_token: str) -> SessionTokens:
        raise TokenVerificationError('refresh_unsupported')

    async def sign_in_with_password(self, email: str, password: str) -> SessionTokens:
        raise TokenVerificationError('password_login_unsupported')

    async def sign_up(self, email: str, password: str) -> dict[str, Any]:
        raise TokenVerificationError('signup_unsupported')

    async def sign_out(self, access_token: str) -> None:
        return None

    async def exchange_code(self, auth_code: str, code_verifier: str) -> SessionTokens:
        raise TokenVerificationError('code_exchange_unsupported')

    async def verify_otp(self, token_hash: str, otp_type: str) -> SessionTokens:
        raise TokenVerificationError('otp_unsupported')


# ── Factory ──────────────────────────────────────────────────────────


def create_token_verifier(
    supabase_url: str | None = None,
    jwt_secret: str | None = None,
    audience: str = DEFAULT_AUDIENCE,
) -> TokenVerifier:
    """Build a verifier for the configured project.

    A ``jwt_secret`` selects HS256 (local setup) and wins over
    ``supabase_url``, which selects RS256 keys from the project JWKS.
    """
    if jwt_secret:
        return TokenVerifier(StaticKeyProvider(jwt_secret), audience, ['HS256'])
    if not supabase_url:
        raise ValueError('supabase_url or jwt_secret is required to verify tokens')
    jwks_url = supabase_url.rstrip('/') + '/auth/v1/.well-known/jwks.json'
    return TokenVerifier(JWKSKeyProvider(jwks_url), audience, ['RS256'])
