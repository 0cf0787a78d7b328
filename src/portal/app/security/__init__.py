"""Security: session resolution, profile loading and the routing gate.

Only the dependency-free building blocks are re-exported here; import the
middleware and loaders from their modules.
"""

from .routing_policy import Decision, DecisionKind, decide
from .token_verify import (
    AuthIdentity,
    IdentityProviderUnavailable,
    JWTIdentityProvider,
    SessionTokens,
    TokenVerificationError,
    TokenVerifier,
    create_token_verifier,
    extract_bearer_token,
)

__all__ = [
    'AuthIdentity',
    'Decision',
    'DecisionKind',
    'IdentityProviderUnavailable',
    'JWTIdentityProvider',
    'SessionTokens',
    'TokenVerificationError',
    'TokenVerifier',
    'create_token_verifier',
    'decide',
    'extract_bearer_token',
]
