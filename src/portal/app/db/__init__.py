"""DB helpers for portal repositories (Supabase PostgREST)."""

from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNoRowsError,
    SupabaseNotFoundError,
)
from .onboarding_repo import SupabaseOnboardingRepository
from .supabase_client import SupabaseClient
from .user_repo import SupabaseUserRepository
from .workspace_repo import SupabaseWorkspaceRepository

__all__ = [
    "SupabaseAuthError",
    "SupabaseClient",
    "SupabaseConflictError",
    "SupabaseError",
    "SupabaseNoRowsError",
    "SupabaseNotFoundError",
    "SupabaseOnboardingRepository",
    "SupabaseUserRepository",
    "SupabaseWorkspaceRepository",
]
