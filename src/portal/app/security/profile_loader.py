"""Profile loading with a two-tier read policy.

The user row is read first with the caller's own credentials (row-level
security applies). Row-level policy can legitimately hide a user's own row,
for example right after sign-up before the row exists, so a failed or empty
restricted read is never taken as "no profile": the same lookup is repeated
with the service role.

  - restricted read finds the row           -> profile
  - restricted read fails/empty, elevated finds it -> profile
  - elevated read succeeds but finds nothing -> None (new user, not an error)
  - elevated read fails                      -> ProfileUnavailable
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..db.errors import SupabaseConflictError, SupabaseError
from ..protocols import RestrictedUserRepositoryFactory, UserRepository
from .token_verify import AuthIdentity

logger = logging.getLogger(__name__)


class UserRole(str, Enum):
    ADMIN = 'admin'
    CLIENT = 'client'

    @classmethod
    def parse(cls, value: Any) -> UserRole | None:
        """Map a stored role to the enum; unknown values are None (not admin)."""
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class UserProfile:
    """Application-level view of a user."""

    user_id: str
    email: str
    role: UserRole | None
    workspace_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN

    @property
    def has_workspace(self) -> bool:
        return bool(self.workspace_id)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> UserProfile:
        return cls(
            user_id=row['id'],
            email=row.get('email') or '',
            role=UserRole.parse(row.get('role')),
            workspace_id=row.get('workspace_id'),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            'id': self.user_id,
            'email': self.email,
            'role': self.role.value if self.role else UserRole.CLIENT.value,
            'isAdmin': self.is_admin,
            'workspace_id': self.workspace_id,
        }


class ProfileUnavailable(Exception):
    """Neither the restricted nor the elevated read could be completed."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f'profile unavailable for user {user_id}')


class ProfileLoader:
    """Loads ``UserProfile`` rows with restricted-then-elevated reads.

    Args:
        elevated_repo: Service-role user repository.
        restricted_repo_factory: Builds a user repository bound to the
            caller's access token. When None, or when no token is known,
            the restricted tier is skipped.
    """

    def __init__(
        self,
        elevated_repo: UserRepository,
        restricted_repo_factory: RestrictedUserRepositoryFactory | None = None,
    ) -> None:
        self._elevated = elevated_repo
        self._restricted_factory = restricted_repo_factory

    @property
    def elevated_repo(self) -> UserRepository:
        return self._elevated

    async def _restricted_read(
        self, user_id: str, access_token: str | None,
    ) -> dict[str, Any] | None:
        if self._restricted_factory is None or not access_token:
            return None
        try:
            return await self._restricted_factory(access_token).get(user_id)
        except SupabaseError as exc:
            logger.info(
                'Restricted profile read failed for %s (%s); using elevated read',
                user_id, exc.code or exc.status_code,
            )
            return None

    async def load(
        self,
        identity: AuthIdentity,
        access_token: str | None = None,
    ) -> UserProfile | None:
        """Return the caller's profile, or None when no row exists.

        Raises:
            ProfileUnavailable: the elevated read failed.
        """
        row = await self._restricted_read(identity.user_id, access_token)
        if row is not None:
            return UserProfile.from_row(row)

        try:
            row = await self._elevated.get(identity.user_id)
        except SupabaseError as exc:
            logger.warning(
                'Elevated profile read failed for %s: status=%s code=%s',
                identity.user_id, exc.status_code, exc.code,
            )
            raise ProfileUnavailable(identity.user_id) from exc

        if row is None:
            logger.info('No profile row for user %s', identity.user_id)
            return None
        return UserProfile.from_row(row)

    async def ensure_profile(
        self,
        identity: AuthIdentity,
        access_token: str | None = None,
    ) -> UserProfile:
        """Return the caller's profile, creating a ``client`` row if missing."""
        profile = await self.load(identity, access_token)
        if profile is not None:
            return profile

        try:
            row = await self._elevated.create({
                'id': identity.user_id,
                'email': identity.email,
                'role': UserRole.CLIENT.value,
            })
        except SupabaseConflictError:
            # Created concurrently by another request.
            row = await self._elevated.get(identity.user_id)
            if row is None:
                raise ProfileUnavailable(identity.user_id)
        except SupabaseError as exc:
            raise ProfileUnavailable(identity.user_id) from exc

        logger.info('Created profile row for user %s', identity.user_id)
        return UserProfile.from_row(row)
