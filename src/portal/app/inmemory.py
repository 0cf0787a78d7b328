"""In-memory repository implementations for local development and tests.

These are used when ENVIRONMENT=local. They satisfy the protocol interfaces
and mirror the database constraints that matter to callers (unique user id,
one workspace per owner, unique subdomain, one onboarding record per
workspace) by raising the same SupabaseConflictError a 409 would.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from .db.errors import SupabaseConflictError


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _conflict(message: str) -> SupabaseConflictError:
    return SupabaseConflictError(status_code=409, message=message, code="23505")


class InMemoryUserRepository:
    def __init__(self) -> None:
        self._users: dict[str, dict[str, Any]] = {}

    async def get(self, user_id: str) -> dict[str, Any] | None:
        return self._users.get(user_id)

    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        user_id = data.get("id") or str(uuid.uuid4())
        if user_id in self._users:
            raise _conflict(f"user {user_id} already exists")
        user = {
            "id": user_id,
            "role": "client",
            "workspace_id": None,
            "created_at": _now(),
            **data,
        }
        self._users[user_id] = user
        return user

    async def update(self, user_id: str, data: dict[str, Any]) -> dict[str, Any] | None:
        if user_id not in self._users:
            return None
        self._users[user_id].update(data)
        return self._users[user_id]

    async def list_all(self) -> list[dict[str, Any]]:
        return sorted(
            self._users.values(),
            key=lambda u: u["created_at"],
            reverse=True,
        )


class InMemoryWorkspaceRepository:
    """Workspace store that links the owner's user row in the same step."""

    def __init__(self, users: InMemoryUserRepository) -> None:
        self._users = users
        self._workspaces: dict[str, dict[str, Any]] = {}

    async def get(self, workspace_id: str) -> dict[str, Any] | None:
        return self._workspaces.get(workspace_id)

    async def get_for_owner(self, owner_id: str) -> dict[str, Any] | None:
        for ws in self._workspaces.values():
            if ws["owner_id"] == owner_id:
                return ws
        return None

    async def create_for_owner(
        self,
        owner_id: str,
        name: str,
        subdomain: str | None = None,
    ) -> dict[str, Any]:
        # No awaits between the checks and the writes, so this is atomic
        # with respect to other coroutines.
        owner = self._users._users.get(owner_id)
        if owner is None:
            raise _conflict(f"user {owner_id} does not exist")
        if any(ws["owner_id"] == owner_id for ws in self._workspaces.values()):
            raise _conflict(f"user {owner_id} already owns a workspace")
        if subdomain and any(
            ws.get("subdomain") == subdomain for ws in self._workspaces.values()
        ):
            raise _conflict(f"subdomain {subdomain!r} is taken")

        now = _now()
        ws_id = str(uuid.uuid4())
        workspace = {
            "id": ws_id,
            "name": name,
            "subdomain": subdomain,
            "owner_id": owner_id,
            "created_at": now,
            "updated_at": now,
        }
        self._workspaces[ws_id] = workspace
        owner["workspace_id"] = ws_id
        return workspace

    async def list_all(self) -> list[dict[str, Any]]:
        return sorted(
            self._workspaces.values(),
            key=lambda w: w["created_at"],
            reverse=True,
        )


class InMemoryOnboardingRepository:
    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}

    async def get_for_workspace(self, workspace_id: str) -> dict[str, Any] | None:
        return self._records.get(workspace_id)

    async def create(self, workspace_id: str, data: dict[str, Any]) -> dict[str, Any]:
        if workspace_id in self._records:
            raise _conflict(f"onboarding record for {workspace_id} already exists")
        now = _now()
        record = {
            "id": str(uuid.uuid4()),
            "status": "pending",
            "answers": {},
            "created_at": now,
            "updated_at": now,
            **data,
            "workspace_id": workspace_id,
        }
        self._records[workspace_id] = record
        return record

    async def update(self, workspace_id: str, data: dict[str, Any]) -> dict[str, Any] | None:
        if workspace_id not in self._records:
            return None
        self._records[workspace_id].update({"updated_at": _now(), **data})
        return self._records[workspace_id]

    async def list_all(self) -> list[dict[str, Any]]:
        return sorted(
            self._records.values(),
            key=lambda r: r["updated_at"],
            reverse=True,
        )
