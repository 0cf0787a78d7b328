"""Supabase-backed WorkspaceRepository implementation.

Workspace creation and linking the owner's user row happen in one database
transaction through the ``create_workspace_for_owner`` function (see
``portal/migrations/001_portal_schema.sql``). The unique index on
``workspaces.owner_id`` turns a concurrent duplicate create into a 409,
surfaced as SupabaseConflictError.
"""

from __future__ import annotations

from typing import Any

from .supabase_client import SupabaseClient


class SupabaseWorkspaceRepository:
    """WorkspaceRepository backed by public.workspaces via PostgREST."""

    TABLE = "workspaces"
    CREATE_FUNCTION = "create_workspace_for_owner"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get(self, workspace_id: str) -> dict[str, Any] | None:
        rows = await self._client.select(
            self.TABLE,
            filters={"id": ("eq", workspace_id)},
            limit=1,
        )
        return rows[0] if rows else None

    async def get_for_owner(self, owner_id: str) -> dict[str, Any] | None:
        rows = await self._client.select(
            self.TABLE,
            filters={"owner_id": ("eq", owner_id)},
            limit=1,
        )
        return rows[0] if rows else None

    async def create_for_owner(
        self,
        owner_id: str,
        name: str,
        subdomain: str | None = None,
    ) -> dict[str, Any]:
        result = await self._client.rpc(
            self.CREATE_FUNCTION,
            {
                "p_owner_id": owner_id,
                "p_name": name,
                "p_subdomain": subdomain,
            },
        )
        # A set-returning function comes back as a list, a scalar-row one as an object.
        if isinstance(result, list):
            return result[0]
        return result

    async def list_all(self) -> list[dict[str, Any]]:
        return await self._client.select(
            self.TABLE,
            columns="id,name,subdomain,owner_id,created_at,updated_at",
            order="created_at.desc",
        )
