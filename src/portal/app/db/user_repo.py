"""Supabase-backed UserRepository implementation.

Persists application-level user records (role, workspace link) in
``public.users`` via PostgREST. The same class serves both tiers of the
profile loader: instantiate it over a user-scoped client for RLS-filtered
reads, or over the service-role client for elevated reads.
"""

from __future__ import annotations

from typing import Any

from .errors import SupabaseNoRowsError
from .supabase_client import SupabaseClient


class SupabaseUserRepository:
    """UserRepository backed by public.users via PostgREST."""

    TABLE = "users"
    COLUMNS = "id,email,role,workspace_id,created_at"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get(self, user_id: str) -> dict[str, Any] | None:
        try:
            return await self._client.select_single(
                self.TABLE,
                filters={"id": ("eq", user_id)},
                columns=self.COLUMNS,
            )
        except SupabaseNoRowsError:
            return None

    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        row = {"role": "client", **data}
        rows = await self._client.insert(self.TABLE, row)
        return rows[0]

    async def update(
        self, user_id: str, data: dict[str, Any]
    ) -> dict[str, Any] | None:
        rows = await self._client.update(
            self.TABLE,
            filters={"id": ("eq", user_id)},
            data=data,
        )
        return rows[0] if rows else None

    async def list_all(self) -> list[dict[str, Any]]:
        return await self._client.select(
            self.TABLE,
            columns=self.COLUMNS,
            order="created_at.desc",
        )
