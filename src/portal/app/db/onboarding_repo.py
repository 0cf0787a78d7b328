"""Supabase-backed OnboardingRepository implementation.

One row per workspace in ``public.workspace_onboarding``. Answers are stored
as an opaque JSON object; status transitions are checked by
``portal.app.onboarding.lifecycle`` before anything is written here.
"""

from __future__ import annotations

from typing import Any

from .supabase_client import SupabaseClient


class SupabaseOnboardingRepository:
    """OnboardingRepository backed by public.workspace_onboarding."""

    TABLE = "workspace_onboarding"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_for_workspace(self, workspace_id: str) -> dict[str, Any] | None:
        rows = await self._client.select(
            self.TABLE,
            filters={"workspace_id": ("eq", workspace_id)},
            limit=1,
        )
        return rows[0] if rows else None

    async def create(self, workspace_id: str, data: dict[str, Any]) -> dict[str, Any]:
        row = {"status": "pending", "answers": {}, **data, "workspace_id": workspace_id}
        # workspace_id is unique; a racing create raises SupabaseConflictError.
        rows = await self._client.insert(self.TABLE, row)
        return rows[0]

    async def update(
        self, workspace_id: str, data: dict[str, Any]
    ) -> dict[str, Any] | None:
        rows = await self._client.update(
            self.TABLE,
            filters={"workspace_id": ("eq", workspace_id)},
            data=data,
        )
        return rows[0] if rows else None

    async def list_all(self) -> list[dict[str, Any]]:
        return await self._client.select(self.TABLE, order="updated_at.desc")
