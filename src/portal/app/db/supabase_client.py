"""Async PostgREST client wrapper for Supabase.

This is the single point of Supabase REST interaction for portal repositories.
A client is bound to one credential:

  - ``SupabaseClient.service_role(...)``: elevated, bypasses row-level security.
  - ``SupabaseClient.for_user(...)``: anon key plus the caller's access token,
    so every query runs under the caller's RLS policies.

All portal tables live in the ``public`` schema.
"""

from __future__ import annotations

from typing import Any, Mapping

import httpx

from .errors import (
    NO_ROWS_CODE,
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNoRowsError,
    SupabaseNotFoundError,
)

SINGLE_OBJECT_MEDIA_TYPE = "application/vnd.pgrst.object+json"
TRANSPORT_ERROR_CODE = "transport_error"

# Column -> value (equality) or column -> (operator, value).
Filters = Mapping[str, Any]

# Module-level shared client for connection pooling across repositories.
_shared_async_client: httpx.AsyncClient | None = None


def get_shared_async_client() -> httpx.AsyncClient:
    global _shared_async_client
    if _shared_async_client is None:
        _shared_async_client = httpx.AsyncClient()
    return _shared_async_client


def _reset_shared_async_client_for_tests() -> None:
    """Test helper: clear shared client cache (does not close the instance)."""
    global _shared_async_client
    _shared_async_client = None


def _encode_value(op: str, value: Any) -> str:
    if value is None:
        if op != "is":
            raise ValueError(f"{op} does not support None; use ('is', None)")
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _filters_to_params(filters: Filters | None) -> dict[str, str]:
    params: dict[str, str] = {}
    for column, condition in (filters or {}).items():
        op, value = condition if isinstance(condition, tuple) else ("eq", condition)
        params[column] = f"{op}.{_encode_value(op, value)}"
    return params


def _error_from_response(resp: httpx.Response) -> SupabaseError:
    message = resp.text
    code = details = hint = None
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        message = payload.get("message") or message
        code = payload.get("code")
        details = payload.get("details")
        hint = payload.get("hint")

    if code == NO_ROWS_CODE:
        err_cls: type[SupabaseError] = SupabaseNoRowsError
    elif resp.status_code in (401, 403):
        err_cls = SupabaseAuthError
    elif resp.status_code == 404:
        err_cls = SupabaseNotFoundError
    elif resp.status_code == 409:
        err_cls = SupabaseConflictError
    else:
        err_cls = SupabaseError

    # Never include request headers (keys) in the error.
    return err_cls(
        status_code=resp.status_code,
        message=message,
        code=code,
        details=details,
        hint=hint,
    )


class SupabaseClient:
    """Minimal async PostgREST client with typed results.

    Args:
        supabase_url: Project URL.
        api_key: Sent as ``apikey``; the anon key or the service-role key.
        access_token: Bearer token. Defaults to ``api_key`` (service role).
        http_client: Optional shared httpx client (tests inject a mock).
    """

    def __init__(
        self,
        *,
        supabase_url: str,
        api_key: str,
        access_token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not api_key:
            raise ValueError("api_key is required")

        self._rest_url = f"{supabase_url.rstrip('/')}/rest/v1"
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
        }
        self._timeout_seconds = float(timeout_seconds)
        self._client = http_client or get_shared_async_client()

    @classmethod
    def service_role(
        cls,
        supabase_url: str,
        service_role_key: str,
        **kwargs: Any,
    ) -> SupabaseClient:
        return cls(supabase_url=supabase_url, api_key=service_role_key, **kwargs)

    @classmethod
    def for_user(
        cls,
        supabase_url: str,
        anon_key: str,
        access_token: str,
        **kwargs: Any,
    ) -> SupabaseClient:
        if not access_token:
            raise ValueError("access_token is required for a user-scoped client")
        return cls(
            supabase_url=supabase_url,
            api_key=anon_key,
            access_token=access_token,
            **kwargs,
        )

    @property
    def base_rest_url(self) -> str:
        return self._rest_url

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json_body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        try:
            resp = await self._client.request(
                method,
                f"{self._rest_url}/{path}",
                params=params,
                json=json_body,
                headers={**self._headers, **(headers or {})},
                timeout=self._timeout_seconds,
            )
        except httpx.HTTPError as exc:
            # Connect errors and timeouts surface as SupabaseError like any
            # other failed query; the exception text never carries headers.
            raise SupabaseError(
                status_code=503,
                message=f"PostgREST request failed: {type(exc).__name__}",
                code=TRANSPORT_ERROR_CODE,
            ) from exc
        if resp.status_code >= 400:
            raise _error_from_response(resp)
        return resp

    @staticmethod
    def _rows(resp: httpx.Response, operation: str) -> list[dict[str, Any]]:
        payload = resp.json()
        if not isinstance(payload, list):
            raise SupabaseError(
                status_code=500,
                message=f"expected list response from {operation}",
            )
        return payload

    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        columns: str = "*",
        limit: int | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        params = _filters_to_params(filters)
        params["select"] = columns
        if limit is not None:
            params["limit"] = str(int(limit))
        if order:
            params["order"] = order
        return self._rows(await self._send("GET", table, params=params), "select")

    async def select_single(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        columns: str = "*",
    ) -> dict[str, Any]:
        """Fetch exactly one row.

        Raises:
            SupabaseNoRowsError: zero rows matched (PGRST116).
        """
        params = _filters_to_params(filters)
        params["select"] = columns
        resp = await self._send(
            "GET", table, params=params, headers={"Accept": SINGLE_OBJECT_MEDIA_TYPE},
        )
        payload = resp.json()
        if not isinstance(payload, dict):
            raise SupabaseError(
                status_code=500, message="expected object response from select_single",
            )
        return payload

    async def insert(self, table: str, data: Mapping[str, Any]) -> list[dict[str, Any]]:
        resp = await self._send(
            "POST", table, json_body=dict(data), headers={"Prefer": "return=representation"},
        )
        return self._rows(resp, "insert")

    async def update(
        self,
        table: str,
        filters: Filters,
        data: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("update requires at least one filter")
        resp = await self._send(
            "PATCH",
            table,
            params=_filters_to_params(filters),
            json_body=dict(data),
            headers={"Prefer": "return=representation"},
        )
        return self._rows(resp, "update")

    async def rpc(
        self,
        function_name: str,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """Call a database function (``/rest/v1/rpc/<name>``)."""
        resp = await self._send("POST", f"rpc/{function_name}", json_body=dict(params or {}))
        return resp.json()
