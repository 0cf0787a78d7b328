"""Errors raised by the PostgREST client and the repositories.

They carry only what PostgREST returned (status, message, code, details,
hint), never request headers, so they are safe to log.
"""

from __future__ import annotations

from dataclasses import dataclass

# PostgREST: "JSON object requested, multiple (or no) rows returned".
NO_ROWS_CODE = "PGRST116"


@dataclass(frozen=True, slots=True)
class SupabaseError(Exception):
    status_code: int
    message: str
    code: str | None = None
    details: str | None = None
    hint: str | None = None

    def mentions(self, text: str) -> bool:
        """True when ``text`` appears in the message or details.

        Postgres names the violated constraint there, which is how callers
        tell a taken subdomain from a second workspace for the same owner.
        """
        return text in f"{self.message} {self.details or ''}"

    def __str__(self) -> str:
        parts = [f"{type(self).__name__}[{self.status_code}]: {self.message}"]
        if self.code:
            parts.append(f"(code {self.code})")
        if self.details:
            parts.append(self.details)
        return " ".join(parts)


class SupabaseAuthError(SupabaseError):
    """401/403: bad key, expired session or a row-level security denial."""


class SupabaseNotFoundError(SupabaseError):
    pass


class SupabaseConflictError(SupabaseError):
    """409: unique or foreign key violation."""


class SupabaseNoRowsError(SupabaseError):
    """A single-row read matched zero rows."""
