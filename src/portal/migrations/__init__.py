"""Portal SQL migrations and their re-run safety checks.

Migrations are plain SQL files named ``NNN_description.sql`` and are
applied with ``supabase db push``. This module only discovers and lints
them; it never talks to a database.

Every migration must be safe to apply twice:
  - CREATE TABLE / INDEX / EXTENSION carry IF NOT EXISTS.
  - Functions are CREATE OR REPLACE.
  - Each CREATE POLICY / CREATE TRIGGER follows a DROP ... IF EXISTS of
    the same name.
  - DROP TABLE / DROP INDEX carry IF EXISTS.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

MIGRATIONS_DIR = Path(__file__).parent

_FILENAME_RE = re.compile(r'^(\d{3})_[a-z0-9_]+\.sql$')

_LINE_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r'^create\s+table\s+(?!if\s+not\s+exists)', re.I),
     'CREATE TABLE without IF NOT EXISTS'),
    (re.compile(r'^create\s+(unique\s+)?index\s+(?!if\s+not\s+exists)', re.I),
     'CREATE INDEX without IF NOT EXISTS'),
    (re.compile(r'^create\s+extension\s+(?!if\s+not\s+exists)', re.I),
     'CREATE EXTENSION without IF NOT EXISTS'),
    (re.compile(r'^create\s+function\s', re.I),
     'CREATE FUNCTION without OR REPLACE'),
    (re.compile(r'^drop\s+(table|index)\s+(?!if\s+exists)', re.I),
     'DROP without IF EXISTS'),
)

_DROP_NAMED_RE = re.compile(r'^drop\s+(policy|trigger)\s+if\s+exists\s+(\S+)', re.I)
_CREATE_NAMED_RE = re.compile(r'^create\s+(?:or\s+replace\s+)?(policy|trigger)\s+(\S+)', re.I)


@dataclass(frozen=True, slots=True)
class Migration:
    sequence: int
    path: Path

    @property
    def filename(self) -> str:
        return self.path.name


@dataclass
class LintResult:
    path: Path
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def discover_migrations(directory: Path | None = None) -> list[Migration]:
    """Migration files in ``directory`` ordered by sequence number.

    Raises:
        ValueError: two files share a sequence number.
    """
    found: dict[int, Migration] = {}
    for path in sorted((directory or MIGRATIONS_DIR).glob('*.sql')):
        match = _FILENAME_RE.match(path.name)
        if not match:
            continue
        seq = int(match.group(1))
        if seq in found:
            raise ValueError(
                f'Duplicate migration sequence {seq:03d}: '
                f'{found[seq].filename} and {path.name}'
            )
        found[seq] = Migration(sequence=seq, path=path)
    return [found[seq] for seq in sorted(found)]


def lint_migration(path: Path) -> LintResult:
    """Report statements that would fail or change state on a re-run."""
    result = LintResult(path=path)
    dropped: set[tuple[str, str]] = set()

    for lineno, line in enumerate(path.read_text().splitlines(), start=1):
        stmt = line.strip()
        if not stmt or stmt.startswith('--'):
            continue

        drop = _DROP_NAMED_RE.match(stmt)
        if drop:
            dropped.add((drop.group(1).lower(), drop.group(2).lower()))
            continue

        create = _CREATE_NAMED_RE.match(stmt)
        if create:
            kind, name = create.group(1).lower(), create.group(2).lower()
            if (kind, name) not in dropped:
                result.errors.append(
                    f'Line {lineno}: CREATE {kind.upper()} {create.group(2)} '
                    f'without preceding DROP {kind.upper()} IF EXISTS'
                )
            continue

        for pattern, message in _LINE_RULES:
            if pattern.match(stmt):
                result.errors.append(f'Line {lineno}: {message}')

    return result


def lint_all(directory: Path | None = None) -> dict[str, LintResult]:
    return {
        m.filename: lint_migration(m.path)
        for m in discover_migrations(directory)
    }
