"""Tests for migration discovery and re-run safety linting.

Validates:
  - Discovery orders files by numeric prefix and skips other files
  - Duplicate sequence numbers are rejected
  - Statements unsafe to re-run are reported with line numbers
  - The shipped schema passes the lint and carries the expected objects
"""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from portal.migrations import (
    MIGRATIONS_DIR,
    discover_migrations,
    lint_all,
    lint_migration,
)


@pytest.fixture
def migrations_dir(tmp_path):
    return tmp_path


def _write_sql(directory: Path, name: str, content: str) -> Path:
    p = directory / name
    p.write_text(textwrap.dedent(content))
    return p


# =====================================================================
# 1. Discovery
# =====================================================================


class TestDiscoverMigrations:
    def test_ordered_by_sequence(self, migrations_dir):
        _write_sql(migrations_dir, '002_second.sql', 'select 1;')
        _write_sql(migrations_dir, '001_first.sql', 'select 1;')
        _write_sql(migrations_dir, 'README.sql', 'select 1;')
        _write_sql(migrations_dir, '003_notes.txt', 'x')

        found = discover_migrations(migrations_dir)

        assert [m.sequence for m in found] == [1, 2]
        assert [m.filename for m in found] == ['001_first.sql', '002_second.sql']

    def test_duplicate_sequence_rejected(self, migrations_dir):
        _write_sql(migrations_dir, '001_a.sql', 'select 1;')
        _write_sql(migrations_dir, '001_b.sql', 'select 1;')

        with pytest.raises(ValueError, match='Duplicate migration sequence 001'):
            discover_migrations(migrations_dir)

    def test_empty_directory(self, migrations_dir):
        assert discover_migrations(migrations_dir) == []


# =====================================================================
# 2. Lint rules
# =====================================================================


class TestLintMigration:
    def test_safe_statements_pass(self, migrations_dir):
        path = _write_sql(migrations_dir, '001_ok.sql', """\
            -- create table users (commented out)
            create extension if not exists pgcrypto;
            create table if not exists public.t (id uuid primary key);
            create unique index if not exists t_idx on public.t (id);
            create or replace function public.f() returns int language sql as $$ select 1 $$;
            drop policy if exists p on public.t;
            create policy p on public.t for select using (true);
            drop trigger if exists trg on public.t;
            create trigger trg before update on public.t
                for each row execute function public.f();
            drop index if exists old_idx;
        """)

        result = lint_migration(path)

        assert result.ok, result.errors

    @pytest.mark.parametrize(
        'statement, message',
        [
            ('create table public.t (id int);', 'CREATE TABLE without IF NOT EXISTS'),
            ('CREATE UNIQUE INDEX t_idx on public.t (id);', 'CREATE INDEX without IF NOT EXISTS'),
            ('create extension pgcrypto;', 'CREATE EXTENSION without IF NOT EXISTS'),
            ('create function public.f() returns int as $$ select 1 $$;',
             'CREATE FUNCTION without OR REPLACE'),
            ('drop table public.t;', 'DROP without IF EXISTS'),
        ],
    )
    def test_unsafe_statement_reported(self, migrations_dir, statement, message):
        path = _write_sql(migrations_dir, '001_bad.sql', f'select 1;\n{statement}\n')

        result = lint_migration(path)

        assert result.errors == [f'Line 2: {message}']

    def test_policy_without_drop_reported(self, migrations_dir):
        path = _write_sql(migrations_dir, '001_policy.sql', """\
            drop policy if exists other on public.t;
            create policy p on public.t for select using (true);
        """)

        result = lint_migration(path)

        assert len(result.errors) == 1
        assert 'CREATE POLICY p without preceding DROP POLICY IF EXISTS' in result.errors[0]

    def test_drop_after_create_does_not_count(self, migrations_dir):
        path = _write_sql(migrations_dir, '001_order.sql', """\
            create trigger trg before update on public.t
                for each row execute function public.f();
            drop trigger if exists trg on public.t;
        """)

        assert not lint_migration(path).ok

    def test_lint_all_keys_by_filename(self, migrations_dir):
        _write_sql(migrations_dir, '001_a.sql', 'create table if not exists a (id int);')
        _write_sql(migrations_dir, '002_b.sql', 'create table b (id int);')

        results = lint_all(migrations_dir)

        assert results['001_a.sql'].ok
        assert not results['002_b.sql'].ok


# =====================================================================
# 3. Shipped schema
# =====================================================================


class TestShippedSchema:
    def test_shipped_migrations_pass_lint(self):
        results = lint_all()
        assert results, 'no migrations discovered'
        for name, result in results.items():
            assert result.ok, f'{name}: {result.errors}'

    def test_schema_defines_portal_objects(self):
        sql = (MIGRATIONS_DIR / '001_portal_schema.sql').read_text().lower()

        for table in ('public.users', 'public.workspaces', 'public.workspace_onboarding'):
            assert f'create table if not exists {table}' in sql
            assert f'alter table {table} enable row level security' in sql
        assert "check (role in ('admin', 'client'))" in sql
        assert 'submit_idempotency_key' in sql
        assert 'workspaces_owner_id_key' in sql
        assert 'function public.create_workspace_for_owner(' in sql
        assert 'function public.is_portal_admin()' in sql
