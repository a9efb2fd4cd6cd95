"""
Migration SQL.

Statements the operator pastes into the Supabase SQL editor.  Schema
changes need owner privileges the service-role key does not carry over
PostgREST, so nothing in this module is executed by the console; it only
builds text.

Each builder takes the table names so tests (and one-off runs against a
renamed table) do not depend on module globals.
"""

from __future__ import annotations

from typing import Sequence

TARGET_TABLES: tuple[str, ...] = ("group_memberships", "profiles")


def add_columns_sql(tables: Sequence[str] = TARGET_TABLES) -> list[str]:
    """Nullable ``first_name`` / ``last_name``; safe to re-run."""
    return [
        f"ALTER TABLE {table}\n"
        "  ADD COLUMN IF NOT EXISTS first_name TEXT,\n"
        "  ADD COLUMN IF NOT EXISTS last_name TEXT;"
        for table in tables
    ]


def column_check_sql(table: str, columns: Sequence[str]) -> str:
    quoted = ", ".join(f"'{column}'" for column in columns)
    return (
        "SELECT column_name, data_type, is_nullable\n"
        "FROM information_schema.columns\n"
        f"WHERE table_name = '{table}' AND column_name IN ({quoted})\n"
        "ORDER BY column_name;"
    )


def backfill_sql(tables: Sequence[str] = TARGET_TABLES) -> list[str]:
    """Set-based equivalent of the row-by-row backfill.

    Splits at the first space and squeezes repeated spaces in the
    remainder, matching ``split_full_name`` for space-separated names.
    Only rows whose ``first_name`` is still empty are touched.
    """
    statements = []
    for table in tables:
        statements.append(
            f"UPDATE {table}\n"
            "SET\n"
            "  first_name = split_part(btrim(full_name), ' ', 1),\n"
            "  last_name = CASE\n"
            "    WHEN position(' ' in btrim(full_name)) > 0\n"
            "    THEN btrim(regexp_replace(\n"
            "      substring(btrim(full_name) from position(' ' in btrim(full_name)) + 1),\n"
            "      ' +', ' ', 'g'))\n"
            "    ELSE ''\n"
            "  END\n"
            "WHERE (first_name IS NULL OR first_name = '')\n"
            "  AND full_name IS NOT NULL AND btrim(full_name) <> '';"
        )
    return statements


def verification_sql(tables: Sequence[str] = TARGET_TABLES) -> list[str]:
    """Per-table totals, migrated rows, and rows still waiting for the backfill."""
    return [
        "SELECT\n"
        f"  '{table}' AS table_name,\n"
        "  count(*) AS total_rows,\n"
        "  count(*) FILTER (WHERE first_name IS NOT NULL AND first_name <> '') AS migrated_rows,\n"
        "  count(*) FILTER (\n"
        "    WHERE (first_name IS NULL OR first_name = '')\n"
        "      AND full_name IS NOT NULL AND btrim(full_name) <> ''\n"
        "  ) AS unmigrated_rows\n"
        f"FROM {table};"
        for table in tables
    ]


def sample_sql(table: str, limit: int = 5) -> str:
    return f"SELECT full_name, first_name, last_name FROM {table} LIMIT {limit};"


def drop_legacy_sql(tables: Sequence[str] = TARGET_TABLES) -> list[str]:
    """Irreversible: removes ``full_name``."""
    return [f"ALTER TABLE {table} DROP COLUMN IF EXISTS full_name;" for table in tables]


def post_drop_check_sql(tables: Sequence[str] = TARGET_TABLES) -> list[str]:
    """Column listings that must no longer include ``full_name``."""
    return [
        "SELECT column_name, data_type, is_nullable, column_default\n"
        "FROM information_schema.columns\n"
        f"WHERE table_name = '{table}'\n"
        "ORDER BY ordinal_position;"
        for table in tables
    ]


def rollback_sql(tables: Sequence[str] = TARGET_TABLES) -> list[str]:
    """Recreate ``full_name`` from the split columns.

    Lossy: repeated internal spaces and surrounding whitespace from the
    original values are gone for good.
    """
    statements = []
    for table in tables:
        statements.append(f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS full_name TEXT;")
        statements.append(
            f"UPDATE {table}\n"
            "SET full_name = NULLIF(btrim(concat_ws(' ',\n"
            "  NULLIF(btrim(first_name), ''), NULLIF(btrim(last_name), ''))), '')\n"
            "WHERE full_name IS NULL;"
        )
    return statements
