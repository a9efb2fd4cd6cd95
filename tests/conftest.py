"""Shared fixtures: isolated config/logging and an in-memory Supabase double."""

from __future__ import annotations

import io
import itertools
from types import SimpleNamespace
from typing import Any, Callable, Optional
from unittest.mock import MagicMock

import pytest
from postgrest.exceptions import APIError

from contact_groups.config import AppConfig, reset_config
from contact_groups.database import DatabaseManager
from contact_groups.logger import StructuredLogger

_logger_ids = itertools.count()


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch):
    """No log files, no inherited Supabase credentials, fresh cached config."""
    monkeypatch.setenv("LOG_FILE", "")
    for name in ("SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_SERVICE_ROLE_KEY"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def log_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def logger(log_stream: io.StringIO) -> StructuredLogger:
    return StructuredLogger(
        name=f"tests.{next(_logger_ids)}", stream=log_stream, log_file="",
    )


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(
        _env_file=None,
        SUPABASE_URL="https://example.supabase.co",
        PROFILE_FETCH_TIMEOUT_S=1.0,
        PROFILE_FETCH_ATTEMPTS=2,
        PROFILE_RETRY_DELAY_S=0.0,
        SESSION_FETCH_TIMEOUT_S=1.0,
        SIGN_UP_TIMEOUT_S=1.0,
        MIGRATION_BATCH_SIZE=2,
        LOG_FILE="",
    )


# ---------------------------------------------------------------------------
# In-memory PostgREST double
# ---------------------------------------------------------------------------

def api_error(code: str, message: str = "backend error") -> APIError:
    return APIError({"code": code, "message": message, "hint": None, "details": None})


class FakeQuery:
    """Chainable subset of the postgrest query builder used by the repositories."""

    def __init__(self, store: "FakeSupabase", table: str) -> None:
        self._store = store
        self._table = table
        self._op = "select"
        self._payload: Any = None
        self._columns: Optional[list[str]] = None
        self._filters: list[Callable[[dict[str, Any]], bool]] = []
        self._negate = False
        self._count = False
        self._head = False
        self._order: Optional[str] = None
        self._limit: Optional[int] = None
        self._single = False

    # --- verbs ---
    def select(self, *columns: str, count: Optional[str] = None, head: Optional[bool] = None) -> "FakeQuery":
        joined = ",".join(columns) if columns else "*"
        if joined.strip() != "*":
            self._columns = [column.strip() for column in joined.split(",") if column.strip()]
        self._count = count is not None
        self._head = bool(head)
        return self

    def insert(self, payload: dict[str, Any]) -> "FakeQuery":
        self._op, self._payload = "insert", payload
        return self

    def update(self, payload: dict[str, Any]) -> "FakeQuery":
        self._op, self._payload = "update", payload
        return self

    # --- filters ---
    def _add(self, predicate: Callable[[dict[str, Any]], bool]) -> "FakeQuery":
        if self._negate:
            self._negate = False
            self._filters.append(lambda row: not predicate(row))
        else:
            self._filters.append(predicate)
        return self

    @property
    def not_(self) -> "FakeQuery":
        self._negate = True
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: row.get(column) == value)

    def neq(self, column: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: row.get(column) != value)

    def gt(self, column: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: row.get(column) is not None and row[column] > value)

    def is_(self, column: str, value: str) -> "FakeQuery":
        assert value == "null"
        return self._add(lambda row: row.get(column) is None)

    def or_(self, expression: str) -> "FakeQuery":
        predicates = []
        for clause in expression.split(","):
            column, op, value = clause.split(".", 2)
            if op == "is":
                predicates.append(lambda row, c=column: row.get(c) is None)
            elif op == "eq":
                predicates.append(lambda row, c=column, v=value: row.get(c) == v)
            else:
                raise AssertionError(f"unsupported or_ operator {op}")
        return self._add(lambda row: any(predicate(row) for predicate in predicates))

    def order(self, column: str) -> "FakeQuery":
        self._order = column
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def single(self) -> "FakeQuery":
        self._single = True
        return self

    # --- execution ---
    def execute(self) -> SimpleNamespace:
        self._store.calls.append((self._table, self._op))
        hook = self._store.hooks.get((self._table, self._op))
        if hook is not None:
            hook(self._payload)

        if self._table not in self._store.tables:
            raise api_error("42P01", f'relation "public.{self._table}" does not exist')
        rows = self._store.tables[self._table]
        schema = self._store.columns[self._table]

        for column in self._columns or []:
            if column not in schema:
                raise api_error("42703", f"column {self._table}.{column} does not exist")

        if self._op == "insert":
            row = {column: None for column in schema}
            row.update(self._payload)
            rows.append(row)
            return SimpleNamespace(data=[dict(row)], count=None)

        matched = [row for row in rows if all(predicate(row) for predicate in self._filters)]

        if self._op == "update":
            for key in self._payload:
                if key not in schema:
                    raise api_error("PGRST204", f"Could not find the '{key}' column")
            for row in matched:
                row.update(self._payload)
            return SimpleNamespace(data=[dict(row) for row in matched], count=None)

        if self._order:
            matched.sort(key=lambda row: row[self._order])
        total = len(matched)
        if self._limit is not None:
            matched = matched[: self._limit]
        data = [
            {column: row.get(column) for column in self._columns} if self._columns else dict(row)
            for row in matched
        ]
        if self._single:
            if len(data) != 1:
                raise api_error("PGRST116", "JSON object requested, multiple (or no) rows returned")
            return SimpleNamespace(data=data[0], count=None)
        if self._head:
            data = []
        return SimpleNamespace(data=data, count=total if self._count else None)


class FakeSupabase:
    """Table store plus a ``MagicMock`` auth namespace."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.columns: dict[str, set[str]] = {}
        self.hooks: dict[tuple[str, str], Callable[[Any], None]] = {}
        self.calls: list[tuple[str, str]] = []
        self.auth = MagicMock(name="auth")

    def create_table(self, name: str, columns: set[str], rows: Optional[list[dict[str, Any]]] = None) -> None:
        self.columns[name] = set(columns)
        self.tables[name] = []
        for row in rows or []:
            full = {column: None for column in columns}
            full.update(row)
            self.tables[name].append(full)

    def drop_column(self, table: str, column: str) -> None:
        self.columns[table].discard(column)
        for row in self.tables[table]:
            row.pop(column, None)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def count_calls(self, table: str, op: str) -> int:
        return sum(1 for call in self.calls if call == (table, op))


PROFILE_COLUMNS = {
    "id", "email", "first_name", "last_name", "full_name", "phone", "phone_verified",
    "two_factor_enabled", "sms_notifications_enabled", "avatar_url", "created_at", "updated_at",
}
MEMBERSHIP_COLUMNS = {"id", "group_id", "first_name", "last_name", "full_name", "email"}


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def db(fake_supabase: FakeSupabase, logger: StructuredLogger) -> DatabaseManager:
    return DatabaseManager(supabase_url="", supabase_key="", logger=logger, client=fake_supabase)


def make_auth_user(user_id: str = "user-a", email: str = "a@example.com", **metadata: Any) -> SimpleNamespace:
    return SimpleNamespace(id=user_id, email=email, user_metadata=metadata)


def make_raw_session(user_id: str = "user-a", token: str = "access-1") -> SimpleNamespace:
    return SimpleNamespace(
        access_token=token,
        refresh_token="refresh",
        expires_at=1_900_000_000,
        user=make_auth_user(user_id, f"{user_id}@example.com"),
    )
