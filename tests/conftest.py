"""
Shared test fixtures.

FakeSupabaseClient is an in-memory stand-in for the PostgREST query builder:
it honours the filters, ordering and paging the services use, derives the
current-price view from price_entries, and can be told to fail inserts.
"""

import os
import sys
from pathlib import Path

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from unittest.mock import patch
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generator, Optional

# ===================
# FAKE SUPABASE CLIENT
# ===================

CURRENT_PRICE_VIEW = "product_supplier_current_price"
BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FakeSupabaseError(Exception):
    """Raised by injected failures (stands in for a PostgREST APIError)."""


class FakeSupabaseResponse:
    """Fake query response."""

    def __init__(self, data: Optional[list] = None, count: Optional[int] = None):
        self.data = data if data is not None else []
        self.count = count if count is not None else len(self.data)


class FakeSupabaseQuery:
    """Chainable query against one in-memory table."""

    def __init__(self, client: "FakeSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._operation = "select"
        self._payload: Any = None
        self._on_conflict: Optional[str] = None
        self._columns = "*"
        self._filters: list[Callable[[dict], bool]] = []
        self._order: list[tuple[str, bool]] = []
        self._range: Optional[tuple[int, int]] = None
        self._limit: Optional[int] = None

    # Operations

    def select(self, columns: str = "*", count: Optional[str] = None):
        self._columns = columns
        return self

    def insert(self, data):
        self._operation = "insert"
        self._payload = data
        return self

    def upsert(self, data, on_conflict: Optional[str] = None):
        self._operation = "upsert"
        self._payload = data
        self._on_conflict = on_conflict
        return self

    def delete(self):
        self._operation = "delete"
        return self

    # Filters

    def eq(self, column: str, value: Any):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column: str, value: Any):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column: str, values: list):
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def order(self, column: str, desc: bool = False, **kwargs):
        self._order.append((column, desc))
        return self

    def range(self, start: int, end: int):
        self._range = (start, end)
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    # Execution

    def execute(self) -> FakeSupabaseResponse:
        self._client.record_call(self._table, self._operation, self._payload)
        if self._operation == "insert":
            return FakeSupabaseResponse(self._client.insert_rows(self._table, self._payload))
        if self._operation == "upsert":
            return FakeSupabaseResponse(self._client.upsert_rows(self._table, self._payload, self._on_conflict))
        if self._operation == "delete":
            return FakeSupabaseResponse(self._client.delete_rows(self._table, self._matches))
        return self._select()

    def _matches(self, row: dict) -> bool:
        return all(check(row) for check in self._filters)

    def _select(self) -> FakeSupabaseResponse:
        rows = [row for row in self._client.rows(self._table) if self._matches(row)]
        for column, desc in reversed(self._order):
            rows.sort(key=lambda row: (row.get(column) is None, row.get(column)), reverse=desc)
        count = len(rows)
        if self._range is not None:
            start, end = self._range
            rows = rows[start:end + 1]
        if self._limit is not None:
            rows = rows[:self._limit]
        return FakeSupabaseResponse([self._project(row) for row in rows], count=count)

    def _project(self, row: dict) -> dict:
        public = {key: value for key, value in row.items() if not key.startswith("_")}
        if self._columns.strip() == "*":
            return public
        columns = [column.strip() for column in self._columns.split(",")]
        return {column: public.get(column) for column in columns}


class FakeSupabaseClient:
    """
    In-memory Supabase client.

    Usage:
        fake_supabase.seed("suppliers", [{"tenant_id": "t1", "name": "Acme"}])
        fake_supabase.fail_insert("products", times=1)
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[tuple[str, str, Any]] = []
        self._failures: dict[str, list[bool]] = {}
        self._sequence = 0

    def table(self, name: str) -> FakeSupabaseQuery:
        return FakeSupabaseQuery(self, name)

    # Setup helpers

    def seed(self, table: str, rows: list[dict]) -> list[dict]:
        """Store rows as if they had been inserted earlier."""
        return self.insert_rows(table, rows, injectable=False)

    def fail_insert(self, table: str, times: int = 1, persist: bool = False) -> None:
        """
        Make the next `times` inserts into `table` raise.

        With persist=True the rows are stored before the error is raised,
        as when a concurrent request inserted the same names first.
        """
        self._failures.setdefault(table, []).extend([persist] * times)

    def record_call(self, table: str, operation: str, payload: Any) -> None:
        self.calls.append((table, operation, payload))

    def insert_batches(self, table: str) -> list[int]:
        """Sizes of every insert attempted on `table`."""
        return [
            len(payload) if isinstance(payload, list) else 1
            for name, operation, payload in self.calls
            if name == table and operation == "insert"
        ]

    def operations(self, operation: str) -> list[str]:
        return [name for name, op, _ in self.calls if op == operation]

    # Storage

    def rows(self, table: str) -> list[dict]:
        if table == CURRENT_PRICE_VIEW:
            return self._current_prices()
        return self.tables.setdefault(table, [])

    def insert_rows(self, table: str, payload: Any, injectable: bool = True) -> list[dict]:
        records = payload if isinstance(payload, list) else [payload]
        failures = self._failures.get(table)
        if injectable and failures:
            persist = failures.pop(0)
            if persist:
                self._store(table, records)
            raise FakeSupabaseError(f'duplicate key value violates unique constraint on "{table}"')
        return self._store(table, records)

    def _store(self, table: str, records: list[dict]) -> list[dict]:
        stored = []
        for record in records:
            self._sequence += 1
            row = dict(record)
            row.setdefault("id", f"{table}-{self._sequence}")
            row.setdefault("created_at", (BASE_TIME + timedelta(seconds=self._sequence)).isoformat())
            row.setdefault("updated_at", row["created_at"])
            row["_seq"] = self._sequence
            self.tables.setdefault(table, []).append(row)
            stored.append({key: value for key, value in row.items() if not key.startswith("_")})
        return stored

    def upsert_rows(self, table: str, payload: Any, on_conflict: Optional[str]) -> list[dict]:
        records = payload if isinstance(payload, list) else [payload]
        keys = [key.strip() for key in (on_conflict or "id").split(",")]
        result = []
        for record in records:
            existing = next(
                (row for row in self.rows(table) if all(row.get(k) == record.get(k) for k in keys)),
                None
            )
            if existing is None:
                result.extend(self._store(table, [record]))
            else:
                existing.update(record)
                result.append({key: value for key, value in existing.items() if not key.startswith("_")})
        return result

    def delete_rows(self, table: str, matches: Callable[[dict], bool]) -> list[dict]:
        rows = self.rows(table)
        deleted = [row for row in rows if matches(row)]
        self.tables[table] = [row for row in rows if not matches(row)]
        return [{key: value for key, value in row.items() if not key.startswith("_")} for row in deleted]

    def _current_prices(self) -> list[dict]:
        latest: dict[tuple, dict] = {}
        for row in self.tables.get("price_entries", []):
            key = (row.get("tenant_id"), row.get("product_id"), row.get("supplier_id"))
            current = latest.get(key)
            if current is None or (row["created_at"], row["_seq"]) > (current["created_at"], current["_seq"]):
                latest[key] = row
        return list(latest.values())


# ===================
# FIXTURES
# ===================

SERVICE_MODULES = (
    ("services.reconciliation_service", "_reconciliation_service"),
    ("services.tenant_settings_service", "_tenant_settings_service"),
    ("services.mapping_preset_service", "_mapping_preset_service"),
)


@pytest.fixture
def fake_supabase() -> FakeSupabaseClient:
    """Empty in-memory Supabase client."""
    return FakeSupabaseClient()


@pytest.fixture
def mock_db(fake_supabase, monkeypatch) -> Generator:
    """
    Patch the database client with the fake.

    Usage:
        def test_something(mock_db, fake_supabase):
            fake_supabase.seed("suppliers", [...])
            # Any service created now talks to the fake
    """
    import importlib

    with patch("config.database.get_supabase_client", return_value=fake_supabase):
        patches = []
        for module_name, singleton in SERVICE_MODULES:
            module = importlib.import_module(module_name)
            monkeypatch.setattr(module, singleton, None)
            patcher = patch(f"{module_name}.get_supabase_client", return_value=fake_supabase)
            patcher.start()
            patches.append(patcher)
        try:
            yield fake_supabase
        finally:
            for patcher in patches:
                patcher.stop()


@pytest.fixture
def tenant_headers() -> dict:
    """Gateway headers of a worker."""
    return {"X-Tenant-Id": "tenant-1", "X-User-Id": "user-1", "X-Tenant-Role": "worker"}


@pytest.fixture
def owner_headers() -> dict:
    """Gateway headers of an owner."""
    return {"X-Tenant-Id": "tenant-1", "X-User-Id": "user-1", "X-Tenant-Role": "owner"}


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client(mock_db):
    """
    FastAPI test client backed by the fake database.

    Usage:
        def test_endpoint(test_client, tenant_headers):
            response = test_client.get("/api/import/mappings", headers=tenant_headers)
    """
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)
