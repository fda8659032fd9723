"""
Shared pytest fixtures for sqlspine tests.

This module provides:
- ``FakeDatabase``: an in-process DB-API transport that records every
  statement and can be told to drop the connection
- ``FakeDriver``: a driver over that transport, using the SQLite dialect
- Connection fixtures over the fake driver and over in-memory SQLite

Usage:
    def test_something(fake_connection, fake_db):
        fake_connection.begin()
        assert fake_db.statements == ["BEGIN"]
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from sqlspine.connection import Connection
from sqlspine.dialects.sqlite import SqliteDialect
from sqlspine.drivers.base import Driver
from sqlspine.settings import ConnectionConfig


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Fake DB-API transport
# =============================================================================


class FakeDatabase:
    """
    State shared by every handle a FakeDriver opens.

    Attributes:
        statements: SQL text of every executed statement, in order
        params: Parameters of every executed statement
        results: SQL text to ``(columns, rows)`` returned by SELECTs
        cursor_calls: Number of ``cursor()`` calls
        fetch_calls: Number of ``fetchone()`` / ``fetchall()`` calls
        connects: Handles opened so far
        fail: Predicate on the SQL text; a match raises ``error``
    """

    def __init__(self) -> None:
        self.statements: list[str] = []
        self.params: list[Any] = []
        self.results: dict[str, tuple[list[str], list[tuple[Any, ...]]]] = {}
        self.cursor_calls = 0
        self.fetch_calls = 0
        self.connects = 0
        self.closed_handles = 0
        self.fail: Callable[[str], bool] | None = None
        self.error: Exception = Exception("MySQL server has gone away")
        self.fail_times: int | None = None
        self.connect_errors: list[Exception] = []

    def fail_on(
        self, predicate: Callable[[str], bool], error: Exception | None = None, times: int | None = None
    ) -> None:
        """Raise ``error`` for matching statements, ``times`` times or forever."""
        self.fail = predicate
        self.fail_times = times
        if error is not None:
            self.error = error

    def attempts(self, sql: str) -> int:
        return self.statements.count(sql)

    def _check_failure(self, sql: str) -> None:
        if self.fail is None or not self.fail(sql):
            return
        if self.fail_times is not None:
            if self.fail_times <= 0:
                return
            self.fail_times -= 1
        raise self.error


class FakeCursor:
    def __init__(self, database: FakeDatabase):
        self.database = database
        self.description: list[tuple[str, ...]] | None = None
        self.rowcount = -1
        self.lastrowid = None
        self._rows: list[tuple[Any, ...]] = []
        self.closed = False

    def execute(self, sql: str, params: Any = None) -> None:
        self.database.statements.append(sql)
        self.database.params.append(params)
        self.database._check_failure(sql)
        if sql in self.database.results:
            columns, rows = self.database.results[sql]
            self.description = [(column, None, None, None, None, None, None) for column in columns]
            self._rows = list(rows)
            self.rowcount = len(rows)
        else:
            self.description = None
            self._rows = []
            self.rowcount = 1

    def fetchone(self) -> tuple[Any, ...] | None:
        self.database.fetch_calls += 1
        if not self._rows:
            return None
        return self._rows.pop(0)

    def fetchall(self) -> list[tuple[Any, ...]]:
        self.database.fetch_calls += 1
        rows, self._rows = self._rows, []
        return rows

    def close(self) -> None:
        self.closed = True


class FakeHandle:
    """A DB-API connection object."""

    def __init__(self, database: FakeDatabase):
        self.database = database
        self.closed = False

    def cursor(self) -> FakeCursor:
        self.database.cursor_calls += 1
        return FakeCursor(self.database)

    def close(self) -> None:
        self.closed = True
        self.database.closed_handles += 1


class FakeDriver(Driver):
    name = "Fake"
    client_module = None
    dialect_class = SqliteDialect
    base_config: dict[str, Any] = {"init": ()}

    def __init__(self, config: dict[str, Any] | None = None, database: FakeDatabase | None = None):
        config = {"server_version": "3.40.0", **(config or {})}
        super().__init__(config)
        self.database = database or FakeDatabase()

    def open_connection(self, config: Any) -> FakeHandle:
        self.database.connects += 1
        if self.database.connect_errors:
            raise self.database.connect_errors.pop(0)
        return FakeHandle(self.database)

    def query_version(self) -> str:
        return "3.40.0"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def fake_driver(fake_db: FakeDatabase) -> FakeDriver:
    return FakeDriver(database=fake_db)


@pytest.fixture
def fake_connection(fake_driver: FakeDriver) -> Generator[Connection, None, None]:
    connection = Connection(ConnectionConfig(name="test", driver="fake"), driver=fake_driver)
    yield connection
    connection.close()


@pytest.fixture
def sqlite_connection() -> Generator[Connection, None, None]:
    """In-memory SQLite connection with a small ``articles`` table."""
    connection = Connection({"name": "sqlite", "driver": "sqlite", "database": ":memory:"})
    connection.execute(
        "CREATE TABLE articles (id INTEGER PRIMARY KEY, title TEXT, published INTEGER, body TEXT)"
    )
    connection.execute(
        "INSERT INTO articles (id, title, published, body) VALUES "
        "(1, 'First', 1, 'one'), (2, 'Second', 1, 'two'), (3, 'Third', 0, 'three')"
    )
    yield connection
    connection.close()
