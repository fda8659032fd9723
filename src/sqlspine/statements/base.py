"""
Statements: executed SQL plus the cursor that reads its rows.

Manifesto:
    A statement is a forward-only cursor over one executed query.  Extra
    behaviour (logging, row callbacks, buffering) is layered on with
    decorators, each wrapping the statement below it and delegating
    everything it does not change.

Architecture:
    ::

        BufferedStatement          rewindable, rows kept in memory
          └── CallbackStatement    result decorators, type conversion
                └── LoggingStatement    timing + LoggedQuery records
                      └── DbapiStatement  DB-API cursor

Fetch kinds:
    ``"num"`` returns a tuple, ``"assoc"`` a dict keyed by column name.
    Every fetch method returns ``None`` once the rows are exhausted.

Tags:
    statements, cursor, decorator, dbapi, sqlspine
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from sqlspine.types import registry as default_types

if TYPE_CHECKING:
    from sqlspine.drivers.base import Driver

FETCH_NUM = "num"
FETCH_ASSOC = "assoc"

Params = Mapping[str, Any] | Sequence[Any]


class Statement:
    """Interface shared by :class:`DbapiStatement` and every decorator."""

    query_string: str = ""

    def bind(self, params: Params, types: Mapping[Any, str] | None = None) -> None:
        raise NotImplementedError

    def execute(self, params: Params | None = None) -> bool:
        raise NotImplementedError

    def fetch(self, kind: str = FETCH_NUM) -> Any:
        raise NotImplementedError

    def fetch_all(self, kind: str = FETCH_NUM) -> list[Any]:
        raise NotImplementedError

    def fetch_assoc(self) -> dict[str, Any]:
        return self.fetch(FETCH_ASSOC) or {}

    def fetch_column(self, position: int) -> Any:
        row = self.fetch(FETCH_NUM)
        if row is not None and position < len(row):
            return row[position]
        return None

    def row_count(self) -> int:
        raise NotImplementedError

    def column_count(self) -> int:
        raise NotImplementedError

    def close_cursor(self) -> None:
        raise NotImplementedError

    def last_insert_id(self, table: str | None = None, column: str | None = None) -> Any:
        raise NotImplementedError

    def __iter__(self) -> Iterator[dict[str, Any]]:
        while True:
            row = self.fetch(FETCH_ASSOC)
            if row is None:
                return
            yield row

    def __len__(self) -> int:
        return self.row_count()


class DbapiStatement(Statement):
    """Forward-only wrapper around a DB-API cursor."""

    def __init__(self, sql: str, driver: Driver, types: Any = None):
        self.query_string = sql
        self.driver = driver
        self.types = types or default_types
        self.params: Params | None = None
        self._cursor: Any = None
        self._columns: list[str] = []

    def bind(self, params: Params, types: Mapping[Any, str] | None = None) -> None:
        """Convert values with their types and keep them for :meth:`execute`."""
        types = types or {}
        if isinstance(params, Mapping):
            self.params = {
                key: self.types.to_database(value, types.get(key), self.driver)
                for key, value in params.items()
            }
        else:
            self.params = [
                self.types.to_database(value, types.get(index), self.driver)
                for index, value in enumerate(params)
            ]

    def execute(self, params: Params | None = None) -> bool:
        if params is not None:
            self.bind(params)
        self.close_cursor()
        cursor = self.driver.get_connection().cursor()
        self._cursor = cursor
        # Without values, skip the paramstyle pass so a literal % survives.
        if self.params:
            cursor.execute(self.query_string, self.params)
        else:
            cursor.execute(self.query_string)
        self._columns = [column[0] for column in cursor.description or ()]
        return True

    def fetch(self, kind: str = FETCH_NUM) -> Any:
        if self._cursor is None or not self._columns:
            return None
        row = self._cursor.fetchone()
        if row is None:
            return None
        if kind == FETCH_ASSOC:
            return dict(zip(self._columns, row))
        return tuple(row)

    def fetch_all(self, kind: str = FETCH_NUM) -> list[Any]:
        if self._cursor is None or not self._columns:
            return []
        rows = self._cursor.fetchall()
        if kind == FETCH_ASSOC:
            return [dict(zip(self._columns, row)) for row in rows]
        return [tuple(row) for row in rows]

    def row_count(self) -> int:
        if self._cursor is None:
            return 0
        return max(self._cursor.rowcount, 0)

    def column_count(self) -> int:
        return len(self._columns)

    def columns(self) -> list[str]:
        return list(self._columns)

    def close_cursor(self) -> None:
        if self._cursor is not None:
            cursor, self._cursor = self._cursor, None
            cursor.close()

    def last_insert_id(self, table: str | None = None, column: str | None = None) -> Any:
        lastrowid = getattr(self._cursor, "lastrowid", None)
        if lastrowid:
            return lastrowid
        return self.driver.last_insert_id(table, column)


class StatementDecorator(Statement):
    """Delegates everything to the wrapped statement."""

    def __init__(self, statement: Statement, driver: Driver):
        self.statement = statement
        self.driver = driver

    @property
    def query_string(self) -> str:  # type: ignore[override]
        return self.statement.query_string

    def get_inner_statement(self) -> Statement:
        return self.statement

    def bind(self, params: Params, types: Mapping[Any, str] | None = None) -> None:
        self.statement.bind(params, types)

    def execute(self, params: Params | None = None) -> bool:
        return self.statement.execute(params)

    def fetch(self, kind: str = FETCH_NUM) -> Any:
        return self.statement.fetch(kind)

    def fetch_all(self, kind: str = FETCH_NUM) -> list[Any]:
        return self.statement.fetch_all(kind)

    def row_count(self) -> int:
        return self.statement.row_count()

    def column_count(self) -> int:
        return self.statement.column_count()

    def close_cursor(self) -> None:
        self.statement.close_cursor()

    def last_insert_id(self, table: str | None = None, column: str | None = None) -> Any:
        return self.statement.last_insert_id(table, column)


__all__ = [
    "FETCH_NUM",
    "FETCH_ASSOC",
    "Statement",
    "DbapiStatement",
    "StatementDecorator",
]
