"""Rewindable result sets.

:class:`BufferedStatement` keeps every row it reads from the wrapped
statement.  Once the wrapped statement is exhausted its cursor is closed
and never touched again: further reads, including after :meth:`rewind`,
come from the buffer.

Example:
    >>> statement = BufferedStatement(inner, driver)
    >>> statement.execute()
    >>> first = list(statement)
    >>> second = list(statement)   # same rows, no new cursor reads
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from sqlspine.statements.base import (
    FETCH_ASSOC,
    FETCH_NUM,
    Params,
    Statement,
    StatementDecorator,
)

if TYPE_CHECKING:
    from sqlspine.drivers.base import Driver


class BufferedStatement(StatementDecorator):
    """Buffers fetched rows so the result set can be read many times.

    Attributes:
        buffer: Rows read so far, as dicts
        index: Position of the next row :meth:`fetch` returns
        all_fetched: The wrapped statement is exhausted and closed
    """

    def __init__(self, statement: Statement, driver: Driver):
        super().__init__(statement, driver)
        self.buffer: list[dict[str, Any]] = []
        self.index = 0
        self.all_fetched = False
        self.has_executed = False

    def execute(self, params: Params | None = None) -> bool:
        self._reset()
        self.has_executed = True
        return self.statement.execute(params)

    def _reset(self) -> None:
        self.buffer = []
        self.index = 0
        self.all_fetched = False

    def _exhausted(self) -> None:
        self.all_fetched = True
        self.statement.close_cursor()

    def _row_at(self, index: int) -> dict[str, Any] | None:
        """Row ``index``, reading from the wrapped statement as needed."""
        while len(self.buffer) <= index and not self.all_fetched:
            row = self.statement.fetch(FETCH_ASSOC)
            if row is None:
                self._exhausted()
                break
            self.buffer.append(row)
        if index < len(self.buffer):
            return self.buffer[index]
        return None

    def fetch(self, kind: str = FETCH_NUM) -> Any:
        row = self._row_at(self.index)
        if row is None:
            return None
        self.index += 1
        if kind == FETCH_NUM:
            return tuple(row.values())
        return dict(row)

    def fetch_all(self, kind: str = FETCH_NUM) -> list[Any]:
        """Drain the wrapped statement and return every buffered row.

        Rows already read through :meth:`fetch` or iteration are included;
        afterwards :meth:`fetch` returns ``None`` until :meth:`rewind`.
        """
        if not self.all_fetched:
            self.buffer.extend(self.statement.fetch_all(FETCH_ASSOC))
            self._exhausted()
        rows = self.buffer
        self.index = len(self.buffer)
        if kind == FETCH_NUM:
            return [tuple(row.values()) for row in rows]
        return [dict(row) for row in rows]

    def row_count(self) -> int:
        """Number of rows in the result; reads the remainder if needed."""
        if not self.all_fetched:
            self.buffer.extend(self.statement.fetch_all(FETCH_ASSOC))
            self._exhausted()
        return len(self.buffer)

    def close_cursor(self) -> None:
        if not self.all_fetched:
            self.statement.close_cursor()

    # ── Iteration ────────────────────────────────────────────────

    def rewind(self) -> None:
        self.index = 0

    def key(self) -> int:
        return self.index

    def current(self) -> dict[str, Any] | None:
        return self._row_at(self.index)

    def valid(self) -> bool:
        return self._row_at(self.index) is not None

    def next(self) -> None:
        self.index += 1

    def __iter__(self) -> Iterator[dict[str, Any]]:
        self.rewind()
        while self.valid():
            row = self.current()
            self.next()
            yield dict(row)  # type: ignore[arg-type]


__all__ = ["BufferedStatement"]
