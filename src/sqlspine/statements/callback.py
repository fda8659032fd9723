"""Statement decorator applying a callback to every fetched row."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from sqlspine.statements.base import FETCH_ASSOC, FETCH_NUM, Statement, StatementDecorator

if TYPE_CHECKING:
    from sqlspine.drivers.base import Driver

RowCallback = Callable[[dict[str, Any]], dict[str, Any]]


def chain(*callbacks: RowCallback) -> RowCallback:
    """Compose row callbacks, applied left to right."""

    def apply(row: dict[str, Any]) -> dict[str, Any]:
        for callback in callbacks:
            row = callback(row)
        return row

    return apply


class CallbackStatement(StatementDecorator):
    """Rows are read as dicts, passed through ``callback`` and then shaped.

    Callbacks always see column names, so ``"num"`` fetches are converted
    after the callback ran.
    """

    def __init__(self, statement: Statement, driver: Driver, callback: RowCallback):
        super().__init__(statement, driver)
        self.callback = callback

    def fetch(self, kind: str = FETCH_NUM) -> Any:
        row = self.statement.fetch(FETCH_ASSOC)
        if row is None:
            return None
        row = self.callback(row)
        if kind == FETCH_NUM:
            return tuple(row.values())
        return row

    def fetch_all(self, kind: str = FETCH_NUM) -> list[Any]:
        rows = [self.callback(row) for row in self.statement.fetch_all(FETCH_ASSOC)]
        if kind == FETCH_NUM:
            return [tuple(row.values()) for row in rows]
        return rows


__all__ = ["CallbackStatement", "RowCallback", "chain"]
