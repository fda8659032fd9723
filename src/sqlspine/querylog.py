"""Structured query records and the logger that emits them.

The core decides *whether* a statement is logged (query logging toggle on
the connection) and *what* goes into the record; rendering and storage are
left to the structlog configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlspine.logging import get_logger


@dataclass
class LoggedQuery:
    """One executed statement, as reported to the query logger."""

    query: str = ""
    params: dict[str, Any] = field(default_factory=dict)
    took: float = 0.0
    """Elapsed time in milliseconds."""
    num_rows: int = 0
    error: BaseException | None = None

    def interpolate(self) -> str:
        """Return the SQL with bound values substituted, for display only."""
        sql = self.query
        # Longest names first so :c1 does not clobber :c10
        for name in sorted(self.params, key=len, reverse=True):
            rendered = _render_param(self.params[name])
            sql = sql.replace(f"%({name})s", rendered).replace(f":{name}", rendered)
        return sql

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "sql": self.query,
            "params": self.params,
            "took_ms": round(self.took, 3),
            "num_rows": self.num_rows,
        }
        if self.error is not None:
            result["error"] = str(self.error)
        return result

    def __str__(self) -> str:
        return f"duration={self.took:.1f} rows={self.num_rows} {self.interpolate()}"


def _render_param(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return str(value)
    text = str(value).replace("'", "''")
    return f"'{text}'"


class QueryLogger:
    """Emit :class:`LoggedQuery` records through structlog at debug level."""

    def __init__(self, connection: str = "", logger: Any = None):
        self.connection = connection
        self._logger = logger or get_logger("sqlspine.queries")

    def log(self, query: LoggedQuery) -> None:
        event = query.to_dict()
        if self.connection:
            event["connection"] = self.connection
        if query.error is not None:
            self._logger.warning("query_failed", **event)
        else:
            self._logger.debug("query", **event)

    def debug(self, message: str, **kwargs: Any) -> None:
        """Plain debug passthrough, used for transaction markers."""
        query = kwargs.pop("query", None)
        if isinstance(query, LoggedQuery):
            self.log(query)
            return
        self._logger.debug(message, connection=self.connection, **kwargs)


__all__ = ["LoggedQuery", "QueryLogger"]
