"""Statement decorator reporting executions to the query logger."""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from sqlspine.querylog import LoggedQuery, QueryLogger
from sqlspine.statements.base import Params, Statement, StatementDecorator

if TYPE_CHECKING:
    from sqlspine.drivers.base import Driver


class LoggingStatement(StatementDecorator):
    """Times :meth:`execute` and emits a :class:`LoggedQuery` per run.

    Failed executions are logged with their error and then re-raised.
    """

    def __init__(self, statement: Statement, driver: Driver, logger: QueryLogger | None = None):
        super().__init__(statement, driver)
        self.logger = logger or QueryLogger()
        self._params: dict[str, Any] = {}

    def bind(self, params: Params, types: Mapping[Any, str] | None = None) -> None:
        self._params = self._as_dict(params)
        super().bind(params, types)

    def execute(self, params: Params | None = None) -> bool:
        if params is not None:
            self._params = self._as_dict(params)
        started = time.perf_counter()
        try:
            result = self.statement.execute(params)
        except Exception as e:
            self._log(started, error=e)
            raise
        self._log(started)
        return result

    def _log(self, started: float, error: BaseException | None = None) -> None:
        took = (time.perf_counter() - started) * 1000
        num_rows = 0 if error is not None else self.statement.row_count()
        self.logger.log(
            LoggedQuery(
                query=self.query_string,
                params=dict(self._params),
                took=took,
                num_rows=num_rows,
                error=error,
            )
        )

    @staticmethod
    def _as_dict(params: Params) -> dict[str, Any]:
        if isinstance(params, Mapping):
            return dict(params)
        return {str(index): value for index, value in enumerate(params)}


__all__ = ["LoggingStatement"]
