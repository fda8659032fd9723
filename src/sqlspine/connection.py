"""
Connection: transactions, retries and query dispatch over one driver.

Manifesto:
    The connection is the only public entry point for running SQL.  It owns
    a driver (one physical handle), tracks the transaction nesting level,
    and routes every physical operation through a reconnect-aware retry so
    a dropped connection outside a transaction is invisible to callers.

    - **Nested transactions:** ``begin()`` nests; inner levels map to
      savepoints when enabled, otherwise an inner rollback poisons the
      outer commit
    - **Retry as composition:** each physical call is a closure handed to
      :class:`~sqlspine.retry.CommandRetry`
    - **Explicit state:** :class:`~sqlspine.transaction.TransactionState`
      is replaced, never mutated

Architecture:
    ::

        Connection.run(query)
          └── CommandRetry(ReconnectStrategy(self), disconnect_retries)
                ├── Driver.compile_query(query)   translate + compile
                ├── Driver.prepare(sql)           DbapiStatement
                │     └── LoggingStatement        when query logging is on
                ├── statement.bind / execute
                ├── CallbackStatement             type map + result decorators
                └── BufferedStatement             when query.buffered

    Transaction levels::

        begin()   started=False → BEGIN, level 0
        begin()   level 0 → 1   (SAVEPOINT LEVEL1 when enabled)
        rollback()              level 1 → 0 (ROLLBACK TO SAVEPOINT, or poison)
        commit()  level 0       COMMIT, or raise the pending rollback error

Examples:
    >>> conn = Connection({"driver": "sqlite", "database": ":memory:"})
    >>> conn.execute("CREATE TABLE users (id INTEGER, name TEXT)")
    >>> conn.insert("users", {"id": 1, "name": "ada"})
    >>> conn.run(select("name", from_="users")).fetch_all("assoc")
    [{'name': 'ada'}]

    >>> conn.transactional(lambda c: c.insert("users", {"id": 2, "name": "bob"}))

Tags:
    connection, transactions, savepoints, retry, sqlspine

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, TypeVar

from sqlspine.compiler import CompiledQuery, ValueBinder
from sqlspine.drivers.base import Driver, Feature
from sqlspine.drivers.registry import driver_registry
from sqlspine.errors import (
    DatabaseConnectionError,
    NestedTransactionRollbackError,
    UnsupportedDriverError,
)
from sqlspine.expressions import Expression
from sqlspine.logging import LogContext, get_logger
from sqlspine.query import Query
from sqlspine.query import delete as delete_query
from sqlspine.query import insert as insert_query
from sqlspine.query import update as update_query
from sqlspine.querylog import LoggedQuery, QueryLogger
from sqlspine.retry import CommandRetry, ReconnectStrategy
from sqlspine.settings import ConnectionConfig, parse_url
from sqlspine.statements import (
    BufferedStatement,
    CallbackStatement,
    LoggingStatement,
    Statement,
    chain,
)
from sqlspine.transaction import TransactionState
from sqlspine.types import FieldTypeConverter, ParamType, TypeRegistry
from sqlspine.types import registry as default_types

T = TypeVar("T")

logger = get_logger(__name__)


class Connection:
    """
    A database connection with nested transactions and reconnect retries.

    Args:
        config: :class:`ConnectionConfig` or a mapping validated into one
        driver: Ready-made driver; by default one is created from
            ``config.driver`` through the driver registry
        types: Type registry used for binding and result conversion

    Raises:
        MissingDriverError: ``config.driver`` is not registered
        UnsupportedDriverError: The driver's client library is not installed
    """

    def __init__(
        self,
        config: ConnectionConfig | Mapping[str, Any] | None = None,
        *,
        driver: Driver | None = None,
        types: TypeRegistry | None = None,
    ):
        if isinstance(config, ConnectionConfig):
            self.config = config
        else:
            self.config = ConnectionConfig.model_validate(dict(config or {}))

        self._driver = driver or self._create_driver(self.config)
        self.types = types or default_types
        self._transaction = TransactionState()
        self._log_queries = self.config.log
        self._logger: QueryLogger | None = None

    @classmethod
    def from_url(cls, url: str, **overrides: Any) -> Connection:
        """Connection for ``postgres://``, ``sqlserver://`` or ``sqlite:///`` URLs."""
        return cls({**parse_url(url), **overrides})

    @staticmethod
    def _create_driver(config: ConnectionConfig) -> Driver:
        driver = driver_registry.create(config.driver, config.driver_config(), config.name)
        if not driver.enabled():
            raise UnsupportedDriverError(driver.short_name(), config.name)
        return driver

    # ── Accessors ────────────────────────────────────────────────

    def config_name(self) -> str:
        return self.config.name

    def get_driver(self) -> Driver:
        return self._driver

    @property
    def transaction_state(self) -> TransactionState:
        return self._transaction

    def _retry(self) -> CommandRetry:
        return CommandRetry(ReconnectStrategy(self), self.config.disconnect_retries)

    def _retried(self, action: Callable[[], T]) -> T:
        """Run ``action`` under the reconnect retry, logs tagged with this connection."""
        with LogContext(connection=self.config_name()):
            return self._retry().run(action)

    # ── Lifecycle ────────────────────────────────────────────────

    def connect(self) -> bool:
        """Open the physical connection; already connected is a no-op."""
        try:
            return self._driver.connect()
        except DatabaseConnectionError:
            raise
        except Exception as e:
            raise DatabaseConnectionError(
                driver=self._driver.short_name(), reason=str(e), cause=e
            ) from e

    def disconnect(self) -> None:
        self._driver.disconnect()

    def is_connected(self) -> bool:
        return self._driver.is_connected()

    def close(self) -> None:
        """Disconnect; an open transaction is abandoned with a warning."""
        if self._transaction.started:
            logger.warning(
                "closed_in_transaction",
                connection=self.config_name(),
                level=self._transaction.level,
            )
            self._transaction = self._transaction.reset()
        self._driver.disconnect()

    # ── Statements ───────────────────────────────────────────────

    def compile_query(self, query: Query) -> CompiledQuery:
        binder = ValueBinder()
        _, sql = self._driver.compile_query(query, binder)
        return CompiledQuery(sql, tuple(binder.bindings()))

    def prepare(self, query: Query | str) -> Statement:
        """Statement for ``query``, bound but not executed."""
        return self._retried(lambda: self._prepare(query))

    def _prepare(self, query: Query | str) -> Statement:
        compiled = self.compile_query(query) if isinstance(query, Query) else None
        statement = self._driver.prepare(compiled.sql if compiled else query)
        if self._log_queries:
            statement = LoggingStatement(statement, self._driver, self.get_logger())
        if compiled and compiled.bindings:
            statement.bind(compiled.params, compiled.types)
        return statement

    def execute(
        self,
        sql: str,
        params: Mapping[str, Any] | None = None,
        types: Mapping[str, str] | None = None,
    ) -> Statement:
        """Execute raw SQL with optional bound parameters."""
        return self._retried(lambda: self._execute(sql, params, types))

    def _execute(
        self,
        sql: str,
        params: Mapping[str, Any] | None = None,
        types: Mapping[str, str] | None = None,
    ) -> Statement:
        statement = self._prepare(sql)
        if params:
            statement.bind(params, types)
        statement.execute()
        return statement

    def query(self, sql: str) -> Statement:
        """Execute SQL without parameters."""
        return self._retried(lambda: self._execute(sql))

    def run(self, query: Query) -> Statement:
        """Compile and execute ``query``, decorating the result statement."""
        return self._retried(lambda: self._run(query))

    def _run(self, query: Query) -> Statement:
        binder = ValueBinder()
        translated, sql = self._driver.compile_query(query, binder)
        compiled = CompiledQuery(sql, tuple(binder.bindings()))

        statement = self._prepare(sql)
        if compiled.bindings:
            statement.bind(compiled.params, compiled.types)
        statement.execute()

        callbacks: list[Callable[[dict[str, Any]], dict[str, Any]]] = []
        if translated.select_types:
            callbacks.append(FieldTypeConverter(translated.select_types, self.types, self._driver))
        callbacks.extend(translated.result_decorators)
        if callbacks:
            statement = CallbackStatement(statement, self._driver, chain(*callbacks))
        if translated.buffered:
            statement = BufferedStatement(statement, self._driver)
        return statement

    def insert(
        self, table: str, values: Mapping[str, Any], types: Mapping[str, str] | None = None
    ) -> Statement:
        """``INSERT`` one row of column values."""
        return self.run(insert_query(table, list(values), [values], types))

    def update(
        self,
        table: str,
        values: Mapping[str, Any],
        conditions: Expression | dict[str, Any] | None = None,
        types: Mapping[str, str] | None = None,
    ) -> Statement:
        return self.run(update_query(table, values, conditions, types))

    def delete(
        self,
        table: str,
        conditions: Expression | dict[str, Any] | None = None,
        types: Mapping[str, str] | None = None,
    ) -> Statement:
        return self.run(delete_query(table, conditions, types))

    # ── Transactions ─────────────────────────────────────────────

    def begin(self) -> None:
        """Start a transaction, or nest one level deeper."""
        if not self._transaction.started:
            if self._log_queries:
                self.log("BEGIN")
            self._retried(self._driver.begin_transaction)
            self._transaction = self._transaction.begin()
            return

        self._transaction = self._transaction.nest()
        if self._transaction.use_savepoints:
            self.create_save_point(str(self._transaction.level))

    def commit(self) -> bool:
        """Commit the current level.

        Returns False when no transaction is open.

        Raises:
            NestedTransactionRollbackError: An inner level was rolled back
                without savepoints; the whole transaction is rolled back
                instead of committed.
        """
        if not self._transaction.started:
            return False

        if self._transaction.level == 0:
            pending = self._transaction.pending_rollback
            self._transaction = self._transaction.reset()
            if pending is not None:
                if self._log_queries:
                    self.log("ROLLBACK")
                self._driver.rollback_transaction()
                raise pending
            if self._log_queries:
                self.log("COMMIT")
            return self._driver.commit_transaction()

        if self._transaction.use_savepoints:
            self.release_save_point(str(self._transaction.level))
        self._transaction = self._transaction.unnest()
        return True

    def rollback(self, to_beginning: bool | None = None) -> bool:
        """Roll back the current level, or everything.

        Args:
            to_beginning: Roll back the whole transaction.  Defaults to
                True without savepoints and False with them.

        Returns False when no transaction is open.
        """
        if not self._transaction.started:
            return False

        use_savepoints = self._transaction.use_savepoints
        if to_beginning is None:
            to_beginning = not use_savepoints

        if self._transaction.level == 0 or to_beginning:
            self._transaction = self._transaction.reset()
            if self._log_queries:
                self.log("ROLLBACK")
            self._driver.rollback_transaction()
            return True

        level = self._transaction.level
        self._transaction = self._transaction.unnest()
        if use_savepoints:
            self.rollback_savepoint(str(level))
        else:
            self._transaction = self._transaction.poison(
                NestedTransactionRollbackError(level=level)
            )
        return True

    def in_transaction(self) -> bool:
        return self._transaction.started

    def transactional(self, callback: Callable[[Connection], T]) -> T | bool:
        """Run ``callback`` inside a transaction.

        Commits unless the callback raises or returns ``False``; in both
        cases the current level is rolled back (and the error re-raised).
        """
        self.begin()
        try:
            result = callback(self)
        except Exception:
            self.rollback(False)
            raise

        if result is False:
            self.rollback(False)
            return False

        try:
            self.commit()
        except NestedTransactionRollbackError:
            self.rollback(False)
            raise
        return result

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """``with conn.transaction():`` form of :meth:`transactional`."""
        self.begin()
        try:
            yield self
        except Exception:
            self.rollback(False)
            raise
        try:
            self.commit()
        except NestedTransactionRollbackError:
            self.rollback(False)
            raise

    # ── Savepoints ───────────────────────────────────────────────

    def enable_save_points(self, enable: bool = True) -> Connection:
        """Use savepoints for nested levels, if the driver supports them."""
        enabled = enable and self._driver.supports(Feature.SAVEPOINT)
        self._transaction = self._transaction.with_savepoints(enabled)
        return self

    def disable_save_points(self) -> Connection:
        self._transaction = self._transaction.with_savepoints(False)
        return self

    def is_save_points_enabled(self) -> bool:
        return self._transaction.use_savepoints

    def create_save_point(self, name: str | int) -> None:
        self.execute(self._driver.savepoint_sql(name)).close_cursor()

    def release_save_point(self, name: str | int) -> None:
        sql = self._driver.release_savepoint_sql(name)
        if sql:
            self.execute(sql).close_cursor()

    def rollback_savepoint(self, name: str | int) -> None:
        self.execute(self._driver.rollback_savepoint_sql(name)).close_cursor()

    # ── Constraints ──────────────────────────────────────────────

    def disable_foreign_keys(self) -> None:
        self.execute(self._driver.disable_foreign_key_sql()).close_cursor()

    def enable_foreign_keys(self) -> None:
        self.execute(self._driver.enable_foreign_key_sql()).close_cursor()

    def disable_constraints(self, callback: Callable[[Connection], T]) -> T:
        """Run ``callback`` with foreign key checks off, retried as a unit."""

        def action() -> T:
            self._execute(self._driver.disable_foreign_key_sql()).close_cursor()
            try:
                return callback(self)
            finally:
                self._execute(self._driver.enable_foreign_key_sql()).close_cursor()

        return self._retried(action)

    # ── Quoting ──────────────────────────────────────────────────

    def supports_quoting(self) -> bool:
        return self._driver.supports(Feature.QUOTE)

    def quote(self, value: Any, type: str | None = "string") -> str:
        """SQL literal for ``value`` after converting it with ``type``."""
        if type and self.types.has(type):
            column_type = self.types.get(type)
            value = column_type.to_database(value, self._driver)
            return self._driver.quote(value, column_type.to_statement(value, self._driver))
        return self._driver.quote(value, ParamType.STR)

    def quote_identifier(self, identifier: str) -> str:
        return self._driver.quote_identifier(identifier)

    # ── Metadata cache ───────────────────────────────────────────

    def cache_metadata(self, enabled: bool | str) -> None:
        """Toggle metadata caching; ``True`` or a cache config name."""
        self.config = self.config.model_copy(update={"cache_metadata": enabled})

    # ── Query logging ────────────────────────────────────────────

    def enable_query_logging(self, enable: bool = True) -> Connection:
        self._log_queries = enable
        return self

    def disable_query_logging(self) -> Connection:
        self._log_queries = False
        return self

    def is_query_logging_enabled(self) -> bool:
        return self._log_queries

    def set_logger(self, logger: QueryLogger) -> None:
        self._logger = logger

    def get_logger(self) -> QueryLogger:
        if self._logger is None:
            self._logger = QueryLogger(connection=self.config_name())
        return self._logger

    def log(self, sql: str) -> None:
        """Report a statement that did not go through a logging statement."""
        self.get_logger().log(LoggedQuery(query=sql))

    def __repr__(self) -> str:
        return (
            f"Connection(config={self.config.masked()!r}, driver={self._driver!r}, "
            f"transaction_level={self._transaction.level}, "
            f"transaction_started={self._transaction.started}, "
            f"use_savepoints={self._transaction.use_savepoints}, "
            f"log_queries={self._log_queries})"
        )


__all__ = ["Connection"]
