"""
Driver: the physical database handle and its dialect.

Manifesto:
    A driver owns exactly one DB-API connection.  It knows how to open it
    (client arguments, connect-time retries, session setup), how to run
    the transaction primitives against it, and which dialect renders SQL
    for it.  It knows nothing about nesting levels or savepoint names:
    that bookkeeping belongs to :class:`~sqlspine.connection.Connection`.

    - **Lazy:** the handle is opened on first use
    - **Idempotent primitives:** begin / commit / rollback report ``False``
      instead of failing when the physical state already matches
    - **Capability table:** ``supports(Feature.X)`` per engine

Architecture:
    ::

        Disconnected ──connect()──► Connecting ──session init──► Connected
             ▲                                                      │
             └────────────── disconnect() / handle teardown ────────┘

        connect()
          └── CommandRetry(ErrorCodeWaitStrategy(retry_error_codes, 5), 4)
                └── open_connection(config)      engine specific
          └── initialize(handle)                 encoding, schema, init

Examples:
    >>> driver = Sqlite({"database": ":memory:"})
    >>> driver.state
    <DriverState.DISCONNECTED: 'disconnected'>
    >>> driver.schema_value("1,2")
    "'1,2'"

Tags:
    driver, dbapi, transactions, capabilities, sqlspine

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import importlib.util
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from enum import Enum
from typing import Any

from sqlspine.compiler import CompiledQuery, QueryCompiler, ValueBinder
from sqlspine.dialects.base import SqlDialect
from sqlspine.errors import (
    DatabaseConnectionError,
    InvalidConfigError,
    SqlSpineError,
)
from sqlspine.logging import get_logger
from sqlspine.query import Query
from sqlspine.retry import CommandRetry, ErrorCodeWaitStrategy
from sqlspine.statements.base import DbapiStatement, Statement
from sqlspine.types.base import ParamType

logger = get_logger(__name__)

# Numeric literal shape accepted unquoted by schema_value().
_NUMERIC = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")


class Feature(str, Enum):
    """Optional capabilities a driver may report."""

    SAVEPOINT = "savepoint"
    QUOTE = "quote"
    CTE = "cte"
    WINDOW = "window"
    JSON = "json"
    TRUNCATE_WITH_CONSTRAINTS = "truncate-with-constraints"
    DISABLE_CONSTRAINT_WITHOUT_TRANSACTION = "disable-constraint-without-transaction"


class DriverState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def version_tuple(version: str) -> tuple[int, ...]:
    """``"3.39.2"`` to ``(3, 39, 2)``; non numeric parts are dropped."""
    return tuple(int(part) for part in re.findall(r"\d+", version)[:4])


class Driver(ABC):
    """Base class of the engine drivers.

    Subclasses provide the client module name, the base config, the
    dialect class and the engine-specific hooks :meth:`open_connection`,
    :meth:`initialize` and :meth:`query_version`.
    """

    name = "Driver"
    client_module: str | None = None
    base_config: dict[str, Any] = {}
    dialect_class: type[SqlDialect] = SqlDialect
    max_alias_length: int | None = None
    retry_error_codes: tuple[Any, ...] = ()
    connect_retry_interval: float = 5
    connect_max_retries = 4

    begin_sql = "BEGIN"
    commit_sql = "COMMIT"
    rollback_sql = "ROLLBACK"

    def __init__(self, config: Mapping[str, Any] | None = None):
        config = dict(config or {})
        if not config.get("username") and config.get("login"):
            raise InvalidConfigError(
                "login",
                config["login"],
                'Please pass "username" instead of "login" for connecting to the database',
            )
        settings = {key: value for key, value in config.items() if value is not None}
        self.config: dict[str, Any] = {**self.base_config, **settings}

        self._connection: Any = None
        self._version: str | None = None
        self._in_transaction = False
        self._state = DriverState.DISCONNECTED
        self._auto_quoting = bool(self.config.get("quote_identifiers"))
        self.connect_retries = 0
        self.dialect = self.dialect_class(version=self.version)

    # ── Engine hooks ─────────────────────────────────────────────

    @abstractmethod
    def open_connection(self, config: Mapping[str, Any]) -> Any:
        """Open and return a DB-API connection in autocommit mode."""
        ...

    def initialize(self, connection: Any) -> None:
        """Session setup after the handle is opened."""
        for command in self.config.get("init") or ():
            self._exec(command, connection)

    @abstractmethod
    def query_version(self) -> str:
        ...

    def error_code(self, error: BaseException) -> Any:
        """Server error code of a client exception, for connect retries."""
        for attr in ("pgcode", "number", "errno", "sqlite_errorcode"):
            value = getattr(error, attr, None)
            if value is not None:
                return value
        args = getattr(error, "args", ())
        if args and isinstance(args[0], int):
            return args[0]
        return None

    # ── Lifecycle ────────────────────────────────────────────────

    @property
    def state(self) -> DriverState:
        return self._state

    def enabled(self) -> bool:
        """Whether the client library can be imported."""
        if self.client_module is None:
            return True
        return importlib.util.find_spec(self.client_module) is not None

    def short_name(self) -> str:
        return self.name

    def connect(self) -> bool:
        """Open the handle if needed. Returns True once connected."""
        if self._connection is not None:
            return True

        self._state = DriverState.CONNECTING
        retry = CommandRetry(
            ErrorCodeWaitStrategy(
                self.retry_error_codes, self.connect_retry_interval, self.error_code
            ),
            self.connect_max_retries,
        )
        try:
            handle = retry.run(lambda: self.open_connection(self.config))
        except SqlSpineError:
            self._state = DriverState.DISCONNECTED
            raise
        except Exception as e:
            self._state = DriverState.DISCONNECTED
            raise DatabaseConnectionError(
                driver=self.short_name(), reason=str(e), cause=e
            ) from e
        finally:
            self.connect_retries = retry.retries

        self._connection = handle
        try:
            self.initialize(handle)
        except Exception:
            self.disconnect()
            raise

        self._state = DriverState.CONNECTED
        logger.debug("connected", driver=self.short_name(), retries=self.connect_retries)
        return True

    def disconnect(self) -> None:
        connection, self._connection = self._connection, None
        self._version = None
        self._in_transaction = False
        self._state = DriverState.DISCONNECTED
        if connection is not None:
            try:
                connection.close()
            except Exception as e:
                # A dead handle may refuse to close; it is gone either way.
                logger.debug("close_failed", driver=self.short_name(), error=str(e))

    def is_connected(self) -> bool:
        """Probe the server with ``SELECT 1``; any failure means False."""
        if self._connection is None:
            return False
        try:
            self._exec("SELECT 1")
        except Exception:
            return False
        return True

    def get_connection(self) -> Any:
        self.connect()
        return self._connection

    def set_connection(self, connection: Any) -> Driver:
        self._connection = connection
        self._in_transaction = False
        self._state = DriverState.CONNECTED if connection is not None else DriverState.DISCONNECTED
        return self

    def version(self) -> str:
        if self._version is None:
            configured = self.config.get("server_version")
            if configured:
                self._version = str(configured)
            else:
                self.connect()
                self._version = str(self.query_version())
        return self._version

    def schema(self) -> str | None:
        return self.config.get("schema")

    # ── Statements ───────────────────────────────────────────────

    def _exec(self, sql: str, connection: Any = None) -> None:
        cursor = (connection or self.get_connection()).cursor()
        try:
            cursor.execute(sql)
        finally:
            cursor.close()

    def _scalar(self, sql: str, params: Any = None) -> Any:
        cursor = self.get_connection().cursor()
        try:
            if params:
                cursor.execute(sql, params)
            else:
                cursor.execute(sql)
            row = cursor.fetchone()
        finally:
            cursor.close()
        return row[0] if row else None

    def prepare(self, query: str | CompiledQuery) -> Statement:
        """Statement for raw SQL or a compiled query, values bound."""
        self.connect()
        if isinstance(query, CompiledQuery):
            statement = DbapiStatement(query.sql, self)
            if query.bindings:
                statement.bind(query.params, query.types)
            return statement
        return DbapiStatement(query, self)

    # ── Transactions ─────────────────────────────────────────────

    def begin_transaction(self) -> bool:
        self.connect()
        if self._in_transaction:
            return True
        self._exec(self.begin_sql)
        self._in_transaction = True
        return True

    def commit_transaction(self) -> bool:
        self.connect()
        if not self._in_transaction:
            return False
        self._exec(self.commit_sql)
        self._in_transaction = False
        return True

    def rollback_transaction(self) -> bool:
        self.connect()
        if not self._in_transaction:
            return False
        self._in_transaction = False
        self._exec(self.rollback_sql)
        return True

    def in_transaction(self) -> bool:
        return self._connection is not None and self._in_transaction

    # ── Capabilities ─────────────────────────────────────────────

    def supports(self, feature: Feature | str) -> bool:
        return Feature(feature) in (
            Feature.SAVEPOINT,
            Feature.QUOTE,
            Feature.DISABLE_CONSTRAINT_WITHOUT_TRANSACTION,
        )

    def supports_savepoints(self) -> bool:
        return self.supports(Feature.SAVEPOINT)

    def supports_ctes(self) -> bool:
        return self.supports(Feature.CTE)

    def supports_quoting(self) -> bool:
        return self.supports(Feature.QUOTE)

    def get_max_alias_length(self) -> int | None:
        return self.max_alias_length

    def get_connect_retries(self) -> int:
        return self.connect_retries

    # ── SQL generation ───────────────────────────────────────────

    def new_compiler(self) -> QueryCompiler:
        return self.dialect.new_compiler(auto_quote=self._auto_quoting)

    def compile_query(self, query: Query, binder: ValueBinder) -> tuple[Query, str]:
        """Translate ``query`` for this engine and render it."""
        translated = self.dialect.translate(query)
        return translated, self.new_compiler().compile(translated, binder)

    def quote_identifier(self, identifier: str) -> str:
        return self.dialect.quote_identifier(identifier)

    def savepoint_sql(self, name: str | int) -> str:
        return self.dialect.savepoint_sql(name)

    def release_savepoint_sql(self, name: str | int) -> str | None:
        return self.dialect.release_savepoint_sql(name)

    def rollback_savepoint_sql(self, name: str | int) -> str:
        return self.dialect.rollback_savepoint_sql(name)

    def disable_foreign_key_sql(self) -> str:
        return self.dialect.disable_foreign_key_sql()

    def enable_foreign_key_sql(self) -> str:
        return self.dialect.enable_foreign_key_sql()

    def enable_auto_quoting(self, enable: bool = True) -> Driver:
        self._auto_quoting = enable
        return self

    def disable_auto_quoting(self) -> Driver:
        self._auto_quoting = False
        return self

    def is_auto_quoting_enabled(self) -> bool:
        return self._auto_quoting

    def quote(self, value: Any, type: ParamType | str = ParamType.STR) -> str:
        """Literal for ``value``; prefer bound parameters."""
        if value is None or ParamType(type) is ParamType.NULL:
            return "NULL"
        if ParamType(type) is ParamType.INT:
            return str(int(value))
        if ParamType(type) is ParamType.BOOL:
            return "TRUE" if value else "FALSE"
        text = str(value).replace("'", "''")
        return f"'{text}'"

    def schema_value(self, value: Any) -> str:
        """Literal for DDL contexts such as column defaults."""
        if value is None:
            return "NULL"
        if value is False:
            return "FALSE"
        if value is True:
            return "TRUE"
        if isinstance(value, float):
            return str(value).replace(",", ".")
        if isinstance(value, int) or value == "0":
            return str(value)
        if (
            isinstance(value, str)
            and _NUMERIC.match(value)
            and "," not in value
            and not value.startswith("0")
            and "e" not in value
        ):
            return value
        return self.quote(str(value), ParamType.STR)

    def last_insert_id(self, table: str | None = None, column: str | None = None) -> Any:
        raise NotImplementedError(f"{self.name} cannot report the last insert id")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(connected={self._connection is not None})"


__all__ = [
    "Driver",
    "DriverState",
    "Feature",
    "version_tuple",
]
