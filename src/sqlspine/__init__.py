"""sqlspine -- Database connection core.

Manifesto:
    Every service that talks to more than one database engine needs the
    same foundation: nested transactions that behave the same everywhere,
    reconnects that do not leak into business code, and SQL that is
    rendered for the engine at hand instead of hand-written per backend.

    - **One entry point:** :class:`Connection` runs every statement
    - **Engines behind a registry:** Postgres, SQL Server, SQLite
    - **Queries are values:** :class:`Query` is immutable, dialects
      translate it into a new value before compiling

Architecture::

    Layer 1 -- Errors, Logging & Config
        errors.py          Structured error hierarchy (SqlSpineError)
        logging.py         structlog configuration
        querylog.py        LoggedQuery records + QueryLogger
        settings.py        ConnectionConfig / ConnectionSettings (pydantic)

    Layer 2 -- Query Representation
        expressions.py     Immutable SQL expression values
        functions.py       FunctionsBuilder (named SQL function factories)
        query.py           Query value + select/insert/update/delete
        compiler.py        ValueBinder, CompiledQuery, per-engine compilers
        dialects/          Translation pipelines (Postgres, SQL Server, SQLite)
        types/             Type registry and row conversion

    Layer 3 -- Execution
        statements/        DB-API statement + logging/callback/buffer decorators
        drivers/           Physical handles, capability tables, registry
        retry.py           CommandRetry + reconnect / error-code strategies
        transaction.py     TransactionState value
        connection.py      Connection (transactions, retries, dispatch)

Examples:
    >>> from sqlspine import Connection, select
    >>> conn = Connection.from_url("sqlite:///:memory:")
    >>> conn.execute("SELECT 1 AS one").fetch_all("assoc")
    [{'one': 1}]

Tags:
    sqlspine, database, transactions, dialects, retry
"""

__version__ = "0.1.0"

from sqlspine.compiler import Binding, CompiledQuery, ValueBinder
from sqlspine.connection import Connection
from sqlspine.dialects import get_dialect, register_dialect
from sqlspine.drivers import Driver, Feature, driver_registry, get_driver
from sqlspine.errors import (
    ConfigError,
    DatabaseConnectionError,
    DatabaseError,
    InvalidConfigError,
    MissingDriverError,
    NestedTransactionRollbackError,
    QueryError,
    SqlSpineError,
    TransientDisconnectError,
    UnsupportedDriverError,
    UnsupportedTupleOperatorError,
)
from sqlspine.expressions import and_, compare, eq, in_, not_, or_
from sqlspine.functions import FunctionsBuilder, func
from sqlspine.query import Query, QueryKind, delete, insert, select, update
from sqlspine.settings import ConnectionConfig, ConnectionSettings, parse_url

__all__ = [
    "__version__",
    # connection
    "Connection",
    "ConnectionConfig",
    "ConnectionSettings",
    "parse_url",
    # drivers / dialects
    "Driver",
    "Feature",
    "driver_registry",
    "get_driver",
    "get_dialect",
    "register_dialect",
    # queries
    "Query",
    "QueryKind",
    "select",
    "insert",
    "update",
    "delete",
    "eq",
    "compare",
    "in_",
    "and_",
    "or_",
    "not_",
    "func",
    "FunctionsBuilder",
    "Binding",
    "CompiledQuery",
    "ValueBinder",
    # errors
    "SqlSpineError",
    "ConfigError",
    "DatabaseError",
    "DatabaseConnectionError",
    "NestedTransactionRollbackError",
    "QueryError",
    "MissingDriverError",
    "UnsupportedDriverError",
    "InvalidConfigError",
    "UnsupportedTupleOperatorError",
    "TransientDisconnectError",
]
