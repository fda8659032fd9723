"""
Structured error types for sqlspine.

Every error raised by the connection, driver and dialect layers extends
``SqlSpineError`` so callers can pattern-match on a small, stable taxonomy
instead of on the exception classes of whichever DB-API client happens to
be installed.

Manifesto:
    - **Typed hierarchy:** One class per failure the caller must tell apart
    - **Explicit retry semantics:** Each error knows if it's retryable
    - **Rich context:** Errors carry driver / connection / SQL metadata
    - **Error chaining:** The underlying client exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        SqlSpineError                             │
        │  (category, retryable, context, cause)                           │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  TransientError          DatabaseError          ConfigError      │
        │  (retryable=True)        (DATABASE)             (CONFIG)         │
        │       │                       │                      │           │
        │  TransientDisconnect     DatabaseConnection     MissingDriver    │
        │                          NestedTransaction-     UnsupportedDriver│
        │                            Rollback             InvalidConfig    │
        │                          QueryError             UnsupportedTuple-│
        │                                                   Operator       │
        └─────────────────────────────────────────────────────────────────┘

Propagation:
    Retry classification is private to :mod:`sqlspine.retry`.  Errors that
    are not retried reach the caller unchanged; the only error that is
    intentionally deferred is :class:`NestedTransactionRollbackError`, which
    surfaces at the outer ``commit()``.

Examples:
    >>> err = DatabaseConnectionError(driver="Postgres", reason="timeout")
    >>> err.retryable
    False
    >>> err.to_dict()["category"]
    'DATABASE'

Tags:
    error-handling, exception-hierarchy, retry-logic, sqlspine

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories used for routing and retry decisions."""

    NETWORK = "NETWORK"           # Dropped connections, timeouts
    DATABASE = "DATABASE"         # Server-side failures, transactions
    CONFIG = "CONFIG"             # Driver selection, invalid settings
    VALIDATION = "VALIDATION"     # Bad values handed to the type layer
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only the fields that are set end up in ``to_dict()``; anything that has
    no dedicated field goes into ``metadata``.

    Attributes:
        driver: Short driver name (``"Postgres"``, ``"Sqlserver"``...)
        connection: Configured connection name
        sql: The statement that was being run
        metadata: Additional key-value pairs
    """

    driver: str | None = None
    connection: str | None = None
    sql: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["driver", "connection", "sql"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class SqlSpineError(Exception):
    """
    Base exception for all sqlspine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that the
    common case needs nothing but a message.

    Examples:
        >>> error = SqlSpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(driver="Sqlite").context.driver
        'Sqlite'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> SqlSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise QueryError("Bad statement").with_context(sql=sql)
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Retryable)
# =============================================================================


class TransientError(SqlSpineError):
    """Temporary error that may succeed on retry."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class TransientDisconnectError(TransientError):
    """
    The server connection dropped in the middle of an operation.

    Raised by drivers (and test transports) that can tell a disconnect apart
    from other failures.  :class:`~sqlspine.retry.ReconnectStrategy` treats
    it, and any client error whose message names a known disconnect cause,
    as safe to reconnect and retry.
    """

    default_category = ErrorCategory.NETWORK


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(SqlSpineError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class DatabaseConnectionError(DatabaseError):
    """
    A physical connect attempt failed.

    Raised once the connect-time retry budget is spent.  Never retried again
    above the driver.
    """

    def __init__(
        self,
        message: str | None = None,
        *,
        driver: str = "",
        reason: str = "Unknown",
        **kwargs: Any,
    ):
        self.driver = driver
        self.reason = reason
        super().__init__(
            message or f"Connection to {driver or 'database'} could not be established: {reason}",
            **kwargs,
        )
        self.context.driver = driver or None


class NestedTransactionRollbackError(DatabaseError):
    """
    A nested transaction was rolled back without savepoints.

    The error is created at the inner ``rollback()`` (so its traceback points
    there) but only raised by the outermost ``commit()``.
    """

    def __init__(self, message: str | None = None, *, level: int | None = None, **kwargs: Any):
        self.level = level
        super().__init__(
            message
            or "Cannot commit transaction - rollback() has been already called in the nested transaction",
            **kwargs,
        )


class QueryError(DatabaseError):
    """The statement could not be prepared for the target engine."""


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(SqlSpineError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingDriverError(ConfigError):
    """No driver is registered under the requested name."""

    def __init__(self, driver: str, connection: str = ""):
        self.driver = driver
        self.connection = connection
        message = f"Database driver {driver!r} could not be found"
        if connection:
            message += f" for connection {connection!r}"
        super().__init__(message)
        self.context.driver = driver
        self.context.connection = connection or None


class UnsupportedDriverError(ConfigError):
    """The driver exists but its client library is not installed."""

    def __init__(self, driver: str, connection: str = ""):
        self.driver = driver
        self.connection = connection
        message = f"Database driver {driver} cannot be used due to a missing client library"
        if connection:
            message += f" for connection {connection!r}"
        super().__init__(message)
        self.context.driver = driver
        self.context.connection = connection or None


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


class UnsupportedTupleOperatorError(ConfigError):
    """Tuple comparisons can only be rewritten for ``IN`` and ``=``."""

    def __init__(self, operator: str):
        self.operator = operator
        super().__init__(
            f"Tuple comparison transform only supports the `IN` and `=` operators, `{operator}` given."
        )


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class CastError(SqlSpineError):
    """A value could not be converted by the type layer."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, SqlSpineError):
        return error.retryable
    return False


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "SqlSpineError",
    "TransientError",
    "TransientDisconnectError",
    "DatabaseError",
    "DatabaseConnectionError",
    "NestedTransactionRollbackError",
    "QueryError",
    "ConfigError",
    "MissingDriverError",
    "UnsupportedDriverError",
    "InvalidConfigError",
    "UnsupportedTupleOperatorError",
    "CastError",
    "is_retryable",
]
