"""Retry policies applied around database actions.

The connection and the drivers hand a zero-argument closure to
:class:`CommandRetry`; the strategy object decides from the error and the
attempt count alone whether another attempt is worthwhile.  Neither knows
what the closure does.

Two strategies are provided:

- :class:`ReconnectStrategy` reconnects the driver after a dropped
  connection and lets the statement run again.  Used by ``Connection`` for
  every physical operation.
- :class:`ErrorCodeWaitStrategy` waits and retries on allow-listed server
  error codes.  Used only while establishing the connection.

Example:
    >>> retry = CommandRetry(ErrorCodeWaitStrategy([40613], retry_interval=0), 4)
    >>> retry.run(lambda: "ok")
    'ok'
    >>> retry.retries
    0
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, TypeVar

from sqlspine.errors import TransientDisconnectError
from sqlspine.logging import get_logger

if TYPE_CHECKING:
    from sqlspine.connection import Connection

T = TypeVar("T")

logger = get_logger(__name__)


# Message fragments the supported client libraries use for a lost server.
DISCONNECT_PHRASES: tuple[str, ...] = (
    "gone away",
    "Lost connection",
    "closed the connection unexpectedly",
    "closed unexpectedly",
    "deadlock avoided",
    "decryption failed or bad record mac",
    "is dead or not enabled",
    "no connection to the server",
    "query_wait_timeout",
    "reset by peer",
    "terminate due to client_idle_limit",
    "while sending",
    "writing data to the connection",
)


def is_disconnect_error(error: BaseException) -> bool:
    """Whether ``error`` means the server connection was lost."""
    if isinstance(error, TransientDisconnectError):
        return True
    message = str(error)
    return any(phrase in message for phrase in DISCONNECT_PHRASES)


class RetryStrategy(ABC):
    """Decides whether a failed action is attempted again."""

    @abstractmethod
    def should_retry(self, error: Exception, retry_count: int) -> bool:
        """Return True to run the action again.

        Args:
            error: The exception raised by the last attempt
            retry_count: Retries already performed (0 on the first failure)
        """
        ...


class CommandRetry:
    """Run an action, retrying it while the strategy allows.

    Attributes:
        strategy: Policy consulted after every failure
        max_retries: Retries allowed on top of the first attempt
        retries: Retries consumed by the last :meth:`run`
    """

    def __init__(
        self,
        strategy: RetryStrategy,
        max_retries: int = 1,
        on_retry: Callable[[int, Exception], None] | None = None,
    ):
        self.strategy = strategy
        self.max_retries = max_retries
        self.on_retry = on_retry
        self.retries = 0

    def run(self, action: Callable[[], T]) -> T:
        """Execute ``action``; the last error is re-raised unchanged."""
        self.retries = 0
        while True:
            try:
                return action()
            except Exception as e:
                if self.retries >= self.max_retries or not self.strategy.should_retry(
                    e, self.retries
                ):
                    raise
                self.retries += 1
                if self.on_retry:
                    self.on_retry(self.retries, e)

    def get_retries(self) -> int:
        return self.retries


class ReconnectStrategy(RetryStrategy):
    """Reconnect after a lost connection and retry the statement.

    Statements issued inside a transaction are never retried: the server
    discarded the transaction along with the connection, so replaying only
    the last statement would silently drop the earlier ones.
    """

    def __init__(self, connection: Connection):
        self.connection = connection

    def should_retry(self, error: Exception, retry_count: int) -> bool:
        if not is_disconnect_error(error):
            return False
        if self.connection.in_transaction():
            logger.warning(
                "reconnect_skipped",
                connection=self.connection.config_name(),
                reason="transaction open",
                error=str(error),
            )
            return False
        return self._reconnect(error, retry_count)

    def _reconnect(self, error: Exception, retry_count: int) -> bool:
        driver = self.connection.get_driver()
        try:
            driver.disconnect()
        except Exception as e:
            # The handle is already unusable; a failed close changes nothing.
            logger.debug("disconnect_failed", error=str(e))

        try:
            driver.connect()
        except Exception as e:
            logger.warning(
                "reconnect_failed",
                connection=self.connection.config_name(),
                attempt=retry_count + 1,
                error=str(e),
            )
            return False

        logger.warning(
            "reconnected",
            connection=self.connection.config_name(),
            attempt=retry_count + 1,
            error=str(error),
        )
        if self.connection.is_query_logging_enabled():
            self.connection.log("[RECONNECT]")
        return True


def _error_code(error: BaseException) -> Any:
    """Best-effort server error code of a DB-API exception."""
    for attr in ("pgcode", "code", "errno", "sqlstate"):
        value = getattr(error, attr, None)
        if value is not None:
            return value
    args = getattr(error, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


class ErrorCodeWaitStrategy(RetryStrategy):
    """Retry while the server reports one of a set of transient codes.

    Sleeps ``retry_interval`` seconds before every retry after the first,
    so a paused server gets time to resume.
    """

    def __init__(
        self,
        error_codes: Iterable[Any],
        retry_interval: float = 5,
        code_of: Callable[[BaseException], Any] | None = None,
    ):
        self.error_codes = frozenset(error_codes)
        self.retry_interval = retry_interval
        self.code_of = code_of or _error_code

    def should_retry(self, error: Exception, retry_count: int) -> bool:
        code = self.code_of(error)
        if code is None or code not in self.error_codes:
            return False
        if retry_count > 0:
            time.sleep(self.retry_interval)
        logger.warning("connect_retry", code=code, attempt=retry_count + 1)
        return True


__all__ = [
    "DISCONNECT_PHRASES",
    "is_disconnect_error",
    "RetryStrategy",
    "CommandRetry",
    "ReconnectStrategy",
    "ErrorCodeWaitStrategy",
]
