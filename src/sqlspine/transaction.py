"""Transaction bookkeeping for :class:`~sqlspine.connection.Connection`.

``TransactionState`` is a value: the connection swaps in a new instance on
every begin / commit / rollback instead of flipping fields.  ``level`` is
the nesting depth, where 0 is the outermost transaction.

``pending_rollback`` is either ``None`` (clean) or the
:class:`~sqlspine.errors.NestedTransactionRollbackError` recorded by the
first nested rollback that ran without savepoints.  The outermost
``commit()`` raises it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from sqlspine.errors import NestedTransactionRollbackError


@dataclass(frozen=True)
class TransactionState:
    started: bool = False
    level: int = 0
    use_savepoints: bool = False
    pending_rollback: NestedTransactionRollbackError | None = None

    @property
    def is_clean(self) -> bool:
        return self.pending_rollback is None

    def begin(self) -> TransactionState:
        """Outer transaction opened."""
        return replace(self, started=True, level=0, pending_rollback=None)

    def nest(self) -> TransactionState:
        return replace(self, level=self.level + 1)

    def unnest(self) -> TransactionState:
        return replace(self, level=self.level - 1)

    def reset(self) -> TransactionState:
        """No transaction; the savepoint toggle survives."""
        return TransactionState(use_savepoints=self.use_savepoints)

    def poison(self, error: NestedTransactionRollbackError) -> TransactionState:
        """Record a nested rollback; the first one recorded wins."""
        if self.pending_rollback is not None:
            return self
        return replace(self, pending_rollback=error)

    def with_savepoints(self, enabled: bool) -> TransactionState:
        return replace(self, use_savepoints=enabled)


__all__ = ["TransactionState"]
