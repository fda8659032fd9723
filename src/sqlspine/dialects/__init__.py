"""SQL dialects: per-engine quoting, translation and compilation.

Examples:
    >>> from sqlspine.dialects import get_dialect
    >>> get_dialect("postgresql").quote_identifier("users")
    '"users"'
    >>> get_dialect("mssql", version="15.0").quote_identifier("users")
    '[users]'
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from sqlspine.dialects.base import SqlDialect
from sqlspine.dialects.postgres import PostgresDialect
from sqlspine.dialects.sqlite import SqliteDialect
from sqlspine.dialects.sqlserver import SqlserverDialect

DialectFactory = Callable[..., SqlDialect]

_DIALECTS: dict[str, DialectFactory] = {
    "generic": SqlDialect,
    "postgres": PostgresDialect,
    "postgresql": PostgresDialect,
    "pgsql": PostgresDialect,
    "sqlserver": SqlserverDialect,
    "mssql": SqlserverDialect,
    "sqlite": SqliteDialect,
}


def get_dialect(name: str, **kwargs: Any) -> SqlDialect:
    """Create the dialect registered under ``name``.

    Raises:
        ValueError: If ``name`` is not registered.
    """
    key = name.lower()
    if key not in _DIALECTS:
        raise ValueError(f"Unknown dialect '{name}'. Supported: {sorted(_DIALECTS)}")
    return _DIALECTS[key](**kwargs)


def register_dialect(name: str, factory: DialectFactory) -> None:
    """Register a dialect factory (usually the class) under ``name``."""
    _DIALECTS[name.lower()] = factory


__all__ = [
    "SqlDialect",
    "PostgresDialect",
    "SqlserverDialect",
    "SqliteDialect",
    "get_dialect",
    "register_dialect",
]
