"""Driver registry and factory.

Manifesto:
    Connections should never hard-code driver class names.  The registry
    maps driver names (and their aliases) to driver classes, and
    ``get_driver()`` creates a configured instance from a config dict.

Features:
    - ``DriverRegistry`` singleton with pre-registered defaults
    - ``register()`` for custom / third-party drivers
    - ``get_driver()`` factory: name + config → driver

Tags:
    sqlspine, database, registry, factory, singleton

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from sqlspine.errors import MissingDriverError

from .base import Driver
from .postgres import Postgres
from .sqlite import Sqlite
from .sqlserver import Sqlserver

DriverFactory = Callable[..., Driver]


class DriverRegistry:
    """
    Registry for driver factories.

    Pre-registered drivers:
    - ``postgres`` / ``postgresql`` / ``pgsql``: :class:`Postgres`
    - ``sqlserver`` / ``mssql``: :class:`Sqlserver`
    - ``sqlite``: :class:`Sqlite`
    """

    def __init__(self):
        self._factories: dict[str, DriverFactory] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        """Register default drivers."""
        self._factories["postgres"] = Postgres
        self._factories["postgresql"] = Postgres  # Alias
        self._factories["pgsql"] = Postgres  # Alias
        self._factories["sqlserver"] = Sqlserver
        self._factories["mssql"] = Sqlserver  # Alias
        self._factories["sqlite"] = Sqlite

    def register(self, name: str, factory: DriverFactory) -> None:
        """Register a driver factory."""
        self._factories[name.lower()] = factory

    def has(self, name: str) -> bool:
        return name.lower() in self._factories

    def create(
        self, name: str, config: Mapping[str, Any] | None = None, connection: str = ""
    ) -> Driver:
        """Create a driver by name.

        Raises:
            MissingDriverError: If no driver is registered under ``name``.
        """
        key = name.lower()
        if key not in self._factories:
            raise MissingDriverError(name, connection)
        return self._factories[key](config or {})

    def list_drivers(self) -> list[str]:
        """List registered driver names."""
        return sorted(self._factories.keys())


# Global registry
driver_registry = DriverRegistry()


def get_driver(name: str, config: Mapping[str, Any] | None = None) -> Driver:
    """
    Get a driver by name.

    Usage:
        driver = get_driver("sqlite", {"database": ":memory:"})
        driver = get_driver("postgresql", {"host": "db", "database": "app"})
    """
    return driver_registry.create(name, config)


__all__ = [
    "DriverRegistry",
    "driver_registry",
    "get_driver",
]
