"""SQLite driver over the standard library ``sqlite3`` module."""

from __future__ import annotations

import sqlite3
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

from sqlspine.dialects.sqlite import SqliteDialect
from sqlspine.drivers.base import Driver, Feature, version_tuple

FEATURE_VERSIONS = {
    Feature.CTE: "3.8.3",
    Feature.WINDOW: "3.28.0",
}


class Sqlite(Driver):
    """SQLite, in memory unless ``database`` names a file.

    ``mode`` and ``cache`` open the database through a ``file:`` URI,
    e.g. ``{"database": "app.db", "mode": "ro"}``.
    """

    name = "Sqlite"
    client_module = "sqlite3"
    dialect_class = SqliteDialect

    base_config: dict[str, Any] = {
        "database": ":memory:",
        "mode": None,
        "cache": None,
        "flags": {},
        "init": (),
    }

    def open_connection(self, config: Mapping[str, Any]) -> Any:
        database = config.get("database") or ":memory:"
        flags = dict(config.get("flags") or {})
        query = {key: config[key] for key in ("mode", "cache") if config.get(key)}
        if query:
            database = f"file:{database}?{urlencode(query)}"
            flags["uri"] = True
        # isolation_level=None leaves transaction control to BEGIN/COMMIT.
        return sqlite3.connect(database, isolation_level=None, **flags)

    def query_version(self) -> str:
        return str(self._scalar("SELECT sqlite_version()"))

    def supports(self, feature: Feature | str) -> bool:
        feature = Feature(feature)
        if feature in FEATURE_VERSIONS:
            return version_tuple(self.version()) >= version_tuple(FEATURE_VERSIONS[feature])
        if feature is Feature.JSON:
            return self._has_json()
        if feature is Feature.TRUNCATE_WITH_CONSTRAINTS:
            return False
        return super().supports(feature)

    def _has_json(self) -> bool:
        try:
            self._scalar("SELECT json('{}')")
        except sqlite3.Error:
            return False
        return True

    def last_insert_id(self, table: str | None = None, column: str | None = None) -> Any:
        return self._scalar("SELECT last_insert_rowid()")


__all__ = ["Sqlite"]
