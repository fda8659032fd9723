"""PostgreSQL driver over psycopg2."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlspine.dialects.postgres import PostgresDialect
from sqlspine.drivers.base import Driver, Feature
from sqlspine.errors import UnsupportedDriverError


class Postgres(Driver):
    """PostgreSQL via ``psycopg2``.

    Config keys: host, port, username, password, database, schema,
    encoding, timezone, init, flags.  ``flags`` are passed to
    ``psycopg2.connect`` untouched.
    """

    name = "Postgres"
    client_module = "psycopg2"
    dialect_class = PostgresDialect
    max_alias_length = 63

    base_config: dict[str, Any] = {
        "host": "localhost",
        "port": 5432,
        "username": "root",
        "password": "",
        "database": "sqlspine",
        "schema": "public",
        "encoding": "utf8",
        "timezone": None,
        "flags": {},
        "init": (),
    }

    def open_connection(self, config: Mapping[str, Any]) -> Any:
        try:
            import psycopg2
        except ImportError as e:
            raise UnsupportedDriverError(self.short_name()) from e

        kwargs: dict[str, Any] = {
            "host": config.get("unix_socket") or config.get("host"),
            "port": config.get("port"),
            "dbname": config.get("database"),
            "user": config.get("username"),
            "password": config.get("password"),
        }
        if config.get("connect_timeout"):
            kwargs["connect_timeout"] = config["connect_timeout"]
        kwargs.update(config.get("flags") or {})

        connection = psycopg2.connect(**{k: v for k, v in kwargs.items() if v not in (None, "")})
        # Transactions are issued explicitly by begin_transaction().
        connection.autocommit = True
        return connection

    def initialize(self, connection: Any) -> None:
        if self.config.get("encoding"):
            self._exec(f"SET NAMES {self.quote(self.config['encoding'])}", connection)
        if self.config.get("schema"):
            self._exec(f"SET search_path TO {self.quote(self.config['schema'])}", connection)
        if self.config.get("timezone"):
            self._exec(f"SET timezone = {self.quote(self.config['timezone'])}", connection)
        super().initialize(connection)

    def query_version(self) -> str:
        return str(self._scalar("SHOW server_version"))

    def supports(self, feature: Feature | str) -> bool:
        feature = Feature(feature)
        if feature in (
            Feature.CTE,
            Feature.JSON,
            Feature.TRUNCATE_WITH_CONSTRAINTS,
            Feature.WINDOW,
        ):
            return True
        if feature is Feature.DISABLE_CONSTRAINT_WITHOUT_TRANSACTION:
            return False
        return super().supports(feature)

    def last_insert_id(self, table: str | None = None, column: str | None = None) -> Any:
        if table and column:
            return self._scalar(
                "SELECT currval(pg_get_serial_sequence(%s, %s))", (table, column)
            )
        return self._scalar("SELECT LASTVAL()")


__all__ = ["Postgres"]
