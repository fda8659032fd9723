"""SQL Server driver over pymssql."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlspine.dialects.sqlserver import SqlserverDialect
from sqlspine.drivers.base import Driver, Feature
from sqlspine.errors import InvalidConfigError, UnsupportedDriverError

# "Database is not currently available", raised while an Azure SQL
# database resumes from pause.
RETRY_ERROR_CODES = (40613,)


class Sqlserver(Driver):
    """SQL Server via ``pymssql``.

    Besides the common keys, ``app`` names the client in server-side
    session lists, ``login_timeout`` bounds the connect, and ``settings``
    is a mapping issued as ``SET key value`` after connecting.
    """

    name = "Sqlserver"
    client_module = "pymssql"
    dialect_class = SqlserverDialect
    max_alias_length = 128
    retry_error_codes = RETRY_ERROR_CODES

    begin_sql = "BEGIN TRANSACTION"
    commit_sql = "COMMIT TRANSACTION"
    rollback_sql = "ROLLBACK TRANSACTION"

    base_config: dict[str, Any] = {
        "host": "localhost",
        "port": 1433,
        "username": "",
        "password": "",
        "database": "sqlspine",
        "encoding": "UTF-8",
        "app": None,
        "login_timeout": None,
        "flags": {},
        "init": (),
        "settings": {},
    }

    def __init__(self, config: Mapping[str, Any] | None = None):
        super().__init__(config)
        if self.config.get("persistent"):
            raise InvalidConfigError(
                "persistent",
                self.config["persistent"],
                "SQL Server does not support persistent connections",
            )

    def open_connection(self, config: Mapping[str, Any]) -> Any:
        try:
            import pymssql
        except ImportError as e:
            raise UnsupportedDriverError(self.short_name()) from e

        kwargs: dict[str, Any] = {
            "server": config.get("host"),
            "port": config.get("port"),
            "user": config.get("username"),
            "password": config.get("password"),
            "database": config.get("database"),
            "charset": config.get("encoding"),
            "appname": config.get("app"),
            "login_timeout": config.get("login_timeout"),
            "autocommit": True,
        }
        kwargs.update(config.get("flags") or {})
        return pymssql.connect(**{k: v for k, v in kwargs.items() if v not in (None, "")})

    def initialize(self, connection: Any) -> None:
        super().initialize(connection)
        for key, value in (self.config.get("settings") or {}).items():
            self._exec(f"SET {key} {value}", connection)

    def error_code(self, error: BaseException) -> Any:
        # pymssql errors carry (number, message) in args
        args = getattr(error, "args", ())
        if args and isinstance(args[0], int):
            return args[0]
        return super().error_code(error)

    def query_version(self) -> str:
        return str(self._scalar("SELECT CAST(SERVERPROPERTY('ProductVersion') AS VARCHAR(128))"))

    def supports(self, feature: Feature | str) -> bool:
        feature = Feature(feature)
        if feature in (Feature.CTE, Feature.TRUNCATE_WITH_CONSTRAINTS, Feature.WINDOW):
            return True
        return super().supports(feature)

    def last_insert_id(self, table: str | None = None, column: str | None = None) -> Any:
        return self._scalar("SELECT CAST(COALESCE(SCOPE_IDENTITY(), @@IDENTITY) AS BIGINT)")


__all__ = ["Sqlserver", "RETRY_ERROR_CODES"]
