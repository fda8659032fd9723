"""Connection configuration.

Manifesto:
    Configuration should be explicit, validated and immutable.  A
    connection reads its settings once at construction; the only thing that
    may change afterwards is the metadata-cache toggle, and even that
    replaces the config object instead of editing it.

    - **Pydantic validation:** Type-checked at construction
    - **Frozen:** ``ConnectionConfig`` cannot be mutated in place
    - **Environment-driven:** ``ConnectionSettings`` reads ``SQLSPINE_*``
    - **URLs:** ``parse_url("postgres://user:pw@host/db")``

Features:
    - **ConnectionConfig:** Immutable connection parameters, extra keys are
      driver-specific settings
    - **ConnectionSettings:** pydantic-settings loader with ``.env`` support
    - **parse_url():** URL to config mapping for the registered schemes

Examples:
    >>> config = ConnectionConfig(driver="sqlite", database=":memory:")
    >>> config.driver_config()["database"]
    ':memory:'
    >>> parse_url("postgres://app:secret@db:5433/shop")["port"]
    5433

Tags:
    settings, configuration, pydantic, environment, sqlspine
"""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qsl, unquote, urlsplit

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from sqlspine.errors import InvalidConfigError

# Keys consumed by the Connection itself; everything else goes to the driver.
CONNECTION_KEYS = frozenset(
    {"name", "driver", "log", "cache_metadata", "cache_key_prefix", "disconnect_retries"}
)


class ConnectionConfig(BaseModel):
    """Immutable mapping of connection parameters.

    Fields left as ``None`` fall back to the driver's base config.
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    name: str = "default"
    driver: str = "sqlite"

    # ── Endpoint ─────────────────────────────────────────────────
    host: str | None = None
    port: int | None = None
    username: str | None = None
    password: str | None = None
    database: str | None = None
    schema_name: str | None = Field(default=None, alias="schema")

    # ── Session ──────────────────────────────────────────────────
    encoding: str | int | None = None
    timezone: str | None = None
    init: tuple[str, ...] = ()
    flags: dict[str, Any] = Field(default_factory=dict)
    quote_identifiers: bool = False
    server_version: str | None = None

    # ── Connection behaviour ─────────────────────────────────────
    log: bool = False
    cache_metadata: bool | str = False
    cache_key_prefix: str | None = None
    disconnect_retries: int = Field(default=1, ge=0)

    def driver_config(self) -> dict[str, Any]:
        """Return the settings handed to the driver.

        Unset fields are dropped so driver defaults apply.
        """
        data = self.model_dump(exclude_none=True)
        data.update(self.model_extra or {})
        if "schema_name" in data:
            data["schema"] = data.pop("schema_name")
        return {key: value for key, value in data.items() if key not in CONNECTION_KEYS}

    def masked(self) -> dict[str, Any]:
        """Config for display with credentials and endpoint hidden."""
        data = self.model_dump(exclude_none=True)
        data.update(self.model_extra or {})
        for key in ("password", "username", "host", "database", "port"):
            if key in data:
                data[key] = "*****"
        return data


class ConnectionSettings(BaseSettings):
    """Connection settings read from ``SQLSPINE_*`` environment variables.

    Example:
        SQLSPINE_DRIVER=postgres SQLSPINE_HOST=db SQLSPINE_DATABASE=shop
    """

    model_config = SettingsConfigDict(
        env_prefix="SQLSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    url: str | None = None
    name: str = "default"
    driver: str = "sqlite"
    host: str | None = None
    port: int | None = None
    username: str | None = None
    password: str | None = None
    database: str | None = None
    schema_name: str | None = None
    log: bool = False
    quote_identifiers: bool = False
    disconnect_retries: int = 1

    def to_config(self) -> ConnectionConfig:
        """Build the immutable connection config, ``url`` first."""
        data = self.model_dump(exclude_none=True, exclude={"url"})
        if self.url:
            data.update(parse_url(self.url))
        return ConnectionConfig.model_validate(data)


# ── URL parsing ──────────────────────────────────────────────────────────

_SCHEMES = {
    "postgres": "postgres",
    "postgresql": "postgres",
    "pgsql": "postgres",
    "sqlserver": "sqlserver",
    "mssql": "sqlserver",
    "sqlite": "sqlite",
}


def parse_url(url: str) -> dict[str, Any]:
    """Parse a database URL into connection config keys.

    Supported forms::

        postgres://user:pw@host:5432/db?schema=app
        sqlserver://user:pw@host:1433/db
        sqlite:///path/to/file.db
        sqlite:///:memory:

    Query string arguments are passed through as extra driver settings.
    """
    parts = urlsplit(url)
    scheme = parts.scheme.split("+", 1)[0].lower()
    if scheme not in _SCHEMES:
        raise InvalidConfigError("url", url, f"Unsupported database URL scheme: {parts.scheme!r}")

    driver = _SCHEMES[scheme]
    config: dict[str, Any] = {"driver": driver}
    if driver == "sqlite":
        # sqlite:///relative.db and sqlite:////absolute.db
        path = unquote(parts.path)
        if path.startswith("/"):
            path = path[1:]
        config["database"] = path or ":memory:"
    else:
        if parts.hostname:
            config["host"] = parts.hostname
        if parts.port:
            config["port"] = parts.port
        if parts.username:
            config["username"] = unquote(parts.username)
        if parts.password:
            config["password"] = unquote(parts.password)
        database = parts.path.lstrip("/")
        if database:
            config["database"] = unquote(database)

    for key, value in parse_qsl(parts.query):
        config[key] = value
    return config


__all__ = [
    "ConnectionConfig",
    "ConnectionSettings",
    "parse_url",
    "CONNECTION_KEYS",
]
