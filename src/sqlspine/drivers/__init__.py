"""Database drivers: one physical DB-API connection per instance."""

from sqlspine.drivers.base import Driver, DriverState, Feature
from sqlspine.drivers.postgres import Postgres
from sqlspine.drivers.registry import DriverRegistry, driver_registry, get_driver
from sqlspine.drivers.sqlite import Sqlite
from sqlspine.drivers.sqlserver import Sqlserver

__all__ = [
    "Driver",
    "DriverState",
    "Feature",
    "Postgres",
    "Sqlserver",
    "Sqlite",
    "DriverRegistry",
    "driver_registry",
    "get_driver",
]
