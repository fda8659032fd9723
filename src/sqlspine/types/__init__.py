"""Column type registry.

Types are registered by abstract name (``"string"``, ``"integer"``,
``"decimal"``, ``"json"``, ``"uuid"``...) and instantiated lazily, one
instance per name.

Examples:
    >>> from sqlspine.types import registry
    >>> registry.get("integer").to_python("42")
    42
    >>> registry.get("json").to_database({"a": 1})
    '{"a": 1}'
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from sqlspine.errors import InvalidConfigError
from sqlspine.types.base import BaseType, BatchCasting, OptionalConvert, ParamType
from sqlspine.types.converter import FieldTypeConverter
from sqlspine.types.scalars import (
    BigIntegerType,
    BooleanType,
    DecimalType,
    FloatType,
    IntegerType,
    JsonType,
    StringType,
    TextType,
    UuidType,
)

TypeFactory = Callable[[str], BaseType]

DEFAULT_TYPES: dict[str, TypeFactory] = {
    "string": StringType,
    "text": TextType,
    "integer": IntegerType,
    "biginteger": BigIntegerType,
    "float": FloatType,
    "decimal": DecimalType,
    "json": JsonType,
    "uuid": UuidType,
    "boolean": BooleanType,
}


class TypeRegistry:
    """Name to type mapping with lazily built instances."""

    def __init__(self, factories: Mapping[str, TypeFactory] | None = None):
        self._factories: dict[str, TypeFactory] = dict(
            DEFAULT_TYPES if factories is None else factories
        )
        self._instances: dict[str, BaseType] = {}

    def get(self, name: str) -> BaseType:
        if name in self._instances:
            return self._instances[name]
        if name not in self._factories:
            raise InvalidConfigError("type", name, f"Unknown type {name!r}")
        instance = self._factories[name](name)
        self._instances[name] = instance
        return instance

    def has(self, name: str) -> bool:
        return name in self._factories or name in self._instances

    def set(self, name: str, instance: BaseType) -> None:
        """Register a ready-made instance."""
        self._instances[name] = instance
        self._factories.setdefault(name, lambda _name: instance)

    def map(self, name: str, factory: TypeFactory) -> None:
        """Register a factory, replacing any built instance."""
        self._factories[name] = factory
        self._instances.pop(name, None)

    def build_all(self) -> dict[str, BaseType]:
        return {name: self.get(name) for name in self._factories}

    def to_database(self, value: Any, type_name: str | None, driver: Any = None) -> Any:
        if not type_name:
            return value
        return self.get(type_name).to_database(value, driver)

    def clear(self) -> None:
        self._instances.clear()


registry = TypeRegistry()

__all__ = [
    "TypeRegistry",
    "registry",
    "DEFAULT_TYPES",
    "BaseType",
    "BatchCasting",
    "OptionalConvert",
    "ParamType",
    "FieldTypeConverter",
    "StringType",
    "TextType",
    "UuidType",
    "IntegerType",
    "BigIntegerType",
    "FloatType",
    "DecimalType",
    "JsonType",
    "BooleanType",
]
