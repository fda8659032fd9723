"""Type casting contract.

A type converts values in both directions:

- ``to_database(value, driver)`` before a value is bound to a statement
- ``to_python(value, driver)`` after a row is fetched
- ``to_statement(value, driver)`` returns a :class:`ParamType` binding hint
- ``marshal(value)`` turns loose user input into the native value

Types that convert many columns of a row at once implement
:class:`BatchCasting`; types whose fetched values need no conversion on
some drivers implement :class:`OptionalConvert`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from enum import Enum
from typing import Any


class ParamType(str, Enum):
    """Binding hint handed to the DB-API layer."""

    STR = "str"
    INT = "int"
    BOOL = "bool"
    NULL = "null"
    LOB = "lob"


class BaseType(ABC):
    """Base class of all column types."""

    def __init__(self, name: str | None = None):
        self.name = name

    def get_name(self) -> str | None:
        return self.name

    def get_base_type(self) -> str | None:
        return self.name

    @abstractmethod
    def to_database(self, value: Any, driver: Any = None) -> Any:
        ...

    @abstractmethod
    def to_python(self, value: Any, driver: Any = None) -> Any:
        ...

    def to_statement(self, value: Any, driver: Any = None) -> ParamType:
        if value is None:
            return ParamType.NULL
        return ParamType.STR

    def marshal(self, value: Any) -> Any:
        return value

    def new_id(self) -> Any:
        """Generate a primary key value, for types that can."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r})"


class BatchCasting(ABC):
    """Types able to convert several fields of a row in one call."""

    @abstractmethod
    def many_to_python(
        self, values: dict[str, Any], fields: Iterable[str], driver: Any = None
    ) -> dict[str, Any]:
        ...


class OptionalConvert(ABC):
    """Types that may skip conversion of fetched values."""

    @abstractmethod
    def requires_to_python_cast(self) -> bool:
        ...


__all__ = ["ParamType", "BaseType", "BatchCasting", "OptionalConvert"]
