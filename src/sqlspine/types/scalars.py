"""Built-in scalar types."""

from __future__ import annotations

import json
import re
import uuid
from collections.abc import Iterable
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlspine.errors import CastError
from sqlspine.types.base import BaseType, BatchCasting, OptionalConvert, ParamType

_LOOSE_NUMBER = re.compile(r"^[0-9,. ]+$")


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float, Decimal)):
        return True
    if isinstance(value, str):
        try:
            float(value.strip())
        except ValueError:
            return False
        return bool(value.strip())
    return False


class StringType(BaseType, OptionalConvert):
    def to_database(self, value: Any, driver: Any = None) -> str | None:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (list, tuple, dict, set)):
            raise CastError(f"Cannot convert value of type `{type(value).__name__}` to string")
        return str(value)

    def to_python(self, value: Any, driver: Any = None) -> str | None:
        if value is None:
            return None
        return str(value)

    def marshal(self, value: Any) -> str | None:
        if value is None or isinstance(value, (list, tuple, dict)):
            return None
        return str(value)

    def requires_to_python_cast(self) -> bool:
        return False


class TextType(StringType):
    def to_statement(self, value: Any, driver: Any = None) -> ParamType:
        if value is None:
            return ParamType.NULL
        return ParamType.LOB


class UuidType(StringType):
    def to_database(self, value: Any, driver: Any = None) -> str | None:
        if value is None or value == "" or value is False:
            return None
        return super().to_database(value, driver)

    def new_id(self) -> str:
        return str(uuid.uuid4())

    def marshal(self, value: Any) -> str | None:
        if value is None or value == "" or isinstance(value, (list, tuple, dict)):
            return None
        return str(value)


class IntegerType(BaseType, BatchCasting):
    def _check_numeric(self, value: Any) -> None:
        if not _is_numeric(value):
            raise CastError(f"Cannot convert value of type `{type(value).__name__}` to integer")

    def to_database(self, value: Any, driver: Any = None) -> int | None:
        if value is None or value == "":
            return None
        self._check_numeric(value)
        return int(float(value)) if isinstance(value, str) else int(value)

    def to_python(self, value: Any, driver: Any = None) -> int | None:
        if value is None:
            return None
        return int(float(value)) if isinstance(value, str) else int(value)

    def many_to_python(
        self, values: dict[str, Any], fields: Iterable[str], driver: Any = None
    ) -> dict[str, Any]:
        for field in fields:
            if values.get(field) is None:
                continue
            self._check_numeric(values[field])
            values[field] = self.to_python(values[field], driver)
        return values

    def to_statement(self, value: Any, driver: Any = None) -> ParamType:
        if value is None:
            return ParamType.NULL
        return ParamType.INT

    def marshal(self, value: Any) -> int | None:
        if value is None or value == "":
            return None
        if _is_numeric(value):
            return int(float(value)) if isinstance(value, str) else int(value)
        return None


class BigIntegerType(IntegerType):
    pass


class FloatType(BaseType, BatchCasting):
    def to_database(self, value: Any, driver: Any = None) -> float | None:
        if value is None or value == "":
            return None
        return float(value)

    def to_python(self, value: Any, driver: Any = None) -> float | None:
        if value is None:
            return None
        return float(value)

    def many_to_python(
        self, values: dict[str, Any], fields: Iterable[str], driver: Any = None
    ) -> dict[str, Any]:
        for field in fields:
            if values.get(field) is not None:
                values[field] = float(values[field])
        return values

    def marshal(self, value: Any) -> float | str | None:
        if value is None or value == "":
            return None
        if _is_numeric(value):
            return float(value)
        if isinstance(value, str) and _LOOSE_NUMBER.match(value):
            return value
        return None


class DecimalType(BaseType, BatchCasting):
    """Exact numerics, fetched as :class:`decimal.Decimal`."""

    def to_database(self, value: Any, driver: Any = None) -> Any:
        if value is None or value == "":
            return None
        if isinstance(value, Decimal) or _is_numeric(value):
            return value
        text = str(value)
        if _is_numeric(text):
            return text
        raise CastError(f"Cannot convert value of type `{type(value).__name__}` to a decimal")

    def to_python(self, value: Any, driver: Any = None) -> Decimal | None:
        if value is None:
            return None
        try:
            return Decimal(str(value))
        except InvalidOperation as e:
            raise CastError(f"Cannot convert {value!r} to a decimal", cause=e) from e

    def many_to_python(
        self, values: dict[str, Any], fields: Iterable[str], driver: Any = None
    ) -> dict[str, Any]:
        for field in fields:
            if values.get(field) is not None:
                values[field] = self.to_python(values[field], driver)
        return values

    def marshal(self, value: Any) -> str | None:
        if value is None or value == "":
            return None
        if _is_numeric(value):
            return str(value)
        if isinstance(value, str) and _LOOSE_NUMBER.match(value):
            return value
        return None


class JsonType(BaseType, BatchCasting):
    def __init__(self, name: str | None = None, encoding_options: dict[str, Any] | None = None):
        super().__init__(name)
        self.encoding_options = encoding_options or {}

    def to_database(self, value: Any, driver: Any = None) -> str | None:
        if value is None:
            return None
        try:
            return json.dumps(value, **self.encoding_options)
        except TypeError as e:
            raise CastError(f"Cannot convert value of type `{type(value).__name__}` to JSON", cause=e) from e

    def to_python(self, value: Any, driver: Any = None) -> Any:
        if not isinstance(value, (str, bytes)):
            # Clients that decode JSON columns themselves.
            return value
        return json.loads(value)

    def many_to_python(
        self, values: dict[str, Any], fields: Iterable[str], driver: Any = None
    ) -> dict[str, Any]:
        for field in fields:
            if values.get(field) is not None:
                values[field] = self.to_python(values[field], driver)
        return values


class BooleanType(BaseType, BatchCasting):
    _TRUE = {"1", "true", "t", "yes", "y", "on"}
    _FALSE = {"0", "false", "f", "no", "n", "off", ""}

    def to_database(self, value: Any, driver: Any = None) -> bool | None:
        if value is None or value == "":
            return None
        return self._coerce(value)

    def to_python(self, value: Any, driver: Any = None) -> bool | None:
        if value is None:
            return None
        return self._coerce(value)

    def many_to_python(
        self, values: dict[str, Any], fields: Iterable[str], driver: Any = None
    ) -> dict[str, Any]:
        for field in fields:
            if values.get(field) is not None:
                values[field] = self._coerce(values[field])
        return values

    def to_statement(self, value: Any, driver: Any = None) -> ParamType:
        if value is None:
            return ParamType.NULL
        return ParamType.BOOL

    def marshal(self, value: Any) -> bool | None:
        if value is None or value == "":
            return None
        try:
            return self._coerce(value)
        except CastError:
            return None

    def _coerce(self, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float, Decimal)):
            return value != 0
        text = str(value).strip().lower()
        if text in self._TRUE:
            return True
        if text in self._FALSE:
            return False
        raise CastError(f"Cannot convert {value!r} to boolean")


__all__ = [
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
