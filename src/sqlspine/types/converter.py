"""Row-level conversion of fetched values."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from sqlspine.types.base import BaseType, BatchCasting, OptionalConvert

if TYPE_CHECKING:
    from sqlspine.types import TypeRegistry

# Below this many fields per type, converting one by one is faster.
BATCH_THRESHOLD = 2


class FieldTypeConverter:
    """Callable converting one fetched row with a column to type-name map.

    Types that implement :class:`BatchCasting` and cover more than
    ``BATCH_THRESHOLD`` fields convert those fields in one call; everything
    else is converted per field.  Types that report no conversion is needed
    are skipped.
    """

    def __init__(self, type_map: Mapping[str, str], registry: TypeRegistry, driver: Any = None):
        self.driver = driver
        types = registry.build_all()

        simple: dict[str, BaseType] = {}
        batching: dict[str, list[str]] = {}
        for field, type_name in type_map.items():
            type_ = types.get(type_name)
            if type_ is None:
                continue
            if isinstance(type_, OptionalConvert) and not type_.requires_to_python_cast():
                continue
            if isinstance(type_, BatchCasting):
                batching.setdefault(type_name, []).append(field)
            else:
                simple[field] = type_

        for type_name, fields in list(batching.items()):
            if len(fields) > BATCH_THRESHOLD:
                continue
            for field in fields:
                simple[field] = types[type_name]
            del batching[type_name]

        self.types = types
        self.type_map = simple
        self.batching_type_map = batching

    def __call__(self, row: dict[str, Any]) -> dict[str, Any]:
        for field, type_ in self.type_map.items():
            if field in row:
                row[field] = type_.to_python(row[field], self.driver)
        for type_name, fields in self.batching_type_map.items():
            row = self.types[type_name].many_to_python(row, fields, self.driver)  # type: ignore[attr-defined]
        return row


__all__ = ["FieldTypeConverter", "BATCH_THRESHOLD"]
