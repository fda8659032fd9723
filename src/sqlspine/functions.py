"""Typed factories for portable SQL function calls.

Each method returns an expression holding the *logical* function name
(``CONCAT``, ``DATEDIFF``, ``NOW``...).  The dialect of the connection that
eventually runs the query rewrites it for its engine.

Arguments follow two conventions:

- single-argument helpers (``sum``, ``count``, ``extract``...) treat a
  plain string as a column or SQL fragment and emit it as is
- variadic helpers (``concat``, ``coalesce``, ``date_diff``) bind plain
  values as parameters; pass :class:`~sqlspine.expressions.Identifier`
  for columns

Functions without a named factory go through :meth:`FunctionsBuilder.custom`.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlspine.expressions import (
    AggregateExpression,
    Expression,
    FunctionExpression,
    Literal,
    to_expression,
    to_literal,
)


def _bound(args: Sequence[Any], types: Sequence[str | None]) -> tuple[Expression, ...]:
    return tuple(
        to_expression(arg, types[i] if i < len(types) else None) for i, arg in enumerate(args)
    )


class FunctionsBuilder:
    """Factory for :class:`FunctionExpression` / :class:`AggregateExpression`."""

    def rand(self) -> FunctionExpression:
        return FunctionExpression("RAND", (), "float")

    def sum(self, expression: Any, type: str | None = None) -> AggregateExpression:
        return_type = "integer" if type == "integer" else "float"
        return self.aggregate("SUM", [to_literal(expression)], return_type)

    def avg(self, expression: Any) -> AggregateExpression:
        return self.aggregate("AVG", [to_literal(expression)], "float")

    def max(self, expression: Any, type: str | None = None) -> AggregateExpression:
        return self.aggregate("MAX", [to_literal(expression)], type or "float")

    def min(self, expression: Any, type: str | None = None) -> AggregateExpression:
        return self.aggregate("MIN", [to_literal(expression)], type or "float")

    def count(self, expression: Any = "*") -> AggregateExpression:
        return self.aggregate("COUNT", [to_literal(expression)], "integer")

    def concat(self, *args: Any, types: Sequence[str | None] = ()) -> FunctionExpression:
        return FunctionExpression("CONCAT", _bound(args, types), "string")

    def coalesce(self, *args: Any, types: Sequence[str | None] = ()) -> FunctionExpression:
        return_type = next((t for t in types if t), "string")
        return FunctionExpression("COALESCE", _bound(args, types), return_type)

    def cast(self, field: Any, type: str) -> FunctionExpression:
        """``CAST(field AS type)``; ``type`` is an SQL type name."""
        if not type:
            raise ValueError("The type in a cast cannot be empty.")
        return FunctionExpression("CAST", (to_literal(field), Literal(type)), None, " AS")

    def date_diff(self, *args: Any, types: Sequence[str | None] = ()) -> FunctionExpression:
        """Difference in days between two dates."""
        return FunctionExpression("DATEDIFF", _bound(args, types), "integer")

    def extract(self, part: str, expression: Any) -> FunctionExpression:
        """``EXTRACT(part FROM expression)``."""
        return FunctionExpression(
            "EXTRACT", (Literal(part.upper()), to_literal(expression)), "integer", " FROM"
        )

    def date_part(self, part: str, expression: Any) -> FunctionExpression:
        return self.extract(part, expression)

    def date_add(self, expression: Any, value: int | str, unit: str) -> FunctionExpression:
        """Add ``value`` units to a date, e.g. ``date_add("created", 5, "days")``."""
        if not isinstance(value, int):
            value = int(value)
        interval = Literal(f"{value} {unit}")
        return FunctionExpression(
            "DATE_ADD", (to_literal(expression), interval), "datetime", ", INTERVAL"
        )

    def day_of_week(self, expression: Any) -> FunctionExpression:
        """Day of the week, 1 for Sunday through 7 for Saturday."""
        return FunctionExpression("DAYOFWEEK", (to_literal(expression),), "integer")

    def weekday(self, expression: Any) -> FunctionExpression:
        return self.day_of_week(expression)

    def now(self, type: str = "datetime") -> FunctionExpression:
        """Current timestamp; ``type`` is ``datetime``, ``date`` or ``time``."""
        if type == "datetime":
            return FunctionExpression("NOW", (), "datetime")
        if type == "date":
            return FunctionExpression("CURRENT_DATE", (), "date")
        if type == "time":
            return FunctionExpression("CURRENT_TIME", (), "time")
        raise ValueError(f"Invalid argument for FunctionsBuilder.now(): {type}")

    def row_number(self) -> AggregateExpression:
        return AggregateExpression("ROW_NUMBER", (), "integer").over()

    def lag(
        self, expression: Any, offset: int, default: Any = None, type: str | None = None
    ) -> AggregateExpression:
        args = [to_literal(expression), Literal(str(int(offset)))]
        if default is not None:
            args.append(to_expression(default, type))
        return self.aggregate("LAG", args, type or "float").over()

    def lead(
        self, expression: Any, offset: int, default: Any = None, type: str | None = None
    ) -> AggregateExpression:
        args = [to_literal(expression), Literal(str(int(offset)))]
        if default is not None:
            args.append(to_expression(default, type))
        return self.aggregate("LEAD", args, type or "float").over()

    def aggregate(
        self, name: str, args: Sequence[Any] = (), return_type: str = "float"
    ) -> AggregateExpression:
        """Arbitrary aggregate function call."""
        return AggregateExpression(name, tuple(to_expression(a) for a in args), return_type)

    def custom(
        self, name: str, *args: Any, return_type: str | None = None, types: Sequence[str | None] = ()
    ) -> FunctionExpression:
        """Any other SQL function; plain arguments are bound as values."""
        return FunctionExpression(name, _bound(args, types), return_type)


func = FunctionsBuilder()

__all__ = ["FunctionsBuilder", "func"]
