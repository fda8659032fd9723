"""
Immutable SQL expression values.

Expressions are the nodes a :class:`~sqlspine.query.Query` is built from.
They never change after construction: dialect rewrites produce new nodes
through :meth:`Expression.transform`, which rebuilds the tree bottom-up and
stops at subqueries (a subquery is translated on its own when the compiler
reaches it).

Manifesto:
    - **Values, not visitors:** every node is a frozen dataclass
    - **One render method:** ``sql(compiler, binder)`` returns SQL text and
      registers bound values with the binder
    - **Engine agnostic:** nodes hold logical function names such as
      ``CONCAT`` or ``DATEDIFF``; dialects rewrite them

Architecture:
    ::

        Expression
          ├── Literal            raw SQL text
          ├── Identifier         column / table name, optional collation
          ├── Value              bound parameter
          ├── FunctionExpression NAME(arg, arg)
          │     └── AggregateExpression  ... FILTER (...) OVER (...)
          ├── WindowExpression   PARTITION BY ... ORDER BY ...
          ├── OrderClause        expr ASC|DESC
          ├── Comparison         field op value
          ├── TupleComparison    (a, b) IN ((1, 2), (3, 4))
          ├── Conjunction        (c1 AND c2)
          ├── BinaryExpression   (left op right)
          ├── UnaryExpression    NOT x / x IS NULL
          ├── CaseExpression     CASE WHEN ... END
          └── SubqueryExpression (SELECT ...)

Examples:
    >>> where = and_(eq("id", 1), Comparison(Identifier("name"), "x", "LIKE"))
    >>> [type(c).__name__ for c in where.conditions]
    ['Comparison', 'Comparison']

Tags:
    expressions, sql, immutable, sqlspine
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqlspine.compiler import QueryCompiler, ValueBinder
    from sqlspine.query import Query

Transform = Callable[["Expression"], "Expression"]


class Expression(ABC):
    """Base class of every SQL expression node."""

    @abstractmethod
    def sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        """Render this node, binding any values it carries."""
        ...

    def map_children(self, fn: Transform) -> Expression:
        """Return a copy with ``fn`` applied to each direct child."""
        return self

    def transform(self, fn: Transform) -> Expression:
        """Rebuild the tree bottom-up, passing every node through ``fn``."""
        rebuilt = self.map_children(lambda child: child.transform(fn))
        return fn(rebuilt)

    def walk(self) -> Iterable[Expression]:
        """Yield this node and its descendants, subqueries excluded."""
        found: list[Expression] = []

        def collect(node: Expression) -> Expression:
            found.append(node)
            return node

        self.transform(collect)
        return found


def to_expression(value: Any, type: str | None = None) -> Expression:
    """Wrap a plain Python value as a bound :class:`Value`."""
    if isinstance(value, Expression):
        return value
    from sqlspine.query import Query

    if isinstance(value, Query):
        return SubqueryExpression(value)
    return Value(value, type)


def to_identifier(value: Any) -> Expression:
    """Strings name columns; everything else goes through :func:`to_expression`."""
    if isinstance(value, str):
        return Identifier(value)
    return to_expression(value)


def to_literal(value: Any) -> Expression:
    if isinstance(value, str):
        return Literal(value)
    return to_expression(value)


@dataclass(frozen=True)
class Literal(Expression):
    """Raw SQL text, emitted as is."""

    text: str

    def sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        return self.text


@dataclass(frozen=True)
class Identifier(Expression):
    name: str
    collation: str | None = None

    def sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        text = compiler.identifier(self.name)
        if self.collation:
            text += f" COLLATE {self.collation}"
        return text


@dataclass(frozen=True)
class Value(Expression):
    """A value sent to the server as a bound parameter."""

    value: Any
    type: str | None = None

    def sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        return compiler.placeholder(binder.bind(self.value, self.type))


@dataclass(frozen=True)
class FunctionExpression(Expression):
    """``NAME(arg<conjunction> arg)``.

    The name may be empty, which renders a parenthesised list; dialects use
    that to turn ``CONCAT(a, b)`` into ``(a || b)``.
    """

    name: str
    args: tuple[Expression, ...] = ()
    return_type: str | None = None
    conjunction: str = ","

    def with_args(self, *args: Expression) -> FunctionExpression:
        return replace(self, args=tuple(args))

    def map_children(self, fn: Transform) -> Expression:
        return replace(self, args=tuple(fn(arg) for arg in self.args))

    def sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        parts = [arg.sql(compiler, binder) for arg in self.args]
        return f"{self.name}({(self.conjunction + ' ').join(parts)})"


@dataclass(frozen=True)
class WindowExpression(Expression):
    """Body of an ``OVER (...)`` clause."""

    partition: tuple[Expression, ...] = ()
    order: tuple[OrderClause, ...] = ()
    frame: str | None = None

    def is_empty(self) -> bool:
        return not (self.partition or self.order or self.frame)

    def partition_by(self, *fields: Any) -> WindowExpression:
        return replace(self, partition=self.partition + tuple(to_identifier(f) for f in fields))

    def order_by(self, *fields: Any, direction: str = "ASC") -> WindowExpression:
        clauses = tuple(
            f if isinstance(f, OrderClause) else OrderClause(to_identifier(f), direction)
            for f in fields
        )
        return replace(self, order=self.order + clauses)

    def map_children(self, fn: Transform) -> Expression:
        return replace(
            self,
            partition=tuple(fn(p) for p in self.partition),
            order=tuple(fn(o) for o in self.order),  # type: ignore[misc]
        )

    def sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        clauses = []
        if self.partition:
            clauses.append(
                "PARTITION BY " + ", ".join(p.sql(compiler, binder) for p in self.partition)
            )
        if self.order:
            clauses.append("ORDER BY " + ", ".join(o.sql(compiler, binder) for o in self.order))
        if self.frame:
            clauses.append(self.frame)
        return " ".join(clauses)


@dataclass(frozen=True)
class AggregateExpression(FunctionExpression):
    """Aggregate or window function call."""

    filter: Expression | None = None
    window: WindowExpression | None = None

    def over(self, window: WindowExpression | None = None) -> AggregateExpression:
        return replace(self, window=window or WindowExpression())

    def where(self, condition: Expression) -> AggregateExpression:
        return replace(self, filter=condition)

    def map_children(self, fn: Transform) -> Expression:
        rebuilt = replace(
            self,
            args=tuple(fn(arg) for arg in self.args),
            filter=fn(self.filter) if self.filter is not None else None,
        )
        if self.window is not None:
            rebuilt = replace(rebuilt, window=fn(self.window))  # type: ignore[arg-type]
        return rebuilt

    def sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        text = super().sql(compiler, binder)
        if self.filter is not None:
            text += f" FILTER (WHERE {self.filter.sql(compiler, binder)})"
        if self.window is not None:
            text += f" OVER ({self.window.sql(compiler, binder)})"
        return text


@dataclass(frozen=True)
class OrderClause(Expression):
    field: Expression
    direction: str = "ASC"

    def map_children(self, fn: Transform) -> Expression:
        return replace(self, field=fn(self.field))

    def sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        text = self.field.sql(compiler, binder)
        if self.direction:
            text += f" {self.direction}"
        return text


@dataclass(frozen=True)
class Comparison(Expression):
    """``field <operator> value``; ``IN`` takes a sequence or a subquery."""

    field: Expression
    value: Any
    operator: str = "="
    type: str | None = None

    def map_children(self, fn: Transform) -> Expression:
        value = self.value
        if isinstance(value, Expression):
            value = fn(value)
        return replace(self, field=fn(self.field), value=value)

    def sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        left = self.field.sql(compiler, binder)
        operator = self.operator.upper()
        if self.value is None and operator in ("=", "IS"):
            return f"{left} IS NULL"
        if self.value is None and operator in ("!=", "<>", "IS NOT"):
            return f"{left} IS NOT NULL"
        if operator in ("IN", "NOT IN") and isinstance(self.value, (list, tuple, set, frozenset)):
            items = ", ".join(
                to_expression(item, self.type).sql(compiler, binder) for item in self.value
            )
            return f"{left} {operator} ({items})"
        right = to_expression(self.value, self.type).sql(compiler, binder)
        return f"{left} {operator} {right}"


@dataclass(frozen=True)
class TupleComparison(Expression):
    """Multi-column comparison.

    ``values`` is either a sequence of value tuples (or a single tuple for
    ``=``) or a subquery selecting as many columns as ``fields`` has.
    """

    fields: tuple[Expression, ...]
    values: Any
    operator: str = "IN"
    types: tuple[str | None, ...] = ()

    def type_of(self, index: int) -> str | None:
        return self.types[index] if index < len(self.types) else None

    def rows(self) -> list[tuple[Any, ...]]:
        """Value tuples, with a bare tuple treated as a single row."""
        values = list(self.values)
        if values and not isinstance(values[0], (list, tuple)):
            return [tuple(values)]
        return [tuple(row) for row in values]

    def map_children(self, fn: Transform) -> Expression:
        values = self.values
        if isinstance(values, Expression):
            values = fn(values)
        return replace(self, fields=tuple(fn(f) for f in self.fields), values=values)

    def sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        left = "(" + ", ".join(f.sql(compiler, binder) for f in self.fields) + ")"
        operator = self.operator.upper()
        if isinstance(self.values, Expression):
            return f"{left} {operator} {self.values.sql(compiler, binder)}"
        from sqlspine.query import Query

        if isinstance(self.values, Query):
            return f"{left} {operator} {SubqueryExpression(self.values).sql(compiler, binder)}"

        rendered = []
        for row in self.rows():
            items = ", ".join(
                to_expression(value, self.type_of(i)).sql(compiler, binder)
                for i, value in enumerate(row)
            )
            rendered.append(f"({items})")
        if operator == "=" and len(rendered) == 1:
            return f"{left} = {rendered[0]}"
        return f"{left} {operator} ({', '.join(rendered)})"


@dataclass(frozen=True)
class Conjunction(Expression):
    """Conditions joined by ``AND`` / ``OR``; parenthesised when compound."""

    conditions: tuple[Expression, ...] = ()
    conjunction: str = "AND"

    def add(self, *conditions: Expression) -> Conjunction:
        return replace(self, conditions=self.conditions + tuple(conditions))

    def is_empty(self) -> bool:
        return not self.conditions

    def map_children(self, fn: Transform) -> Expression:
        return replace(self, conditions=tuple(fn(c) for c in self.conditions))

    def inner_sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        """Joined conditions without the surrounding parentheses."""
        parts = [c.sql(compiler, binder) for c in self.conditions]
        return f" {self.conjunction} ".join(p for p in parts if p)

    def sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        text = self.inner_sql(compiler, binder)
        if len(self.conditions) > 1 and text:
            return f"({text})"
        return text


@dataclass(frozen=True)
class BinaryExpression(Expression):
    left: Expression
    operator: str
    right: Expression

    def map_children(self, fn: Transform) -> Expression:
        return replace(self, left=fn(self.left), right=fn(self.right))

    def sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        return (
            f"({self.left.sql(compiler, binder)} {self.operator} "
            f"{self.right.sql(compiler, binder)})"
        )


@dataclass(frozen=True)
class UnaryExpression(Expression):
    operator: str
    operand: Expression
    postfix: bool = False

    def map_children(self, fn: Transform) -> Expression:
        return replace(self, operand=fn(self.operand))

    def sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        operand = self.operand.sql(compiler, binder)
        if self.postfix:
            return f"{operand} {self.operator}"
        return f"{self.operator} ({operand})"


@dataclass(frozen=True)
class CaseExpression(Expression):
    """``CASE WHEN c THEN v ... ELSE e END``."""

    whens: tuple[tuple[Expression, Expression], ...] = ()
    else_: Expression | None = None
    return_type: str | None = None

    def when(self, condition: Expression, then: Any, type: str | None = None) -> CaseExpression:
        return replace(self, whens=self.whens + ((condition, to_expression(then, type)),))

    def otherwise(self, value: Any, type: str | None = None) -> CaseExpression:
        return replace(self, else_=to_expression(value, type))

    def map_children(self, fn: Transform) -> Expression:
        return replace(
            self,
            whens=tuple((fn(c), fn(v)) for c, v in self.whens),
            else_=fn(self.else_) if self.else_ is not None else None,
        )

    def sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        parts = ["CASE"]
        for condition, value in self.whens:
            parts.append(
                f"WHEN {condition.sql(compiler, binder)} THEN {value.sql(compiler, binder)}"
            )
        if self.else_ is not None:
            parts.append(f"ELSE {self.else_.sql(compiler, binder)}")
        parts.append("END")
        return " ".join(parts)


@dataclass(frozen=True)
class SubqueryExpression(Expression):
    """A nested query. Translated by the dialect when compiled, not before."""

    query: Query
    alias: str | None = None

    def sql(self, compiler: QueryCompiler, binder: ValueBinder) -> str:
        text = f"({compiler.compile_subquery(self.query, binder)})"
        if self.alias:
            text += f" {compiler.identifier(self.alias)}"
        return text


# ── Condition helpers ────────────────────────────────────────────────────


def eq(field: Any, value: Any, type: str | None = None) -> Comparison:
    return Comparison(to_identifier(field), value, "=", type)


def compare(field: Any, operator: str, value: Any, type: str | None = None) -> Comparison:
    return Comparison(to_identifier(field), value, operator, type)


def in_(field: Any, values: Sequence[Any] | Query, type: str | None = None) -> Comparison:
    return Comparison(to_identifier(field), values, "IN", type)


def and_(*conditions: Expression) -> Conjunction:
    return Conjunction(tuple(conditions), "AND")


def or_(*conditions: Expression) -> Conjunction:
    return Conjunction(tuple(conditions), "OR")


def not_(condition: Expression) -> UnaryExpression:
    return UnaryExpression("NOT", condition)


def conditions_from(
    conditions: Expression | dict[str, Any] | None, types: dict[str, str] | None = None
) -> Expression | None:
    """Build a conjunction of equalities from ``{"column": value}``."""
    if conditions is None or isinstance(conditions, Expression):
        return conditions
    types = types or {}
    return and_(*(eq(column, value, types.get(column)) for column, value in conditions.items()))


__all__ = [
    "Expression",
    "Literal",
    "Identifier",
    "Value",
    "FunctionExpression",
    "AggregateExpression",
    "WindowExpression",
    "OrderClause",
    "Comparison",
    "TupleComparison",
    "Conjunction",
    "BinaryExpression",
    "UnaryExpression",
    "CaseExpression",
    "SubqueryExpression",
    "to_expression",
    "to_identifier",
    "to_literal",
    "eq",
    "compare",
    "in_",
    "and_",
    "or_",
    "not_",
    "conditions_from",
]
