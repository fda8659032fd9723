"""
Engine-agnostic query values.

A :class:`Query` is the unit handed to ``Connection.run``: a frozen bag of
clauses that dialect translators reshape and compilers render.  Every
``with_*`` / ``add_*`` method returns a new query, so a translated query
never aliases the caller's object.

Examples:
    >>> q = select("id", "name", from_="users").and_where(eq("active", True)).with_limit(10)
    >>> q.kind
    <QueryKind.SELECT: 'select'>
    >>> q.limit
    10
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from sqlspine.expressions import (
    Conjunction,
    Expression,
    Identifier,
    OrderClause,
    and_,
    conditions_from,
    to_identifier,
)

RowDecorator = Callable[[dict[str, Any]], dict[str, Any]]


class QueryKind(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Join:
    table: Any
    alias: str | None = None
    type: str = "INNER"
    conditions: Expression | None = None


@dataclass(frozen=True)
class Query:
    kind: QueryKind = QueryKind.SELECT

    # ── SELECT ───────────────────────────────────────────────────
    select: tuple[tuple[Expression, str | None], ...] = ()
    distinct: bool | tuple[Expression, ...] = False
    modifiers: tuple[str, ...] = ()
    from_: tuple[tuple[Any, str | None], ...] = ()
    joins: tuple[Join, ...] = ()
    where: Expression | None = None
    group: tuple[Expression, ...] = ()
    having: Expression | None = None
    order: tuple[OrderClause, ...] = ()
    limit: int | None = None
    offset: int | None = None
    epilog: str | None = None

    # ── INSERT / UPDATE / DELETE ─────────────────────────────────
    table: str | None = None
    columns: tuple[str, ...] = ()
    values: tuple[tuple[Any, ...], ...] = ()
    set: tuple[tuple[str, Any], ...] = ()

    # ── Types and results ────────────────────────────────────────
    types: Mapping[str, str] = field(default_factory=dict)
    """Column name to type name, used when binding values."""
    select_types: Mapping[str, str] = field(default_factory=dict)
    """Result column to type name, used when converting fetched rows."""
    result_decorators: tuple[RowDecorator, ...] = ()
    buffered: bool = True

    # ── Clause builders ──────────────────────────────────────────

    def add_select(self, *fields: Any, **aliased: Any) -> Query:
        """Add select fields; keyword arguments become ``expr AS alias``."""
        entries = [(to_identifier(f), None) for f in fields]
        entries += [(to_identifier(f), alias) for alias, f in aliased.items()]
        return replace(self, select=self.select + tuple(entries))

    def with_select(self, entries: Sequence[tuple[Expression, str | None]]) -> Query:
        return replace(self, select=tuple(entries))

    def add_from(self, table: Any, alias: str | None = None) -> Query:
        source = Identifier(table) if isinstance(table, str) else table
        return replace(self, from_=self.from_ + ((source, alias),))

    def add_join(
        self,
        table: Any,
        conditions: Expression | dict[str, Any] | None = None,
        alias: str | None = None,
        type: str = "INNER",
    ) -> Query:
        source = Identifier(table) if isinstance(table, str) else table
        join = Join(source, alias, type.upper(), conditions_from(conditions))
        return replace(self, joins=self.joins + (join,))

    def and_where(self, condition: Expression | dict[str, Any], types: dict | None = None) -> Query:
        expression = conditions_from(condition, types or dict(self.types))
        if self.where is None:
            return replace(self, where=expression)
        if isinstance(self.where, Conjunction) and self.where.conjunction == "AND":
            return replace(self, where=self.where.add(expression))  # type: ignore[arg-type]
        return replace(self, where=and_(self.where, expression))  # type: ignore[arg-type]

    def with_where(self, condition: Expression | None) -> Query:
        return replace(self, where=condition)

    def add_group(self, *fields: Any) -> Query:
        return replace(self, group=self.group + tuple(to_identifier(f) for f in fields))

    def with_having(self, condition: Expression | None) -> Query:
        return replace(self, having=condition)

    def add_order(self, field: Any, direction: str = "ASC") -> Query:
        clause = field if isinstance(field, OrderClause) else OrderClause(to_identifier(field), direction)
        return replace(self, order=self.order + (clause,))

    def with_order(self, order: Sequence[OrderClause]) -> Query:
        return replace(self, order=tuple(order))

    def with_limit(self, limit: int | None) -> Query:
        return replace(self, limit=limit)

    def with_offset(self, offset: int | None) -> Query:
        return replace(self, offset=offset)

    def with_distinct(self, *fields: Any) -> Query:
        """``DISTINCT`` with no fields, ``DISTINCT ON (...)`` otherwise."""
        if not fields:
            return replace(self, distinct=True)
        return replace(self, distinct=tuple(to_identifier(f) for f in fields))

    def without_distinct(self) -> Query:
        return replace(self, distinct=False)

    def add_modifier(self, *modifiers: str) -> Query:
        return replace(self, modifiers=self.modifiers + modifiers)

    def with_epilog(self, epilog: str | None) -> Query:
        return replace(self, epilog=epilog)

    def with_types(self, types: Mapping[str, str]) -> Query:
        return replace(self, types={**self.types, **types})

    def with_select_types(self, types: Mapping[str, str]) -> Query:
        return replace(self, select_types={**self.select_types, **types})

    def decorate_results(self, decorator: RowDecorator) -> Query:
        return replace(self, result_decorators=self.result_decorators + (decorator,))

    def with_buffering(self, enabled: bool = True) -> Query:
        return replace(self, buffered=enabled)

    # ── Inspection ───────────────────────────────────────────────

    def selected_expression(self, alias: str) -> Expression | None:
        """The expression selected under ``alias``, if any."""
        for expression, name in self.select:
            if name == alias:
                return expression
        return None

    def selected_names(self) -> list[str]:
        """Result column names, as far as they can be told without a server."""
        names = []
        for expression, alias in self.select:
            if alias:
                names.append(alias)
            elif isinstance(expression, Identifier):
                names.append(expression.name.rsplit(".", 1)[-1])
        return names


# ── Constructors ─────────────────────────────────────────────────────────


def select(*fields: Any, from_: Any = None, **aliased: Any) -> Query:
    query = Query(QueryKind.SELECT).add_select(*fields, **aliased)
    if from_ is not None:
        query = query.add_from(from_)
    return query


def insert(
    table: str,
    columns: Sequence[str],
    rows: Sequence[Sequence[Any]] | Sequence[Mapping[str, Any]],
    types: Mapping[str, str] | None = None,
) -> Query:
    """``INSERT INTO table (columns) VALUES (...)`` for one or more rows."""
    normalized = []
    for row in rows:
        if isinstance(row, Mapping):
            normalized.append(tuple(row.get(column) for column in columns))
        else:
            normalized.append(tuple(row))
    return Query(
        QueryKind.INSERT,
        table=table,
        columns=tuple(columns),
        values=tuple(normalized),
        types=dict(types or {}),
        buffered=False,
    )


def update(
    table: str,
    values: Mapping[str, Any],
    conditions: Expression | dict[str, Any] | None = None,
    types: Mapping[str, str] | None = None,
) -> Query:
    types = dict(types or {})
    return Query(
        QueryKind.UPDATE,
        table=table,
        set=tuple(values.items()),
        where=conditions_from(conditions, types),
        types=types,
        buffered=False,
    )


def delete(
    table: str,
    conditions: Expression | dict[str, Any] | None = None,
    types: Mapping[str, str] | None = None,
) -> Query:
    types = dict(types or {})
    return Query(
        QueryKind.DELETE,
        table=table,
        where=conditions_from(conditions, types),
        types=types,
        buffered=False,
    )


__all__ = ["Query", "QueryKind", "Join", "select", "insert", "update", "delete"]
