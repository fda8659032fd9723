"""
SQL Server dialect.

Beyond the function rewrites, SQL Server needs the shape of SELECT queries
changed:

- ``LIMIT`` without ``OFFSET`` becomes a ``TOP n`` modifier
- ``OFFSET`` requires an ``ORDER BY``; ``(SELECT NULL)`` is used if none
- servers before 2012 (major version 11) have no ``OFFSET ... FETCH`` and
  page through a ``ROW_NUMBER()`` subquery instead
- ``DISTINCT ON`` is emulated with a partitioned ``ROW_NUMBER()``

The synthetic row-number columns are removed from fetched rows by result
decorators attached to the translated query.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from sqlspine.compiler import SqlserverCompiler
from sqlspine.dialects.base import ExpressionTranslator, SqlDialect
from sqlspine.dialects.tuple_comparison import translate_tuple_comparison
from sqlspine.expressions import (
    AggregateExpression,
    Comparison,
    Expression,
    FunctionExpression,
    Identifier,
    Literal,
    OrderClause,
    TupleComparison,
    WindowExpression,
    and_,
)
from sqlspine.query import Query, QueryKind, RowDecorator

PAGE_ROWNUM = "_spine_page_rownum_"
PAGING_ALIAS = "_spine_paging_"
DISTINCT_PIVOT = "_spine_distinct_pivot_"
DISTINCT_ALIAS = "_spine_distinct_"


def strip_column(name: str) -> RowDecorator:
    """Row decorator removing a synthetic column."""

    def decorator(row: dict[str, Any]) -> dict[str, Any]:
        row.pop(name, None)
        return row

    decorator.__name__ = f"strip_{name.strip('_')}"
    return decorator


def _all_columns(query: Query) -> tuple[tuple[Expression, str | None], ...]:
    return query.select or ((Identifier("*"), None),)


class SqlserverDialect(SqlDialect):
    name = "sqlserver"
    start_quote = "["
    end_quote = "]"
    compiler_class = SqlserverCompiler

    def savepoint_sql(self, name: str | int) -> str:
        return f"SAVE TRANSACTION t{name}"

    def release_savepoint_sql(self, name: str | int) -> str | None:
        # SQL Server has no savepoint release.
        return None

    def rollback_savepoint_sql(self, name: str | int) -> str:
        return f"ROLLBACK TRANSACTION t{name}"

    def disable_foreign_key_sql(self) -> str:
        return 'EXEC sp_MSforeachtable "ALTER TABLE ? NOCHECK CONSTRAINT all"'

    def enable_foreign_key_sql(self) -> str:
        return 'EXEC sp_MSforeachtable "ALTER TABLE ? WITH CHECK CHECK CONSTRAINT all"'

    def uses_legacy_paging(self) -> bool:
        """True for servers older than SQL Server 2012."""
        major = self.major_version()
        return 0 < major < 11

    # ── Query translators ────────────────────────────────────────

    def select_translator(self, query: Query) -> Query:
        query = self.transform_distinct(query)

        if query.limit is not None and query.offset is None:
            query = query.add_modifier(f"TOP {int(query.limit)}")

        if query.offset is not None and not query.order:
            query = query.add_order(OrderClause(Literal("(SELECT NULL)"), ""))

        if query.offset is not None and self.uses_legacy_paging():
            return self.paging_subquery(query)

        return query

    def paging_subquery(self, original: Query) -> Query:
        """Page with ``ROW_NUMBER()`` for servers without OFFSET/FETCH."""
        limit, offset = original.limit, original.offset

        if original.order:
            # OVER clauses cannot see select aliases; use the aliased expressions.
            order = tuple(self._unalias(clause, original) for clause in original.order)
        else:
            order = (OrderClause(Literal("(SELECT NULL)"), ""),)

        rownum = AggregateExpression(
            "ROW_NUMBER", (), "integer", window=WindowExpression(order=order)
        )
        inner = replace(
            original,
            select=_all_columns(original) + ((rownum, PAGE_ROWNUM),),
            limit=None,
            offset=None,
            order=(),
            result_decorators=(),
            select_types={},
        )

        field = f"{PAGING_ALIAS}.{PAGE_ROWNUM}"
        conditions: list[Expression] = []
        if offset:
            conditions.append(Literal(f"{field} > {int(offset)}"))
        if limit is not None:
            conditions.append(Literal(f"{field} <= {int(offset or 0) + int(limit)}"))

        return Query(
            QueryKind.SELECT,
            select=((Identifier("*"), None),),
            from_=((inner, PAGING_ALIAS),),
            where=and_(*conditions) if conditions else None,
            order=(OrderClause(Identifier(field)),),
            types=original.types,
            select_types=original.select_types,
            result_decorators=original.result_decorators + (strip_column(PAGE_ROWNUM),),
            buffered=original.buffered,
        )

    def _unalias(self, clause: OrderClause, query: Query) -> OrderClause:
        if isinstance(clause.field, Identifier):
            selected = query.selected_expression(clause.field.name)
            if selected is not None and not isinstance(selected, Identifier):
                return replace(clause, field=selected)
        return clause

    @staticmethod
    def _requalify(clause: OrderClause, alias: str) -> OrderClause:
        """Point table-qualified sort keys at the derived table ``alias``."""

        def rename(node: Expression) -> Expression:
            if isinstance(node, Identifier) and "." in node.name:
                return replace(node, name=f"{alias}.{node.name.rsplit('.', 1)[1]}")
            return node

        return clause.transform(rename)  # type: ignore[return-value]

    def transform_distinct(self, query: Query) -> Query:
        if not isinstance(query.distinct, tuple) or not query.distinct:
            return query

        fields = query.distinct
        window = WindowExpression(
            partition=fields, order=tuple(OrderClause(f) for f in fields)
        )
        pivot = AggregateExpression("ROW_NUMBER", (), "integer", window=window)
        inner = replace(
            query,
            distinct=False,
            select=_all_columns(query) + ((pivot, DISTINCT_PIVOT),),
            limit=None,
            offset=None,
            order=(),
            result_decorators=(),
            select_types={},
        )

        return Query(
            QueryKind.SELECT,
            select=((Identifier("*"), None),),
            from_=((inner, DISTINCT_ALIAS),),
            where=Comparison(Identifier(DISTINCT_PIVOT), Literal("1"), "="),
            order=tuple(self._requalify(clause, DISTINCT_ALIAS) for clause in query.order),
            limit=query.limit,
            offset=query.offset,
            types=query.types,
            select_types=query.select_types,
            result_decorators=query.result_decorators + (strip_column(DISTINCT_PIVOT),),
            buffered=query.buffered,
        )

    # ── Expression rewrites ──────────────────────────────────────

    def expression_translators(self) -> dict[type, ExpressionTranslator]:
        return {
            FunctionExpression: self.transform_function,
            TupleComparison: translate_tuple_comparison,
        }

    def transform_function(self, expression: FunctionExpression) -> Expression:
        name = expression.name.upper()
        args = expression.args

        if name == "CONCAT":
            return replace(expression, name="", conjunction=" +")

        if name == "DATEDIFF":
            has_day = any(
                isinstance(arg, Literal) and arg.text.strip().lower() == "day" for arg in args
            )
            if not has_day:
                # Appended after the dates on purpose, not in T-SQL's
                # unit-first position; see the DATEDIFF entry in DESIGN.md.
                return replace(expression, args=args + (Literal("day"),))
            return expression

        if name == "CURRENT_DATE":
            return FunctionExpression("CONVERT", (Literal("date"), FunctionExpression("GETUTCDATE")), "date")

        if name == "CURRENT_TIME":
            return FunctionExpression("CONVERT", (Literal("time"), FunctionExpression("GETUTCDATE")), "time")

        if name == "NOW":
            return replace(expression, name="GETUTCDATE")

        if name == "EXTRACT":
            return replace(expression, name="DATEPART", conjunction=",")

        if name == "DATE_ADD":
            date, interval = args[0], args[1]
            text = interval.text if isinstance(interval, Literal) else str(interval)
            amount, unit = text.split()[:2]
            return FunctionExpression(
                "DATEADD",
                (Literal(unit.rstrip("s")), Literal(amount), date),
                expression.return_type,
            )

        if name == "DAYOFWEEK":
            return FunctionExpression(
                "DATEPART", (Literal("weekday"), *args), expression.return_type
            )

        if name == "SUBSTR":
            substring = replace(expression, name="SUBSTRING")
            if len(args) < 3:
                length = FunctionExpression("LEN", (args[0],), "integer")
                substring = replace(substring, args=args + (length,))
            return substring

        return expression


__all__ = [
    "SqlserverDialect",
    "strip_column",
    "PAGE_ROWNUM",
    "PAGING_ALIAS",
    "DISTINCT_PIVOT",
    "DISTINCT_ALIAS",
]
