"""Postgres dialect."""

from __future__ import annotations

from dataclasses import replace

from sqlspine.compiler import PostgresCompiler
from sqlspine.dialects.base import ExpressionTranslator, SqlDialect
from sqlspine.expressions import (
    BinaryExpression,
    Expression,
    FunctionExpression,
    Identifier,
    Literal,
)
from sqlspine.query import Query


def _localtimestamp() -> FunctionExpression:
    return FunctionExpression("LOCALTIMESTAMP", (Literal("0"),))


class PostgresDialect(SqlDialect):
    name = "postgres"
    start_quote = '"'
    end_quote = '"'
    compiler_class = PostgresCompiler

    def disable_foreign_key_sql(self) -> str:
        return "SET CONSTRAINTS ALL DEFERRED"

    def enable_foreign_key_sql(self) -> str:
        return "SET CONSTRAINTS ALL IMMEDIATE"

    def transform_distinct(self, query: Query) -> Query:
        # DISTINCT ON is native.
        return query

    def insert_translator(self, query: Query) -> Query:
        if not query.epilog:
            return query.with_epilog("RETURNING *")
        return query

    def expression_translators(self) -> dict[type, ExpressionTranslator]:
        return {
            Identifier: self.transform_identifier,
            FunctionExpression: self.transform_function,
        }

    def transform_identifier(self, expression: Identifier) -> Expression:
        if not expression.collation:
            return expression
        return replace(expression, collation='"' + expression.collation.strip('"') + '"')

    def transform_function(self, expression: FunctionExpression) -> Expression:
        name = expression.name.upper()
        args = expression.args

        if name == "CONCAT":
            return replace(expression, name="", conjunction=" ||")

        if name == "DATEDIFF":
            dates = [FunctionExpression("DATE", (arg,)) for arg in args]
            if len(dates) != 2:
                return replace(expression, name="", conjunction=" -", args=tuple(dates))
            return BinaryExpression(dates[0], "-", dates[1])

        if name == "CURRENT_DATE":
            return FunctionExpression(
                "CAST", (_localtimestamp(), Literal("date")), "date", " AS"
            )

        if name == "CURRENT_TIME":
            return FunctionExpression(
                "CAST", (_localtimestamp(), Literal("time")), "time", " AS"
            )

        if name == "NOW":
            return replace(_localtimestamp(), return_type=expression.return_type)

        if name == "RAND":
            return replace(expression, name="RANDOM")

        if name == "DATE_ADD":
            date, interval = args[0], args[1]
            text = interval.text if isinstance(interval, Literal) else str(interval)
            return BinaryExpression(date, "+", Literal(f"INTERVAL '{text}'"))

        if name == "DAYOFWEEK":
            # DOW counts from 0 for Sunday; keep Sunday as 1.
            dow = FunctionExpression("EXTRACT", (Literal("DOW"), *args), "integer", " FROM")
            return BinaryExpression(dow, "+", Literal("1"))

        return expression


__all__ = ["PostgresDialect"]
