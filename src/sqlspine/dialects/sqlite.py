"""SQLite dialect."""

from __future__ import annotations

from dataclasses import replace

from sqlspine.compiler import SqliteCompiler
from sqlspine.dialects.base import ExpressionTranslator, SqlDialect
from sqlspine.dialects.tuple_comparison import translate_tuple_comparison
from sqlspine.expressions import (
    BinaryExpression,
    Expression,
    FunctionExpression,
    Literal,
    TupleComparison,
)

# EXTRACT part to strftime() format
_DATE_PARTS = {
    "YEAR": "%Y",
    "MONTH": "%m",
    "DAY": "%d",
    "HOUR": "%H",
    "MINUTE": "%M",
    "SECOND": "%S",
    "WEEK": "%W",
    "DOW": "%w",
    "DOY": "%j",
}


class SqliteDialect(SqlDialect):
    name = "sqlite"
    start_quote = '"'
    end_quote = '"'
    compiler_class = SqliteCompiler

    def disable_foreign_key_sql(self) -> str:
        return "PRAGMA foreign_keys = OFF"

    def enable_foreign_key_sql(self) -> str:
        return "PRAGMA foreign_keys = ON"

    def expression_translators(self) -> dict[type, ExpressionTranslator]:
        return {
            FunctionExpression: self.transform_function,
            TupleComparison: translate_tuple_comparison,
        }

    def transform_function(self, expression: FunctionExpression) -> Expression:
        name = expression.name.upper()
        args = expression.args

        if name == "CONCAT":
            return replace(expression, name="", conjunction=" ||")

        if name == "DATEDIFF":
            days = [FunctionExpression("JULIANDAY", (arg,)) for arg in args[:2]]
            return FunctionExpression(
                "ROUND", (BinaryExpression(days[0], "-", days[1]),), "integer"
            )

        if name == "NOW":
            return FunctionExpression("DATETIME", (Literal("'now'"),), "datetime")

        if name == "CURRENT_DATE":
            return FunctionExpression("DATE", (Literal("'now'"),), "date")

        if name == "CURRENT_TIME":
            return FunctionExpression("TIME", (Literal("'now'"),), "time")

        if name == "RAND":
            # RANDOM() is a signed 64-bit integer; scale it into [0, 1).
            random = FunctionExpression("ABS", (FunctionExpression("RANDOM"),))
            return BinaryExpression(random, "/", Literal("9223372036854775808.0"))

        if name == "EXTRACT":
            part = args[0].text.upper() if isinstance(args[0], Literal) else "YEAR"
            strftime = FunctionExpression(
                "STRFTIME", (Literal(f"'{_DATE_PARTS.get(part, '%Y')}'"), *args[1:])
            )
            return FunctionExpression("CAST", (strftime, Literal("INTEGER")), "integer", " AS")

        if name == "DATE_ADD":
            date, interval = args[0], args[1]
            text = interval.text if isinstance(interval, Literal) else str(interval)
            amount, unit = text.split()[:2]
            sign = "" if amount.startswith("-") else "+"
            return FunctionExpression(
                "DATETIME", (date, Literal(f"'{sign}{amount} {unit}'")), "datetime"
            )

        if name == "DAYOFWEEK":
            weekday = FunctionExpression("STRFTIME", (Literal("'%w'"), *args))
            return BinaryExpression(
                FunctionExpression("CAST", (weekday, Literal("INTEGER")), None, " AS"),
                "+",
                Literal("1"),
            )

        return expression


__all__ = ["SqliteDialect"]
