"""Tuple comparison rewrite for engines without row-value comparisons.

``(a, b) IN ((1, 2), (3, 4))`` becomes::

    ((a = 1 AND b = 2) OR (a = 3 AND b = 4))

and ``(a, b) IN (SELECT c, d FROM t)`` becomes the correlated check::

    1 = (SELECT 1 FROM t WHERE a = c AND b = d)
"""

from __future__ import annotations

from sqlspine.errors import UnsupportedTupleOperatorError
from sqlspine.expressions import (
    Comparison,
    Conjunction,
    Expression,
    Literal,
    SubqueryExpression,
    TupleComparison,
    Value,
    and_,
)
from sqlspine.query import Query

SUPPORTED_OPERATORS = ("IN", "=")


def translate_tuple_comparison(expression: TupleComparison) -> Expression:
    operator = expression.operator.strip().upper()
    if operator not in SUPPORTED_OPERATORS:
        raise UnsupportedTupleOperatorError(expression.operator)

    values = expression.values
    if isinstance(values, SubqueryExpression):
        values = values.query
    if isinstance(values, Query):
        return _correlated_check(expression, values)

    alternatives: list[Expression] = []
    for row in expression.rows():
        alternatives.append(
            and_(
                *(
                    Comparison(field, Value(value, expression.type_of(i)), "=")
                    for i, (field, value) in enumerate(zip(expression.fields, row))
                )
            )
        )
    if len(alternatives) == 1:
        return alternatives[0]
    if not alternatives:
        return Literal("1 = 0")
    return Conjunction(tuple(alternatives), "OR")


def _correlated_check(expression: TupleComparison, subquery: Query) -> Expression:
    selected = [selected for selected, _alias in subquery.select]
    if len(selected) != len(expression.fields):
        raise ValueError(
            f"Tuple comparison needs the subquery to select {len(expression.fields)} columns, "
            f"it selects {len(selected)}"
        )
    for field, column in zip(expression.fields, selected):
        subquery = subquery.and_where(Comparison(field, column, "="))
    subquery = subquery.with_select([(Literal("1"), None)])
    return Comparison(Literal("1"), SubqueryExpression(subquery), "=")


__all__ = ["translate_tuple_comparison", "SUPPORTED_OPERATORS"]
