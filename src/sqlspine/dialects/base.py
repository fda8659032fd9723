"""
Shared dialect behaviour.

``SqlDialect`` is what every engine dialect builds on: identifier quoting,
savepoint and foreign-key SQL, and the translation pipeline that turns an
engine-agnostic :class:`~sqlspine.query.Query` into one the engine's
compiler can render.

Manifesto:
    Translation is a pure function of the query.  A translator receives a
    query value and returns a new one; nothing is edited in place, so the
    caller's query can be compiled again for a different engine.

    - **Per kind:** one translator per query kind (select, insert...)
    - **Then expressions:** a function-name rewrite table is applied to
      every clause after the kind translator ran
    - **Subqueries apart:** nested queries are translated when the
      compiler reaches them

Architecture:
    ::

        translate(query)
          │
          ├── query_translators()[query.kind](query)   # shape
          │       select: DISTINCT ON fallback, paging...
          │       insert: RETURNING / OUTPUT ...
          │
          └── rewrite_expressions(translated)          # functions
                  expression_translators(): {FunctionExpression: ...,
                                             TupleComparison: ...}

Examples:
    >>> dialect = SqlDialect()
    >>> dialect.quote_identifier("articles.title")
    '"articles"."title"'
    >>> dialect.savepoint_sql("1")
    'SAVEPOINT LEVEL1'

Tags:
    dialect, translation, quoting, savepoints, sqlspine
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from sqlspine.compiler import QueryCompiler
from sqlspine.expressions import Expression
from sqlspine.query import Join, Query, QueryKind

QueryTranslator = Callable[[Query], Query]
ExpressionTranslator = Callable[[Any], Expression]

_WORD = r"[\w-]"


class SqlDialect:
    """Base dialect: ANSI quoting, generic translators, no function rewrites."""

    name = "generic"
    start_quote = '"'
    end_quote = '"'
    compiler_class: type[QueryCompiler] = QueryCompiler

    def __init__(self, version: Callable[[], str] | str | None = None):
        self._version = version

    def version(self) -> str:
        if callable(self._version):
            return self._version()
        return self._version or ""

    def major_version(self) -> int:
        match = re.match(r"\s*(\d+)", self.version())
        return int(match.group(1)) if match else 0

    def new_compiler(self, auto_quote: bool = False) -> QueryCompiler:
        return self.compiler_class(self, auto_quote=auto_quote)

    # ── Quoting ──────────────────────────────────────────────────

    def quote_identifier(self, identifier: str) -> str:
        """Quote a (possibly qualified or aliased) identifier.

        Plain names, ``table.column``, ``table.*``, function calls and
        ``expr AS alias`` are handled; anything else is returned unchanged.
        """
        identifier = identifier.strip()
        if identifier in ("*", ""):
            return identifier

        start, end = self.start_quote, self.end_quote

        # string
        if re.fullmatch(rf"{_WORD}+", identifier):
            return f"{start}{identifier}{end}"

        # string.string
        if re.fullmatch(rf"{_WORD}+\.[^ *]*", identifier):
            items = identifier.split(".")
            return start + f"{end}.{start}".join(items) + end

        # string.*
        if re.fullmatch(rf"{_WORD}+\.\*", identifier):
            return start + identifier.replace(".*", f"{end}.*")

        # Functions
        match = re.fullmatch(rf"({_WORD}+)\((.*)\)", identifier)
        if match:
            return f"{match.group(1)}({self.quote_identifier(match.group(2))})"

        # Alias.field AS thing
        match = re.fullmatch(
            rf"({_WORD}+(\.[\w\s-]+|\(.*\))*)\s+AS\s*({_WORD}+)", identifier, re.IGNORECASE
        )
        if match:
            return (
                f"{self.quote_identifier(match.group(1))} AS "
                f"{self.quote_identifier(match.group(3))}"
            )

        # string.string with spaces
        match = re.match(rf"({_WORD}+\.\w[\w\s-]*\w)(.*)", identifier)
        if match:
            field = f"{end}.{start}".join(match.group(1).split("."))
            return f"{start}{field}{end}{match.group(2)}"

        if re.match(rf"[\w\s-]*{_WORD}+", identifier):
            return f"{start}{identifier}{end}"

        return identifier

    # ── Savepoints and constraints ───────────────────────────────

    def savepoint_sql(self, name: str | int) -> str:
        return f"SAVEPOINT LEVEL{name}"

    def release_savepoint_sql(self, name: str | int) -> str | None:
        return f"RELEASE SAVEPOINT LEVEL{name}"

    def rollback_savepoint_sql(self, name: str | int) -> str:
        return f"ROLLBACK TO SAVEPOINT LEVEL{name}"

    def disable_foreign_key_sql(self) -> str:
        raise NotImplementedError(f"{self.name} cannot toggle foreign key checks")

    def enable_foreign_key_sql(self) -> str:
        raise NotImplementedError(f"{self.name} cannot toggle foreign key checks")

    # ── Translation pipeline ─────────────────────────────────────

    def translate(self, query: Query) -> Query:
        """Return the engine-ready version of ``query``."""
        translator = self.query_translators()[query.kind]
        return self.rewrite_expressions(translator(query))

    def query_translators(self) -> dict[QueryKind, QueryTranslator]:
        return {
            QueryKind.SELECT: self.select_translator,
            QueryKind.INSERT: self.insert_translator,
            QueryKind.UPDATE: self.update_translator,
            QueryKind.DELETE: self.delete_translator,
        }

    def select_translator(self, query: Query) -> Query:
        return self.transform_distinct(query)

    def insert_translator(self, query: Query) -> Query:
        return query

    def update_translator(self, query: Query) -> Query:
        return query

    def delete_translator(self, query: Query) -> Query:
        return query

    def transform_distinct(self, query: Query) -> Query:
        """``DISTINCT ON (fields)`` for engines without it: group by the fields."""
        if not isinstance(query.distinct, tuple) or not query.distinct:
            return query
        return replace(query, group=query.group + query.distinct, distinct=False)

    def expression_translators(self) -> dict[type, ExpressionTranslator]:
        """Expression class to rewrite function; empty for the base dialect."""
        return {}

    def rewrite_expressions(self, query: Query) -> Query:
        translators = self.expression_translators()
        if not translators:
            return query

        def rewrite(node: Expression) -> Expression:
            for kind, translator in translators.items():
                if isinstance(node, kind):
                    return translator(node)
            return node

        def apply(value: Any) -> Any:
            if isinstance(value, Expression):
                return value.transform(rewrite)
            return value

        return replace(
            query,
            select=tuple((apply(e), alias) for e, alias in query.select),
            distinct=(
                tuple(apply(d) for d in query.distinct)
                if isinstance(query.distinct, tuple)
                else query.distinct
            ),
            from_=tuple((apply(source), alias) for source, alias in query.from_),
            joins=tuple(
                Join(apply(j.table), j.alias, j.type, apply(j.conditions)) for j in query.joins
            ),
            where=apply(query.where),
            group=tuple(apply(g) for g in query.group),
            having=apply(query.having),
            order=tuple(apply(o) for o in query.order),
            values=tuple(tuple(apply(v) for v in row) for row in query.values),
            set=tuple((column, apply(v)) for column, v in query.set),
        )


__all__ = ["SqlDialect", "QueryTranslator", "ExpressionTranslator"]
