"""
Query compilation: translated :class:`~sqlspine.query.Query` to SQL text.

Manifesto:
    Compilers only render.  Everything engine-specific about the *shape*
    of a query (paging, DISTINCT ON emulation, function rewrites) has
    already been done by the dialect translator, so a compiler is a
    straight walk over the clauses.

Architecture:
    ::

        Driver.compile_query(query, binder)
              │
              ▼
        SqlDialect.translate(query)  ──►  translated Query
              │
              ▼
        QueryCompiler.compile(translated, binder)  ──►  SQL text
              │                              │
              ▼                              ▼
        SubqueryExpression ──► compile_subquery (translate + compile)
                                             │
                                             ▼
                                ValueBinder ──► CompiledQuery(sql, bindings)

Features:
    - **ValueBinder:** names placeholders ``c0``, ``c1``... in bind order
    - **Paramstyles:** ``:c0`` (named, sqlite3) or ``%(c0)s`` (pyformat,
      psycopg2 and pymssql)
    - **Parameter ceiling:** compilers may cap the number of bound values

Examples:
    >>> binder = ValueBinder()
    >>> binder.bind(5, "integer")
    'c0'
    >>> CompiledQuery("SELECT :c0", tuple(binder.bindings())).params
    {'c0': 5}

Tags:
    compiler, sql, placeholders, sqlspine
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlspine.errors import QueryError
from sqlspine.expressions import Conjunction, Expression, Identifier, to_expression
from sqlspine.query import Query, QueryKind

if TYPE_CHECKING:
    from sqlspine.dialects.base import SqlDialect


@dataclass(frozen=True)
class Binding:
    placeholder: str
    value: Any
    type: str | None = None


@dataclass(frozen=True)
class CompiledQuery:
    """SQL text plus its ordered bindings."""

    sql: str
    bindings: tuple[Binding, ...] = ()

    @property
    def params(self) -> dict[str, Any]:
        return {b.placeholder: b.value for b in self.bindings}

    @property
    def types(self) -> dict[str, str]:
        return {b.placeholder: b.type for b in self.bindings if b.type}


class ValueBinder:
    """Collects bound values while a query is compiled."""

    def __init__(self, prefix: str = "c"):
        self.prefix = prefix
        self._bindings: list[Binding] = []

    def placeholder(self) -> str:
        return f"{self.prefix}{len(self._bindings)}"

    def bind(self, value: Any, type: str | None = None) -> str:
        name = self.placeholder()
        self._bindings.append(Binding(name, value, type))
        return name

    def bindings(self) -> list[Binding]:
        return list(self._bindings)

    def count(self) -> int:
        return len(self._bindings)

    def reset(self) -> None:
        self._bindings = []


class QueryCompiler:
    """Renders translated queries for one dialect.

    Attributes:
        paramstyle: ``"named"`` or ``"pyformat"``
        max_parameters: Bound values allowed per statement, None for no cap
    """

    paramstyle = "named"
    max_parameters: int | None = None

    def __init__(self, dialect: SqlDialect, auto_quote: bool = False):
        self.dialect = dialect
        self.auto_quote = auto_quote

    # ── Fragments ────────────────────────────────────────────────

    def placeholder(self, name: str) -> str:
        if self.paramstyle == "pyformat":
            return f"%({name})s"
        return f":{name}"

    def identifier(self, name: str) -> str:
        if self.auto_quote:
            return self.dialect.quote_identifier(name)
        return name

    def source(self, source: Any, alias: str | None, binder: ValueBinder) -> str:
        if isinstance(source, Query):
            text = f"({self.compile_subquery(source, binder)})"
        elif isinstance(source, Expression):
            text = source.sql(self, binder)
        else:
            text = self.identifier(str(source))
        if alias:
            text += f" {self.identifier(alias)}"
        return text

    # ── Entry points ─────────────────────────────────────────────

    def compile(self, query: Query, binder: ValueBinder) -> str:
        """Render an already translated query."""
        sql = self._compile(query, binder)
        if self.max_parameters is not None and binder.count() > self.max_parameters:
            raise QueryError(
                f"Query has {binder.count()} bound parameters, "
                f"the server accepts at most {self.max_parameters}"
            ).with_context(sql=sql)
        return sql

    def compile_subquery(self, query: Query, binder: ValueBinder) -> str:
        """Translate and render a nested query into the outer binder."""
        return self._compile(self.dialect.translate(query), binder)

    def _compile(self, query: Query, binder: ValueBinder) -> str:
        if query.kind is QueryKind.SELECT:
            return self.compile_select(query, binder)
        if query.kind is QueryKind.INSERT:
            return self.compile_insert(query, binder)
        if query.kind is QueryKind.UPDATE:
            return self.compile_update(query, binder)
        if query.kind is QueryKind.DELETE:
            return self.compile_delete(query, binder)
        raise QueryError(f"Unknown query kind {query.kind!r}")

    # ── SELECT ───────────────────────────────────────────────────

    def distinct_sql(self, query: Query, binder: ValueBinder) -> str:
        return "DISTINCT " if query.distinct else ""

    def compile_select(self, query: Query, binder: ValueBinder) -> str:
        fields = []
        for expression, alias in query.select or ((Identifier("*"), None),):
            text = expression.sql(self, binder)
            if alias:
                text += f" AS {self.identifier(alias)}"
            fields.append(text)

        modifiers = "".join(f"{m} " for m in query.modifiers)
        sql = f"SELECT {self.distinct_sql(query, binder)}{modifiers}{', '.join(fields)}"

        if query.from_:
            sql += " FROM " + ", ".join(
                self.source(source, alias, binder) for source, alias in query.from_
            )
        for join in query.joins:
            sql += f" {join.type} JOIN {self.source(join.table, join.alias, binder)}"
            if join.conditions is not None:
                sql += f" ON {join.conditions.sql(self, binder) or '1 = 1'}"
        sql += self.where_sql(query.where, binder)
        if query.group:
            sql += " GROUP BY " + ", ".join(g.sql(self, binder) for g in query.group)
        if query.having is not None:
            having = query.having.sql(self, binder)
            if having:
                sql += f" HAVING {having}"
        if query.order:
            sql += " ORDER BY " + ", ".join(o.sql(self, binder) for o in query.order)
        sql += self.limit_sql(query)
        if query.epilog:
            sql += f" {query.epilog}"
        return sql

    def where_sql(self, where: Expression | None, binder: ValueBinder) -> str:
        if where is None:
            return ""
        if isinstance(where, Conjunction):
            text = where.inner_sql(self, binder)
        else:
            text = where.sql(self, binder)
        return f" WHERE {text}" if text else ""

    def limit_sql(self, query: Query) -> str:
        sql = ""
        if query.limit is not None:
            sql += f" LIMIT {int(query.limit)}"
        if query.offset is not None:
            sql += f" OFFSET {int(query.offset)}"
        return sql

    # ── INSERT / UPDATE / DELETE ─────────────────────────────────

    def insert_output_sql(self, query: Query) -> str:
        return ""

    def compile_insert(self, query: Query, binder: ValueBinder) -> str:
        if not query.table or not query.columns:
            raise QueryError("Insert queries need a table and at least one column")
        columns = ", ".join(self.identifier(c) for c in query.columns)
        rows = []
        for row in query.values:
            items = ", ".join(
                to_expression(value, query.types.get(column)).sql(self, binder)
                for column, value in zip(query.columns, row)
            )
            rows.append(f"({items})")
        sql = (
            f"INSERT INTO {self.identifier(query.table)} ({columns})"
            f"{self.insert_output_sql(query)} VALUES {', '.join(rows)}"
        )
        if query.epilog:
            sql += f" {query.epilog}"
        return sql

    def compile_update(self, query: Query, binder: ValueBinder) -> str:
        if not query.table or not query.set:
            raise QueryError("Update queries need a table and at least one value")
        assignments = ", ".join(
            f"{self.identifier(column)} = "
            f"{to_expression(value, query.types.get(column)).sql(self, binder)}"
            for column, value in query.set
        )
        sql = f"UPDATE {self.identifier(query.table)} SET {assignments}"
        sql += self.where_sql(query.where, binder)
        if query.epilog:
            sql += f" {query.epilog}"
        return sql

    def compile_delete(self, query: Query, binder: ValueBinder) -> str:
        if not query.table:
            raise QueryError("Delete queries need a table")
        sql = f"DELETE FROM {self.identifier(query.table)}"
        sql += self.where_sql(query.where, binder)
        if query.epilog:
            sql += f" {query.epilog}"
        return sql


class PostgresCompiler(QueryCompiler):
    paramstyle = "pyformat"

    def distinct_sql(self, query: Query, binder: ValueBinder) -> str:
        if isinstance(query.distinct, tuple) and query.distinct:
            fields = ", ".join(f.sql(self, binder) for f in query.distinct)
            return f"DISTINCT ON ({fields}) "
        return super().distinct_sql(query, binder)


class SqlserverCompiler(QueryCompiler):
    paramstyle = "pyformat"
    max_parameters = 2100

    def limit_sql(self, query: Query) -> str:
        # Limit without offset is rendered as a TOP modifier by the translator.
        if query.offset is None:
            return ""
        sql = f" OFFSET {int(query.offset)} ROWS"
        if query.limit is not None:
            sql += f" FETCH FIRST {int(query.limit)} ROWS ONLY"
        return sql

    def insert_output_sql(self, query: Query) -> str:
        return " OUTPUT INSERTED.*"


class SqliteCompiler(QueryCompiler):
    paramstyle = "named"

    def limit_sql(self, query: Query) -> str:
        if query.offset is not None and query.limit is None:
            return f" LIMIT -1 OFFSET {int(query.offset)}"
        return super().limit_sql(query)


__all__ = [
    "Binding",
    "CompiledQuery",
    "ValueBinder",
    "QueryCompiler",
    "PostgresCompiler",
    "SqlserverCompiler",
    "SqliteCompiler",
]
