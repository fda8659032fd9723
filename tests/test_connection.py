"""Tests for ``sqlspine.connection``: dispatch, retries and lifecycle."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import structlog

from conftest import FakeDriver
from sqlspine.connection import Connection
from sqlspine.errors import (
    DatabaseConnectionError,
    MissingDriverError,
    TransientDisconnectError,
    UnsupportedDriverError,
)
from sqlspine.expressions import eq
from sqlspine.query import select
from sqlspine.settings import ConnectionConfig
from sqlspine.statements import BufferedStatement, CallbackStatement, LoggingStatement


class TestConstruction:
    def test_driver_from_registry(self) -> None:
        connection = Connection({"driver": "sqlite"})
        assert connection.get_driver().short_name() == "Sqlite"

    def test_unknown_driver(self) -> None:
        with pytest.raises(MissingDriverError) as exc_info:
            Connection({"name": "main", "driver": "oracle"})
        assert exc_info.value.driver == "oracle"
        assert exc_info.value.connection == "main"

    def test_missing_client_library(self, monkeypatch) -> None:
        monkeypatch.setattr("importlib.util.find_spec", lambda name: None)
        with pytest.raises(UnsupportedDriverError):
            Connection({"driver": "postgres"})

    def test_from_url(self) -> None:
        connection = Connection.from_url("sqlite:///:memory:", name="mem")
        assert connection.config.driver == "sqlite"
        assert connection.config.database == ":memory:"
        assert connection.config_name() == "mem"

    def test_repr_masks_secrets(self, fake_driver) -> None:
        config = ConnectionConfig(driver="fake", username="admin", password="hunter2", host="db")
        connection = Connection(config, driver=fake_driver)
        text = repr(connection)
        assert "hunter2" not in text
        assert "admin" not in text
        assert "transaction_level=0" in text


class TestConnect:
    def test_connect_is_idempotent(self, fake_connection, fake_db) -> None:
        assert fake_connection.connect() is True
        assert fake_connection.connect() is True
        assert fake_db.connects == 1

    def test_client_errors_become_connection_errors(self, fake_connection, fake_db) -> None:
        fake_db.connect_errors.append(OSError("connection refused"))
        with pytest.raises(DatabaseConnectionError) as exc_info:
            fake_connection.connect()
        assert exc_info.value.driver == "Fake"
        assert exc_info.value.reason == "connection refused"
        assert isinstance(exc_info.value.cause, OSError)

    def test_unexpected_errors_are_wrapped(self, fake_connection) -> None:
        driver = fake_connection.get_driver()
        driver.connect = MagicMock(side_effect=RuntimeError("bad state"))
        with pytest.raises(DatabaseConnectionError, match="bad state"):
            fake_connection.connect()

    def test_connection_errors_pass_through(self, fake_connection) -> None:
        original = DatabaseConnectionError(driver="Fake", reason="down")
        fake_connection.get_driver().connect = MagicMock(side_effect=original)
        with pytest.raises(DatabaseConnectionError) as exc_info:
            fake_connection.connect()
        assert exc_info.value is original

    def test_close_warns_with_open_transaction(self, fake_connection, monkeypatch) -> None:
        logger = MagicMock()
        monkeypatch.setattr("sqlspine.connection.logger", logger)
        fake_connection.begin()
        fake_connection.close()
        assert logger.warning.call_args[0][0] == "closed_in_transaction"
        assert not fake_connection.in_transaction()


class TestRetry:
    def test_reconnects_after_disconnect(self, fake_connection, fake_db) -> None:
        fake_db.fail_on(lambda sql: sql == "SELECT 1 AS one", times=1)
        fake_db.results["SELECT 1 AS one"] = (["one"], [(1,)])

        statement = fake_connection.execute("SELECT 1 AS one")

        assert statement.fetch_all() == [(1,)]
        assert fake_db.attempts("SELECT 1 AS one") == 2
        assert fake_db.connects == 2

    @pytest.mark.parametrize("retries", [0, 1, 3])
    def test_budget_exhaustion(self, fake_db, retries: int) -> None:
        fake_db.fail_on(lambda sql: sql == "SELECT * FROM t", TransientDisconnectError("dropped"))
        connection = Connection(
            ConnectionConfig(driver="fake", disconnect_retries=retries),
            driver=FakeDriver(database=fake_db),
        )

        with pytest.raises(TransientDisconnectError):
            connection.execute("SELECT * FROM t")
        assert fake_db.attempts("SELECT * FROM t") == retries + 1

    def test_other_errors_are_not_retried(self, fake_connection, fake_db) -> None:
        fake_db.fail_on(lambda sql: sql == "SELECT nope", ValueError("syntax error"))
        with pytest.raises(ValueError, match="syntax error"):
            fake_connection.execute("SELECT nope")
        assert fake_db.attempts("SELECT nope") == 1

    def test_no_retry_inside_transaction(self, fake_connection, fake_db) -> None:
        fake_connection.begin()
        fake_db.fail_on(lambda sql: sql.startswith("UPDATE"))
        with pytest.raises(Exception, match="gone away"):
            fake_connection.execute("UPDATE t SET a = 1")
        assert fake_db.attempts("UPDATE t SET a = 1") == 1

    def test_begin_is_retried(self, fake_connection, fake_db) -> None:
        fake_db.fail_on(lambda sql: sql == "BEGIN", times=1)
        fake_connection.begin()
        assert fake_db.attempts("BEGIN") == 2
        assert fake_connection.in_transaction()

    def test_retry_logs_carry_connection_name(self, fake_connection, fake_db, monkeypatch) -> None:
        seen = []
        retry_logger = MagicMock()
        retry_logger.warning.side_effect = lambda *args, **kwargs: seen.append(
            structlog.contextvars.get_contextvars().get("connection")
        )
        monkeypatch.setattr("sqlspine.retry.logger", retry_logger)
        fake_db.fail_on(lambda sql: sql == "SELECT 2", times=1)

        fake_connection.execute("SELECT 2")

        assert seen
        assert set(seen) == {"test"}
        assert "connection" not in structlog.contextvars.get_contextvars()

    def test_reconnect_is_logged_when_query_logging(self, fake_connection, fake_db) -> None:
        fake_db.fail_on(lambda sql: sql == "DELETE FROM t", times=1)
        query_logger = MagicMock()
        fake_connection.set_logger(query_logger)
        fake_connection.enable_query_logging()

        fake_connection.execute("DELETE FROM t")

        logged = [call.args[0].query for call in query_logger.log.call_args_list]
        assert "[RECONNECT]" in logged


class TestStatements:
    def test_execute_binds_params(self, fake_connection, fake_db) -> None:
        fake_connection.execute("SELECT :c0", {"c0": "42"}, {"c0": "integer"})
        assert fake_db.params[-1] == {"c0": 42}

    def test_compile_query(self, fake_connection) -> None:
        compiled = fake_connection.compile_query(
            select("id", from_="users").and_where(eq("id", 5))
        )
        assert compiled.sql == "SELECT id FROM users WHERE id = :c0"
        assert compiled.params == {"c0": 5}

    def test_prepare_wraps_logging_statement(self, fake_connection) -> None:
        fake_connection.enable_query_logging()
        statement = fake_connection.prepare("SELECT 1")
        assert isinstance(statement, LoggingStatement)

    def test_prepare_without_logging(self, fake_connection) -> None:
        statement = fake_connection.prepare("SELECT 1")
        assert not isinstance(statement, LoggingStatement)

    def test_prepare_binds_compiled_values(self, fake_connection, fake_db) -> None:
        statement = fake_connection.prepare(select("id", from_="users").and_where(eq("id", 7)))
        statement.execute()
        assert fake_db.params[-1] == {"c0": 7}

    def test_run_buffers_selects(self, fake_connection, fake_db) -> None:
        fake_db.results["SELECT id FROM users"] = (["id"], [(1,), (2,)])
        statement = fake_connection.run(select("id", from_="users"))
        assert isinstance(statement, BufferedStatement)
        assert [row["id"] for row in statement] == [1, 2]

    def test_run_unbuffered(self, fake_connection, fake_db) -> None:
        fake_db.results["SELECT id FROM users"] = (["id"], [(1,)])
        statement = fake_connection.run(select("id", from_="users").with_buffering(False))
        assert not isinstance(statement, BufferedStatement)

    def test_run_applies_types_and_decorators(self, fake_connection, fake_db) -> None:
        fake_db.results["SELECT id, doc FROM users"] = (["id", "doc"], [("1", '{"a": 1}')])
        query = (
            select("id", "doc", from_="users")
            .with_select_types({"id": "integer", "doc": "json"})
            .decorate_results(lambda row: {**row, "seen": True})
            .with_buffering(False)
        )

        statement = fake_connection.run(query)

        assert isinstance(statement, CallbackStatement)
        assert statement.fetch("assoc") == {"id": 1, "doc": {"a": 1}, "seen": True}

    def test_query_logging_records_params(self, fake_connection) -> None:
        query_logger = MagicMock()
        fake_connection.set_logger(query_logger)
        fake_connection.enable_query_logging()

        fake_connection.run(select("id", from_="users").and_where(eq("id", 3)))

        logged = query_logger.log.call_args_list[-1].args[0]
        assert logged.query == "SELECT id FROM users WHERE id = :c0"
        assert logged.params == {"c0": 3}

    def test_transaction_markers_logged(self, fake_connection) -> None:
        query_logger = MagicMock()
        fake_connection.set_logger(query_logger)
        fake_connection.enable_query_logging()

        fake_connection.begin()
        fake_connection.commit()

        logged = [call.args[0].query for call in query_logger.log.call_args_list]
        assert logged == ["BEGIN", "COMMIT"]


class TestConstraints:
    def test_disable_constraints_reenables(self, fake_connection, fake_db) -> None:
        result = fake_connection.disable_constraints(lambda conn: "ok")
        assert result == "ok"
        assert fake_db.statements == ["PRAGMA foreign_keys = OFF", "PRAGMA foreign_keys = ON"]

    def test_disable_constraints_reenables_on_error(self, fake_connection, fake_db) -> None:
        def fail(conn):
            raise KeyError("x")

        with pytest.raises(KeyError):
            fake_connection.disable_constraints(fail)
        assert fake_db.statements[-1] == "PRAGMA foreign_keys = ON"

    def test_disable_constraints_retried_as_unit(self, fake_connection, fake_db) -> None:
        calls = []

        def work(conn):
            calls.append(1)
            if len(calls) == 1:
                raise TransientDisconnectError("dropped")
            return len(calls)

        assert fake_connection.disable_constraints(work) == 2
        assert fake_db.attempts("PRAGMA foreign_keys = OFF") == 2
        assert fake_db.attempts("PRAGMA foreign_keys = ON") == 2


class TestHelpers:
    def test_quote_uses_type(self, fake_connection) -> None:
        assert fake_connection.quote("it's") == "'it''s'"
        assert fake_connection.quote("12", "integer") == "12"
        assert fake_connection.quote(None) == "NULL"

    def test_quote_identifier(self, fake_connection) -> None:
        assert fake_connection.quote_identifier("users.id") == '"users"."id"'

    def test_supports_quoting(self, fake_connection) -> None:
        assert fake_connection.supports_quoting() is True

    def test_cache_metadata_replaces_config(self, fake_connection) -> None:
        before = fake_connection.config
        fake_connection.cache_metadata(True)
        assert fake_connection.config.cache_metadata is True
        assert before.cache_metadata is False


class TestSqliteRoundTrip:
    def test_insert_and_select(self, sqlite_connection) -> None:
        sqlite_connection.insert("articles", {"id": 4, "title": "Fourth", "published": 1})
        rows = sqlite_connection.run(
            select("title", from_="articles").and_where(eq("id", 4))
        ).fetch_all("assoc")
        assert rows == [{"title": "Fourth"}]

    def test_buffered_result_read_twice(self, sqlite_connection) -> None:
        statement = sqlite_connection.run(select("id", from_="articles").add_order("id"))
        assert [row["id"] for row in statement] == [1, 2, 3]
        assert statement.fetch_all("assoc") == [{"id": 1}, {"id": 2}, {"id": 3}]

    def test_update_reports_row_count(self, sqlite_connection) -> None:
        statement = sqlite_connection.update("articles", {"published": 0}, {"published": 1})
        assert statement.row_count() == 2

    def test_delete(self, sqlite_connection) -> None:
        sqlite_connection.delete("articles", {"id": 3})
        count = sqlite_connection.execute("SELECT COUNT(*) FROM articles").fetch_column(0)
        assert count == 2

    def test_rolled_back_insert_is_gone(self, sqlite_connection) -> None:
        sqlite_connection.begin()
        sqlite_connection.insert("articles", {"id": 9, "title": "Draft"})
        sqlite_connection.rollback()
        count = sqlite_connection.execute("SELECT COUNT(*) FROM articles").fetch_column(0)
        assert count == 3

    def test_savepoint_rollback(self, sqlite_connection) -> None:
        sqlite_connection.enable_save_points()
        sqlite_connection.begin()
        sqlite_connection.insert("articles", {"id": 10, "title": "Kept"})
        sqlite_connection.begin()
        sqlite_connection.insert("articles", {"id": 11, "title": "Dropped"})
        sqlite_connection.rollback()
        sqlite_connection.commit()

        ids = [row[0] for row in sqlite_connection.execute("SELECT id FROM articles").fetch_all()]
        assert 10 in ids
        assert 11 not in ids

    def test_limit_offset(self, sqlite_connection) -> None:
        rows = sqlite_connection.run(
            select("id", from_="articles").add_order("id").with_offset(1)
        ).fetch_all()
        assert rows == [(2,), (3,)]
