"""Tests for sqlspine.errors module."""

import pytest

from sqlspine.errors import (
    CastError,
    ConfigError,
    DatabaseConnectionError,
    DatabaseError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    MissingDriverError,
    NestedTransactionRollbackError,
    QueryError,
    SqlSpineError,
    TransientDisconnectError,
    UnsupportedDriverError,
    UnsupportedTupleOperatorError,
    is_retryable,
)


class TestErrorContext:
    """Test ErrorContext dataclass."""

    def test_create_empty_context(self):
        ctx = ErrorContext()
        assert ctx.driver is None
        assert ctx.metadata == {}
        assert ctx.to_dict() == {}

    def test_to_dict_includes_set_fields(self):
        ctx = ErrorContext(driver="Sqlite", sql="SELECT 1", metadata={"attempt": 2})
        assert ctx.to_dict() == {"driver": "Sqlite", "sql": "SELECT 1", "attempt": 2}


class TestSqlSpineError:
    """Test base SqlSpineError class."""

    def test_create_minimal_error(self):
        error = SqlSpineError("Something went wrong")
        assert error.message == "Something went wrong"
        assert error.category == ErrorCategory.INTERNAL
        assert error.retryable is False

    def test_create_with_cause(self):
        cause = ValueError("original")
        error = SqlSpineError("wrapped", cause=cause)
        assert error.cause is cause
        assert error.__cause__ is cause

    def test_with_context_fluent_api(self):
        error = QueryError("bad").with_context(sql="SELEC 1", attempt=3)
        assert error.context.sql == "SELEC 1"
        assert error.context.metadata == {"attempt": 3}

    def test_to_dict(self):
        error = DatabaseConnectionError(driver="Postgres", reason="refused", cause=OSError("x"))
        data = error.to_dict()
        assert data["error_type"] == "DatabaseConnectionError"
        assert data["category"] == "DATABASE"
        assert data["context"] == {"driver": "Postgres"}
        assert data["cause"] == "x"


class TestDatabaseErrors:
    def test_connection_error_message(self):
        error = DatabaseConnectionError(driver="Sqlserver", reason="Login failed")
        assert str(error) == "Connection to Sqlserver could not be established: Login failed"
        assert isinstance(error, DatabaseError)

    def test_nested_rollback_error(self):
        error = NestedTransactionRollbackError(level=2)
        assert error.level == 2
        assert "rollback() has been already called" in str(error)

    def test_transient_disconnect_is_retryable(self):
        assert is_retryable(TransientDisconnectError("dropped"))
        assert TransientDisconnectError("dropped").category == ErrorCategory.NETWORK


class TestConfigErrors:
    def test_config_errors_are_not_retryable(self):
        for error in (
            MissingDriverError("oracle"),
            UnsupportedDriverError("Postgres"),
            InvalidConfigError("port", "abc"),
            UnsupportedTupleOperatorError("<"),
        ):
            assert isinstance(error, ConfigError)
            assert error.category == ErrorCategory.CONFIG
            assert not is_retryable(error)

    def test_missing_driver_message(self):
        error = MissingDriverError("oracle", "reports")
        assert str(error) == "Database driver 'oracle' could not be found for connection 'reports'"
        assert error.context.connection == "reports"

    def test_unsupported_driver_message(self):
        assert str(UnsupportedDriverError("Postgres")) == (
            "Database driver Postgres cannot be used due to a missing client library"
        )

    def test_tuple_operator_message(self):
        assert "`<` given" in str(UnsupportedTupleOperatorError("<"))


class TestUtilities:
    @pytest.mark.parametrize(
        "error,expected",
        [
            (TransientDisconnectError("x"), True),
            (QueryError("x"), False),
            (CastError("x"), False),
            (ValueError("x"), False),
        ],
    )
    def test_is_retryable(self, error, expected):
        assert is_retryable(error) is expected
