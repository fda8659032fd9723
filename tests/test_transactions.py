"""Tests for nested transactions on ``sqlspine.connection.Connection``."""

from __future__ import annotations

import pytest

from sqlspine.errors import NestedTransactionRollbackError
from sqlspine.transaction import TransactionState


class TestTransactionState:
    def test_begin_clears_pending_rollback(self) -> None:
        state = TransactionState().poison(NestedTransactionRollbackError(level=1))
        assert not state.is_clean
        assert state.begin().is_clean

    def test_first_poison_wins(self) -> None:
        first = NestedTransactionRollbackError(level=2)
        state = TransactionState().poison(first).poison(NestedTransactionRollbackError(level=1))
        assert state.pending_rollback is first

    def test_reset_keeps_savepoint_toggle(self) -> None:
        state = TransactionState().with_savepoints(True).begin().nest()
        reset = state.reset()
        assert reset.use_savepoints is True
        assert reset.started is False
        assert reset.level == 0


class TestBegin:
    def test_outer_begin_issues_physical_begin(self, fake_connection, fake_db) -> None:
        fake_connection.begin()
        assert fake_db.statements == ["BEGIN"]
        assert fake_connection.in_transaction()
        assert fake_connection.transaction_state.level == 0

    @pytest.mark.parametrize("calls", [1, 2, 3, 5])
    def test_level_after_n_begins(self, fake_connection, calls: int) -> None:
        for _ in range(calls):
            fake_connection.begin()
        assert fake_connection.transaction_state.level == calls - 1

    def test_nested_begin_without_savepoints_issues_nothing(self, fake_connection, fake_db) -> None:
        fake_connection.begin()
        fake_connection.begin()
        assert fake_db.statements == ["BEGIN"]

    def test_nested_begin_with_savepoints(self, fake_connection, fake_db) -> None:
        fake_connection.enable_save_points()
        fake_connection.begin()
        fake_connection.begin()
        fake_connection.begin()
        assert fake_db.statements == ["BEGIN", "SAVEPOINT LEVEL1", "SAVEPOINT LEVEL2"]


class TestCommit:
    def test_commit_without_transaction_returns_false(self, fake_connection, fake_db) -> None:
        assert fake_connection.commit() is False
        assert fake_db.statements == []

    def test_outer_commit(self, fake_connection, fake_db) -> None:
        fake_connection.begin()
        assert fake_connection.commit() is True
        assert fake_db.statements == ["BEGIN", "COMMIT"]
        assert not fake_connection.in_transaction()

    def test_nested_commit_only_decrements(self, fake_connection, fake_db) -> None:
        fake_connection.begin()
        fake_connection.begin()
        assert fake_connection.commit() is True
        assert fake_connection.transaction_state.level == 0
        assert fake_connection.in_transaction()
        assert fake_db.statements == ["BEGIN"]

    def test_nested_commit_releases_savepoint(self, fake_connection, fake_db) -> None:
        fake_connection.enable_save_points()
        fake_connection.begin()
        fake_connection.begin()
        fake_connection.commit()
        fake_connection.commit()
        assert fake_db.statements == [
            "BEGIN",
            "SAVEPOINT LEVEL1",
            "RELEASE SAVEPOINT LEVEL1",
            "COMMIT",
        ]


class TestRollback:
    def test_rollback_without_transaction_returns_false(self, fake_connection) -> None:
        assert fake_connection.rollback() is False

    def test_outer_rollback(self, fake_connection, fake_db) -> None:
        fake_connection.begin()
        assert fake_connection.rollback() is True
        assert fake_db.statements == ["BEGIN", "ROLLBACK"]
        assert not fake_connection.in_transaction()

    def test_nested_rollback_poisons_outer_commit(self, fake_connection, fake_db) -> None:
        fake_connection.begin()
        fake_connection.begin()
        fake_connection.rollback(False)

        with pytest.raises(NestedTransactionRollbackError) as exc_info:
            fake_connection.commit()

        assert exc_info.value.level == 1
        assert not fake_connection.in_transaction()
        assert "COMMIT" not in fake_db.statements
        assert fake_db.statements[-1] == "ROLLBACK"

    def test_default_rollback_without_savepoints_goes_to_beginning(
        self, fake_connection, fake_db
    ) -> None:
        fake_connection.begin()
        fake_connection.begin()
        fake_connection.rollback()

        assert not fake_connection.in_transaction()
        assert fake_db.statements == ["BEGIN", "ROLLBACK"]
        assert fake_connection.commit() is False

    def test_nested_rollback_with_savepoints(self, fake_connection, fake_db) -> None:
        fake_connection.enable_save_points()
        fake_connection.begin()
        fake_connection.begin()
        fake_connection.rollback()

        assert fake_connection.commit() is True
        assert fake_db.statements == [
            "BEGIN",
            "SAVEPOINT LEVEL1",
            "ROLLBACK TO SAVEPOINT LEVEL1",
            "COMMIT",
        ]

    def test_rollback_to_beginning_with_savepoints(self, fake_connection, fake_db) -> None:
        fake_connection.enable_save_points()
        fake_connection.begin()
        fake_connection.begin()
        fake_connection.rollback(True)
        assert not fake_connection.in_transaction()
        assert fake_db.statements[-1] == "ROLLBACK"

    def test_first_nested_rollback_is_reported(self, fake_connection) -> None:
        fake_connection.begin()
        fake_connection.begin()
        fake_connection.begin()
        fake_connection.rollback(False)
        fake_connection.rollback(False)

        with pytest.raises(NestedTransactionRollbackError) as exc_info:
            fake_connection.commit()
        assert exc_info.value.level == 2

    def test_new_transaction_after_poisoned_commit_is_clean(self, fake_connection) -> None:
        fake_connection.begin()
        fake_connection.begin()
        fake_connection.rollback(False)
        with pytest.raises(NestedTransactionRollbackError):
            fake_connection.commit()

        fake_connection.begin()
        assert fake_connection.commit() is True


class TestTransactional:
    def test_commits_on_return_value(self, fake_connection, fake_db) -> None:
        result = fake_connection.transactional(lambda conn: "done")
        assert result == "done"
        assert fake_db.statements == ["BEGIN", "COMMIT"]

    def test_none_result_commits(self, fake_connection, fake_db) -> None:
        assert fake_connection.transactional(lambda conn: None) is None
        assert fake_db.statements[-1] == "COMMIT"

    def test_false_result_rolls_back(self, fake_connection, fake_db) -> None:
        assert fake_connection.transactional(lambda conn: False) is False
        assert fake_db.statements == ["BEGIN", "ROLLBACK"]

    def test_exception_rolls_back_and_propagates(self, fake_connection, fake_db) -> None:
        def fail(conn):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            fake_connection.transactional(fail)
        assert fake_db.statements == ["BEGIN", "ROLLBACK"]
        assert not fake_connection.in_transaction()

    def test_inner_failure_poisons_outer_transactional(self, fake_connection, fake_db) -> None:
        def outer(conn):
            conn.transactional(lambda inner: False)
            return True

        with pytest.raises(NestedTransactionRollbackError):
            fake_connection.transactional(outer)
        assert not fake_connection.in_transaction()
        assert "COMMIT" not in fake_db.statements

    def test_inner_failure_with_savepoints_keeps_outer(self, fake_connection, fake_db) -> None:
        fake_connection.enable_save_points()

        def outer(conn):
            conn.transactional(lambda inner: False)
            return "kept"

        assert fake_connection.transactional(outer) == "kept"
        assert fake_db.statements == [
            "BEGIN",
            "SAVEPOINT LEVEL1",
            "ROLLBACK TO SAVEPOINT LEVEL1",
            "COMMIT",
        ]

    def test_context_manager(self, fake_connection, fake_db) -> None:
        with fake_connection.transaction() as conn:
            assert conn.in_transaction()
        assert fake_db.statements == ["BEGIN", "COMMIT"]

    def test_context_manager_rolls_back_on_error(self, fake_connection, fake_db) -> None:
        with pytest.raises(ValueError):
            with fake_connection.transaction():
                raise ValueError("nope")
        assert fake_db.statements == ["BEGIN", "ROLLBACK"]


class TestSavePointToggle:
    def test_enable_requires_driver_support(self, fake_connection, monkeypatch) -> None:
        monkeypatch.setattr(fake_connection.get_driver(), "supports", lambda feature: False)
        fake_connection.enable_save_points()
        assert fake_connection.is_save_points_enabled() is False

    def test_enable_and_disable(self, fake_connection) -> None:
        fake_connection.enable_save_points()
        assert fake_connection.is_save_points_enabled() is True
        fake_connection.disable_save_points()
        assert fake_connection.is_save_points_enabled() is False

    def test_enable_false_disables(self, fake_connection) -> None:
        fake_connection.enable_save_points()
        fake_connection.enable_save_points(False)
        assert fake_connection.is_save_points_enabled() is False
