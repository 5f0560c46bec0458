"""Tests for the cache-aware Executor."""

import logging
from typing import Any

import pytest

from sqlbatis.configuration import Configuration
from sqlbatis.core.statement import StatementDescriptor
from sqlbatis.exceptions import ConfigurationError, ExecutionError, StateError
from sqlbatis.executor import EXECUTION_PLACEHOLDER, Executor


def test_repeated_query_hits_local_cache(executor, counting_strategy) -> None:
    """Test two identical reads run only one physical query."""
    first = executor.query("app.UserMapper.select_by_id", 1)
    second = executor.query("app.UserMapper.select_by_id", 1)

    assert counting_strategy.query_calls == 1
    assert second is first
    assert first == [{"id": 1, "user_name": "alice"}]


def test_cache_events_carry_statement_context(executor, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.DEBUG, logger="sqlbatis.executor"):
        executor.query("app.UserMapper.select_by_id", 1)
        executor.query("app.UserMapper.select_by_id", 1)

    events = [r for r in caplog.records if r.name == "sqlbatis.executor"]
    assert [r.getMessage() for r in events] == ["Local cache miss", "Local cache hit"]
    assert {r.statement_id for r in events} == {"app.UserMapper.select_by_id"}
    assert {r.operation for r in events} == {"query"}


def test_different_parameters_are_separate_entries(executor, counting_strategy) -> None:
    executor.query("app.UserMapper.select_by_id", 1)
    executor.query("app.UserMapper.select_by_id", 2)
    executor.query("app.UserMapper.select_by_id", {"id": 1})

    assert counting_strategy.query_calls == 3
    assert executor.local_cache.size() == 3


def test_structured_parameters_share_entries(executor, counting_strategy) -> None:
    """Test equal mapping parameters resolve to the same cache entry."""
    executor.query("app.UserMapper.select_by_id", {"id": 1, "active": True})
    executor.query("app.UserMapper.select_by_id", {"active": True, "id": 1})

    assert counting_strategy.query_calls == 1


def test_update_invalidates_local_cache(executor, counting_strategy) -> None:
    """Test a write between two reads forces the second read to the database."""
    executor.query("app.UserMapper.select_by_id", 1)
    affected = executor.update("app.UserMapper.update_name", {"user_name": "bob"})
    executor.query("app.UserMapper.select_by_id", 1)

    assert affected == 1
    assert counting_strategy.update_calls == 1
    assert counting_strategy.query_calls == 2


def test_update_with_zero_rows_still_invalidates(executor, counting_strategy) -> None:
    counting_strategy.affected = 0
    executor.query("app.UserMapper.select_all")

    assert executor.update("app.UserMapper.update_name", {"user_name": "x"}) == 0
    assert executor.local_cache.size() == 0


def test_failed_query_leaves_no_placeholder(executor, counting_strategy) -> None:
    """Test a failing read removes its in-flight marker and caches nothing."""
    counting_strategy.fail = True

    with pytest.raises(ExecutionError) as exc_info:
        executor.query("app.UserMapper.select_by_id", 1)

    assert exc_info.value.statement_id == "app.UserMapper.select_by_id"
    assert executor.local_cache.size() == 0
    assert executor.query_depth == 0

    counting_strategy.fail = False
    assert executor.query("app.UserMapper.select_by_id", 1) == [{"id": 1, "user_name": "alice"}]
    assert counting_strategy.query_calls == 2


def test_cache_key_components(executor) -> None:
    """Test the read key folds statement id, SQL template and parameter in order."""
    descriptor = executor.configuration.get_statement("app.UserMapper.select_by_id")
    key = executor.create_cache_key(descriptor, 42)

    assert key.components == (descriptor.id, descriptor.sql, 42)
    assert not executor.is_cached(key)

    executor.query("app.UserMapper.select_by_id", 42)

    assert executor.is_cached(key)


class ReentrantStrategy:
    """Re-issues the same read from inside its first execution."""

    def __init__(self) -> None:
        self.executor: "Executor | None" = None
        self.query_calls = 0
        self.seen_placeholder = False

    def do_query(self, descriptor: StatementDescriptor, parameter: Any) -> "list[Any]":
        self.query_calls += 1
        if self.query_calls == 1:
            assert self.executor is not None
            key = self.executor.create_cache_key(descriptor, parameter)
            self.seen_placeholder = self.executor.local_cache.get(key) is EXECUTION_PLACEHOLDER
            self.executor.query(descriptor.id, parameter)
            return ["outer"]
        return ["inner"]

    def do_update(self, descriptor: StatementDescriptor, parameter: Any) -> int:
        return 0

    def close(self) -> None:
        pass


def test_reentrant_read_treats_placeholder_as_miss(configuration, fake_connection) -> None:
    """Test a nested read of an in-flight key goes to the database instead of returning the marker."""
    strategy = ReentrantStrategy()
    executor = Executor(configuration, fake_connection, strategy)
    strategy.executor = executor

    result = executor.query("app.UserMapper.select_by_id", 1)

    assert result == ["outer"]
    assert strategy.seen_placeholder
    assert strategy.query_calls == 2
    assert executor.query_depth == 0


def test_cached_empty_result_is_reused(configuration, fake_connection, counting_strategy) -> None:
    """Test an empty result list is a cache hit like any other."""
    counting_strategy.rows = []
    executor = Executor(configuration, fake_connection, counting_strategy)

    assert executor.query("app.UserMapper.select_all") == []
    assert executor.query("app.UserMapper.select_all") == []
    assert counting_strategy.query_calls == 1


def test_unknown_statement_raises(executor, counting_strategy) -> None:
    """Test unregistered statement ids fail before reaching the database."""
    with pytest.raises(ConfigurationError, match="not registered"):
        executor.query("app.UserMapper.missing")
    with pytest.raises(ConfigurationError):
        executor.update("app.UserMapper.missing")

    assert counting_strategy.query_calls == 0
    assert counting_strategy.update_calls == 0


def test_disabled_local_cache(statements, fake_connection, counting_strategy) -> None:
    """Test every read reaches the database when the local cache is off."""
    configuration = Configuration(statements, local_cache_enabled=False)
    executor = Executor(configuration, fake_connection, counting_strategy)

    executor.query("app.UserMapper.select_by_id", 1)
    executor.query("app.UserMapper.select_by_id", 1)

    assert counting_strategy.query_calls == 2
    assert executor.local_cache.size() == 0


def test_statement_opting_out_of_cache(executor, counting_strategy) -> None:
    executor.query("app.UserMapper.select_uncached")
    executor.query("app.UserMapper.select_uncached")

    assert counting_strategy.query_calls == 2


def test_commit_and_rollback_clear_cache(executor, counting_strategy, fake_connection) -> None:
    executor.query("app.UserMapper.select_by_id", 1)
    executor.commit()
    executor.query("app.UserMapper.select_by_id", 1)
    executor.rollback()
    executor.query("app.UserMapper.select_by_id", 1)

    assert counting_strategy.query_calls == 3
    assert fake_connection.commit_calls == 1
    assert fake_connection.rollback_calls == 1


def test_auto_commit_skips_connection_commit(configuration, fake_connection, counting_strategy) -> None:
    executor = Executor(configuration, fake_connection, counting_strategy, auto_commit=True)

    executor.query("app.UserMapper.select_by_id", 1)
    executor.commit()
    executor.rollback()

    assert fake_connection.commit_calls == 0
    assert fake_connection.rollback_calls == 0
    assert executor.local_cache.size() == 0


def test_commit_failure_is_wrapped(executor, fake_connection) -> None:
    def _fail() -> None:
        msg = "disk I/O error"
        raise RuntimeError(msg)

    fake_connection.commit = _fail

    with pytest.raises(ExecutionError, match="disk I/O error") as exc_info:
        executor.commit()

    assert exc_info.value.operation == "commit"
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_closed_executor_rejects_operations(executor, counting_strategy) -> None:
    """Test every operation after close raises StateError."""
    executor.query("app.UserMapper.select_by_id", 1)
    executor.close()

    assert executor.closed
    assert counting_strategy.closed
    assert executor.local_cache.size() == 0
    descriptor = executor.configuration.get_statement("app.UserMapper.select_by_id")
    with pytest.raises(StateError):
        executor.query("app.UserMapper.select_by_id", 1)
    with pytest.raises(StateError):
        executor.update("app.UserMapper.update_name", {"user_name": "x"})
    with pytest.raises(StateError):
        executor.commit()
    with pytest.raises(StateError):
        executor.rollback()
    with pytest.raises(StateError):
        executor.create_cache_key(descriptor, 1)


def test_close_is_idempotent(executor, counting_strategy) -> None:
    executor.close()
    counting_strategy.closed = False
    executor.close()

    assert not counting_strategy.closed


class FailingCloseStrategy:
    def do_query(self, descriptor: StatementDescriptor, parameter: Any) -> "list[Any]":
        return []

    def do_update(self, descriptor: StatementDescriptor, parameter: Any) -> int:
        return 0

    def close(self) -> None:
        msg = "cannot close"
        raise RuntimeError(msg)


def test_close_marks_closed_when_strategy_fails(configuration, fake_connection) -> None:
    executor = Executor(configuration, fake_connection, FailingCloseStrategy())

    with pytest.raises(RuntimeError, match="cannot close"):
        executor.close()

    assert executor.closed
