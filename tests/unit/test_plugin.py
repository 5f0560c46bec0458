"""Tests for interceptors, plugin proxies and the interceptor chain."""

import logging
import sqlite3
from collections.abc import Generator
from typing import Any

import pytest

from sqlbatis.configuration import Configuration
from sqlbatis.core.parameters import ParameterBinder, StatementPreparer
from sqlbatis.core.statement import CommandKind, StatementDescriptor
from sqlbatis.executor import Executor
from sqlbatis.plugin import Interceptor, InterceptorChain, Invocation, Plugin, SlowQueryInterceptor


class Greeter:
    def __init__(self) -> None:
        self.prefix = "hello"

    def greet(self, name: str) -> str:
        return f"{self.prefix} {name}"

    def shout(self, name: str) -> str:
        return self.greet(name).upper()


class RecordingInterceptor(Interceptor):
    intercepts = ((Greeter, ("greet",)),)

    def __init__(self, label: str, log: "list[str]") -> None:
        self.label = label
        self.log = log

    def intercept(self, invocation: Invocation) -> Any:
        self.log.append(self.label)
        return invocation.proceed()


class ReplacingInterceptor(Interceptor):
    intercepts = ((Greeter, ("greet",)),)

    def intercept(self, invocation: Invocation) -> Any:
        return f"intercepted {invocation.method_name}{invocation.args!r}"


class PrepareCounter(Interceptor):
    intercepts = ((StatementPreparer, ("prepare",)),)

    def __init__(self) -> None:
        self.calls = 0

    def intercept(self, invocation: Invocation) -> Any:
        self.calls += 1
        return invocation.proceed()


@pytest.fixture
def connection() -> "Generator[sqlite3.Connection, None, None]":
    connection = sqlite3.connect(":memory:")
    connection.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, user_name TEXT)")
    connection.execute("INSERT INTO users VALUES (1, 'alice')")
    yield connection
    connection.close()


@pytest.fixture
def plugin_configuration() -> Configuration:
    return Configuration([
        StatementDescriptor("app.Users.select_by_id", CommandKind.QUERY, "SELECT * FROM users WHERE id = #{id}"),
        StatementDescriptor("app.Users.rename", CommandKind.UPDATE, "UPDATE users SET user_name = #{name}"),
    ])


def test_intercepted_method_goes_through_interceptor() -> None:
    proxy = Plugin.wrap(Greeter(), ReplacingInterceptor())

    assert isinstance(proxy, Plugin)
    assert proxy.greet("bob") == "intercepted greet('bob',)"


def test_other_attributes_are_forwarded() -> None:
    """Test non-intercepted attributes reach the target unchanged."""
    proxy = Plugin.wrap(Greeter(), ReplacingInterceptor())

    assert proxy.prefix == "hello"
    assert proxy.shout("bob") == "HELLO BOB"
    with pytest.raises(AttributeError):
        proxy.missing  # noqa: B018


def test_non_matching_target_is_returned_unchanged() -> None:
    target = ParameterBinder()

    assert Plugin.wrap(target, ReplacingInterceptor()) is target
    assert ReplacingInterceptor().plugin(target) is target


def test_chain_wraps_in_registration_order() -> None:
    """Test the last registered interceptor is the outermost one."""
    log: list[str] = []
    chain = InterceptorChain()
    chain.add_interceptor(RecordingInterceptor("first", log))
    chain.add_interceptor(RecordingInterceptor("second", log))
    target = Greeter()

    proxy = chain.plugin_all(target)

    assert proxy.greet("amy") == "hello amy"
    assert log == ["second", "first"]
    assert Plugin.unwrap(proxy) is target
    assert len(chain) == 2
    assert [i.label for i in chain] == ["first", "second"]  # type: ignore[attr-defined]


def test_invocation_proceed() -> None:
    greeter = Greeter()
    invocation = Invocation(greeter, greeter.greet, ("zoe",), {})

    assert invocation.method_name == "greet"
    assert invocation.proceed() == "hello zoe"
    assert "Greeter.greet" in repr(invocation)


def test_default_interceptor_proceeds() -> None:
    class PassThrough(Interceptor):
        intercepts = ((Greeter, ("greet",)),)

    assert Plugin.wrap(Greeter(), PassThrough()).greet("al") == "hello al"


def test_configuration_wraps_components(plugin_configuration: Configuration, connection) -> None:
    """Test interceptors registered on the configuration wrap new components."""
    counter = PrepareCounter()
    plugin_configuration.add_interceptor(counter)
    executor = plugin_configuration.new_executor(connection)

    executor.query("app.Users.select_by_id", 1)
    executor.query("app.Users.select_by_id", 1)
    executor.query("app.Users.select_by_id", 2)

    assert counter.calls == 2
    assert not isinstance(executor, Plugin)


def test_slow_query_interceptor_properties() -> None:
    interceptor = SlowQueryInterceptor()
    assert interceptor.slow_query_threshold_ms == 1000.0

    interceptor.set_properties({"slowSqlThreshold": "250"})
    assert interceptor.slow_query_threshold_ms == 250.0

    interceptor.set_properties({"slow_query_threshold_ms": 10})
    assert interceptor.slow_query_threshold_ms == 10.0

    interceptor.set_properties({})
    assert interceptor.slow_query_threshold_ms == 10.0


def test_slow_query_interceptor_logs_slow_calls(
    plugin_configuration: Configuration, connection, caplog: pytest.LogCaptureFixture
) -> None:
    """Test calls above the threshold are logged as slow SQL."""
    plugin_configuration.add_interceptor(SlowQueryInterceptor(), {"slow_query_threshold_ms": -1})
    executor = plugin_configuration.new_executor(connection)

    assert isinstance(executor, Plugin)
    with caplog.at_level(logging.WARNING, logger="sqlbatis.plugin"):
        rows = executor.query("app.Users.select_by_id", 1)
        executor.update("app.Users.rename", {"name": "bob"})

    assert rows == [{"id": 1, "user_name": "alice"}]
    slow = [r for r in caplog.records if r.getMessage().startswith("Slow SQL")]
    assert [r.extra_fields["operation"] for r in slow] == ["query", "update"]  # type: ignore[attr-defined]
    assert slow[0].extra_fields["statement_id"] == "app.Users.select_by_id"  # type: ignore[attr-defined]


def test_slow_query_interceptor_quiet_for_fast_calls(
    plugin_configuration: Configuration, connection, caplog: pytest.LogCaptureFixture
) -> None:
    plugin_configuration.add_interceptor(SlowQueryInterceptor(slow_query_threshold_ms=60_000))
    executor = plugin_configuration.new_executor(connection)

    with caplog.at_level(logging.WARNING, logger="sqlbatis.plugin"):
        executor.query("app.Users.select_by_id", 1)

    assert "Slow SQL" not in caplog.text


def test_plugin_proxied_executor_keeps_state(plugin_configuration: Configuration, connection) -> None:
    plugin_configuration.add_interceptor(SlowQueryInterceptor())
    executor = plugin_configuration.new_executor(connection)

    executor.query("app.Users.select_by_id", 1)

    assert isinstance(Plugin.unwrap(executor), Executor)
    assert executor.local_cache.size() == 1
    executor.close()
    assert executor.closed
