from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

import pytest

from sqlbatis.adapters.sqlite import SqliteConfig
from sqlbatis.configuration import Configuration
from sqlbatis.core.statement import CommandKind, StatementDescriptor
from sqlbatis.exceptions import ExecutionError
from sqlbatis.executor import Executor

here = Path(__file__).parent

SELECT_BY_ID = "app.UserMapper.select_by_id"
SELECT_ALL = "app.UserMapper.select_all"
UPDATE_NAME = "app.UserMapper.update_name"
SELECT_UNCACHED = "app.UserMapper.select_uncached"


class FakeConnection:
    """DB-API connection double recording transaction calls."""

    def __init__(self) -> None:
        self.commit_calls = 0
        self.rollback_calls = 0
        self.closed = False

    def commit(self) -> None:
        self.commit_calls += 1

    def rollback(self) -> None:
        self.rollback_calls += 1

    def close(self) -> None:
        self.closed = True


class CountingStrategy:
    """Strategy double counting physical executions."""

    def __init__(self, rows: list[Any] | None = None, affected: int = 1) -> None:
        self.rows = rows if rows is not None else [{"id": 1, "user_name": "alice"}]
        self.affected = affected
        self.query_calls = 0
        self.update_calls = 0
        self.fail = False
        self.closed = False
        self.queries: list[tuple[str, Any]] = []

    def do_query(self, descriptor: StatementDescriptor, parameter: Any) -> list[Any]:
        self.query_calls += 1
        self.queries.append((descriptor.id, parameter))
        if self.fail:
            msg = "Database error: boom"
            raise ExecutionError(msg, statement_id=descriptor.id, operation="query")
        return list(self.rows)

    def do_update(self, descriptor: StatementDescriptor, parameter: Any) -> int:
        self.update_calls += 1
        return self.affected

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def statements() -> list[StatementDescriptor]:
    return [
        StatementDescriptor(SELECT_BY_ID, CommandKind.QUERY, "SELECT id, user_name FROM users WHERE id = #{id}"),
        StatementDescriptor(SELECT_ALL, CommandKind.QUERY, "SELECT id, user_name FROM users"),
        StatementDescriptor(UPDATE_NAME, CommandKind.UPDATE, "UPDATE users SET user_name = #{user_name}"),
        StatementDescriptor(SELECT_UNCACHED, CommandKind.QUERY, "SELECT id FROM users", use_cache=False),
    ]


@pytest.fixture
def configuration(statements: list[StatementDescriptor]) -> Configuration:
    return Configuration(statements)


@pytest.fixture
def fake_connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def counting_strategy() -> CountingStrategy:
    return CountingStrategy()


@pytest.fixture
def executor(
    configuration: Configuration, fake_connection: FakeConnection, counting_strategy: CountingStrategy
) -> Executor:
    return Executor(configuration, fake_connection, counting_strategy)


@pytest.fixture
def sqlite_database(tmp_path: Path) -> Path:
    """A file database with a populated ``users`` table."""
    database = tmp_path / "users.db"
    connection = sqlite3.connect(database)
    try:
        connection.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, user_name TEXT NOT NULL, active INTEGER)")
        connection.executemany(
            "INSERT INTO users (id, user_name, active) VALUES (?, ?, ?)",
            [(1, "alice", 1), (2, "bob", 0), (3, "carol", 1)],
        )
        connection.commit()
    finally:
        connection.close()
    return database


@pytest.fixture
def sqlite_config(sqlite_database: Path) -> SqliteConfig:
    return SqliteConfig(connection_config={"database": str(sqlite_database)})
