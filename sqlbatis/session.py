"""Session API.

A :class:`SqlSession` owns one connection and one executor (and through it
one local cache). Sessions are not thread-safe; open one per unit of work.
"""

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Optional, TypeVar, Union

from sqlbatis.exceptions import MappingError, StateError, wrap_execution_errors
from sqlbatis.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Generator
    from types import TracebackType

    from sqlbatis.config import DatabaseConfigProtocol
    from sqlbatis.configuration import Configuration
    from sqlbatis.executor import Executor, ExecutorType

__all__ = ("SqlSession", "SqlSessionFactory")

logger = get_logger("session")

MapperT = TypeVar("MapperT")


class SqlSession:
    """Unit of work over a single connection.

    Args:
        configuration: Shared runtime configuration.
        executor: Executor owned by this session.
        connection: Connection owned by this session.
    """

    __slots__ = ("_closed", "_configuration", "_connection", "_executor")

    def __init__(self, configuration: "Configuration", executor: "Executor", connection: Any) -> None:
        self._configuration = configuration
        self._executor = executor
        self._connection = connection
        self._closed = False

    @property
    def configuration(self) -> "Configuration":
        return self._configuration

    @property
    def connection(self) -> Any:
        return self._connection

    @property
    def executor(self) -> "Executor":
        return self._executor

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            msg = "Session is closed."
            raise StateError(msg)

    def select_one(self, statement_id: str, parameter: Any = None) -> Any:
        """Return the single row of a query, or ``None`` when it returns none.

        Raises:
            MappingError: If the query returns more than one row.
        """
        rows = self.select_list(statement_id, parameter)
        if len(rows) > 1:
            msg = f"Expected one result (or None) to be returned by {statement_id}, but found: {len(rows)}"
            raise MappingError(msg)
        return rows[0] if rows else None

    def select_list(self, statement_id: str, parameter: Any = None) -> "list[Any]":
        self._ensure_open()
        return self._executor.query(statement_id, parameter)

    def insert(self, statement_id: str, parameter: Any = None) -> int:
        return self.update(statement_id, parameter)

    def update(self, statement_id: str, parameter: Any = None) -> int:
        """Run a write statement and return the affected row count."""
        self._ensure_open()
        return self._executor.update(statement_id, parameter)

    def delete(self, statement_id: str, parameter: Any = None) -> int:
        return self.update(statement_id, parameter)

    def commit(self) -> None:
        self._ensure_open()
        self._executor.commit()

    def rollback(self) -> None:
        self._ensure_open()
        self._executor.rollback()

    def clear_cache(self) -> None:
        self._ensure_open()
        self._executor.clear_local_cache()

    def get_mapper(self, interface: "type[MapperT]") -> MapperT:
        """Return a proxy implementing ``interface`` bound to this session."""
        self._ensure_open()
        return self._configuration.get_mapper(interface, self)  # type: ignore[no-any-return]

    def close(self) -> None:
        """Close the executor, then the connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            self._executor.close()
        finally:
            with wrap_execution_errors("close"):
                self._connection.close()
            logger.debug("Session closed")

    def __enter__(self) -> "SqlSession":
        return self

    def __exit__(
        self,
        exc_type: "Optional[type[BaseException]]",
        exc_val: "Optional[BaseException]",
        exc_tb: "Optional[TracebackType]",
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SqlSession(closed={self._closed})"


class SqlSessionFactory:
    """Opens sessions over connections from a database configuration.

    Args:
        configuration: Runtime configuration shared by every session.
        database_config: Source of new connections.
    """

    __slots__ = ("_configuration", "_database_config")

    def __init__(self, configuration: "Configuration", database_config: "DatabaseConfigProtocol[Any]") -> None:
        self._configuration = configuration
        self._database_config = database_config
        if configuration.parameter_style is not database_config.parameter_style:
            logger.warning(
                "Configuration parameter style %s differs from %s style %s",
                configuration.parameter_style.value,
                type(database_config).__name__,
                database_config.parameter_style.value,
            )

    @property
    def configuration(self) -> "Configuration":
        return self._configuration

    @property
    def database_config(self) -> "DatabaseConfigProtocol[Any]":
        return self._database_config

    def open_session(
        self, auto_commit: bool = False, executor_type: "Optional[Union[ExecutorType, str]]" = None
    ) -> SqlSession:
        """Open a session on a new connection.

        Args:
            auto_commit: Open the connection in autocommit mode.
            executor_type: Statement strategy; defaults to the configuration's.

        Returns:
            A new open session.
        """
        connection = self._database_config.create_connection(auto_commit=auto_commit)
        try:
            executor = self._configuration.new_executor(connection, executor_type, auto_commit=auto_commit)
        except Exception:
            connection.close()
            raise
        logger.debug("Opened session (auto_commit=%s)", auto_commit)
        return SqlSession(self._configuration, executor, connection)

    @contextmanager
    def provide_session(
        self, auto_commit: bool = False, executor_type: "Optional[Union[ExecutorType, str]]" = None
    ) -> "Generator[SqlSession, None, None]":
        """Provide a session that is closed on exit.

        Yields:
            SqlSession: A new open session.
        """
        session = self.open_session(auto_commit=auto_commit, executor_type=executor_type)
        try:
            yield session
        finally:
            session.close()
