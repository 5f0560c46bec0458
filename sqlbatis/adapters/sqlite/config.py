"""SQLite database configuration."""

import sqlite3
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, ClassVar, TypedDict

from typing_extensions import NotRequired

from sqlbatis.config import NoPoolSyncConfig
from sqlbatis.core.parameters import ParameterStyle
from sqlbatis.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Generator

logger = get_logger("adapters.sqlite")

DEFAULT_DATABASE = ":memory:"


class SqliteConnectionParams(TypedDict, total=False):
    """SQLite connection parameters."""

    database: NotRequired[str]
    timeout: NotRequired[float]
    detect_types: NotRequired[int]
    isolation_level: "NotRequired[str | None]"
    check_same_thread: NotRequired[bool]
    cached_statements: NotRequired[int]
    uri: NotRequired[bool]


__all__ = ("SqliteConfig", "SqliteConnectionParams")


class SqliteConfig(NoPoolSyncConfig[sqlite3.Connection]):
    """Opens a new :mod:`sqlite3` connection per session.

    Every connection to ``:memory:`` (the default database) is a separate,
    empty database.
    """

    __slots__ = ()
    connection_type: "ClassVar[type[sqlite3.Connection]]" = sqlite3.Connection
    parameter_style: "ClassVar[ParameterStyle]" = ParameterStyle.QMARK

    def __init__(self, *, connection_config: "SqliteConnectionParams | dict[str, Any] | None" = None) -> None:
        """Initialize SQLite configuration.

        Args:
            connection_config: Parameters passed to :func:`sqlite3.connect`.
        """
        config = dict(connection_config) if connection_config else {}
        config.setdefault("database", DEFAULT_DATABASE)
        database_path = str(config["database"])
        if database_path.startswith("file:") and not config.get("uri"):
            logger.debug("Database URI detected (%s); enabling uri mode", database_path)
            config["uri"] = True
        super().__init__(connection_config=config)

    def _get_connection_config_dict(self, auto_commit: bool) -> "dict[str, Any]":
        config = {k: v for k, v in self.connection_config.items() if v is not None or k == "isolation_level"}
        if auto_commit:
            config["isolation_level"] = None
        return config

    def create_connection(self, auto_commit: bool = False) -> sqlite3.Connection:
        """Open a new SQLite connection.

        Args:
            auto_commit: Open the connection in autocommit mode.

        Returns:
            sqlite3.Connection: A new connection.
        """
        config = self._get_connection_config_dict(auto_commit)
        logger.debug("Opening SQLite connection to %s", config["database"])
        return sqlite3.connect(**config)

    @contextmanager
    def provide_connection(self, auto_commit: bool = False) -> "Generator[sqlite3.Connection, None, None]":
        """Provide a SQLite connection that is closed on exit.

        Yields:
            sqlite3.Connection: A new connection.
        """
        connection = self.create_connection(auto_commit=auto_commit)
        try:
            yield connection
        finally:
            connection.close()
