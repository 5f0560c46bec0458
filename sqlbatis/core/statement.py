"""Statement descriptors and the immutable statement registry."""

from collections.abc import Iterable, Iterator, Mapping
from difflib import get_close_matches
from enum import Enum
from types import MappingProxyType
from typing import Any, Optional

from sqlbatis.exceptions import ConfigurationError
from sqlbatis.utils.logging import get_logger

__all__ = ("CommandKind", "StatementDescriptor", "StatementRegistry")

logger = get_logger("core.statement")


class CommandKind(str, Enum):
    """Kind of SQL command a statement performs."""

    QUERY = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def is_query(self) -> bool:
        return self is CommandKind.QUERY

    @classmethod
    def from_name(cls, name: str) -> "CommandKind":
        """Resolve ``select``/``query``/``insert``/``update``/``delete`` (any case)."""
        normalized = name.strip().lower()
        if normalized == "query":
            return cls.QUERY
        try:
            return cls(normalized)
        except ValueError as e:
            msg = f"Unknown command kind {name!r}; expected one of select, insert, update, delete"
            raise ConfigurationError(msg) from e


class StatementDescriptor:
    """One declared unit of SQL.

    Descriptors are immutable once built and are shared by reference between
    sessions.
    """

    __slots__ = ("_command_kind", "_id", "_parameter_type", "_result_type", "_sql", "_use_cache")

    def __init__(
        self,
        id: str,
        command_kind: CommandKind,
        sql: str,
        *,
        parameter_type: "Optional[type[Any]]" = None,
        result_type: Any = dict,
        use_cache: bool = True,
    ) -> None:
        if not id:
            msg = "Statement id must not be empty"
            raise ConfigurationError(msg)
        if not sql or not sql.strip():
            msg = f"Statement {id!r} has no SQL"
            raise ConfigurationError(msg)
        object.__setattr__(self, "_id", id)
        object.__setattr__(self, "_command_kind", CommandKind(command_kind))
        object.__setattr__(self, "_sql", sql)
        object.__setattr__(self, "_parameter_type", parameter_type)
        object.__setattr__(self, "_result_type", result_type)
        object.__setattr__(self, "_use_cache", use_cache)

    def __setattr__(self, name: str, value: Any) -> None:
        msg = f"{type(self).__name__} is immutable"
        raise AttributeError(msg)

    def __delattr__(self, name: str) -> None:
        msg = f"{type(self).__name__} is immutable"
        raise AttributeError(msg)

    @property
    def id(self) -> str:
        return self._id

    @property
    def command_kind(self) -> CommandKind:
        return self._command_kind

    @property
    def sql(self) -> str:
        """The SQL template, with ``#{name}`` placeholders."""
        return self._sql

    @property
    def parameter_type(self) -> "Optional[type[Any]]":
        return self._parameter_type

    @property
    def result_type(self) -> Any:
        return self._result_type

    @property
    def use_cache(self) -> bool:
        return self._use_cache

    @property
    def namespace(self) -> str:
        """Qualifying prefix of the id (the owning interface name)."""
        return self._id.rpartition(".")[0]

    @property
    def name(self) -> str:
        return self._id.rpartition(".")[2]

    def _key(self) -> tuple[Any, ...]:
        return (self._id, self._command_kind, self._sql, self._parameter_type, self._result_type, self._use_cache)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StatementDescriptor):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash((self._id, self._command_kind, self._sql))

    def __repr__(self) -> str:
        return f"StatementDescriptor(id={self._id!r}, command_kind={self._command_kind.name}, sql={self._sql!r})"


class StatementRegistry(Mapping[str, StatementDescriptor]):
    """Immutable mapping of statement id to :class:`StatementDescriptor`.

    Built once at startup and passed by reference to every session.
    """

    __slots__ = ("_statements",)

    def __init__(self, statements: "Iterable[StatementDescriptor]" = ()) -> None:
        collected: dict[str, StatementDescriptor] = {}
        for statement in statements:
            if statement.id in collected:
                msg = f"Duplicate statement id {statement.id!r}"
                raise ConfigurationError(msg)
            collected[statement.id] = statement
        self._statements = MappingProxyType(collected)
        logger.debug("Statement registry built with %d statements", len(collected))

    def __getitem__(self, statement_id: str) -> StatementDescriptor:
        return self._statements[statement_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._statements)

    def __len__(self) -> int:
        return len(self._statements)

    def __repr__(self) -> str:
        return f"StatementRegistry({len(self._statements)} statements)"

    def get_statement(self, statement_id: str) -> StatementDescriptor:
        """Return the descriptor registered under ``statement_id``.

        Raises:
            ConfigurationError: If no statement is registered under the id.
        """
        statement = self._statements.get(statement_id)
        if statement is None:
            msg = f"Statement {statement_id!r} is not registered"
            suggestions = get_close_matches(statement_id, list(self._statements), n=3, cutoff=0.6)
            if suggestions:
                msg += f". Did you mean: {', '.join(suggestions)}?"
            raise ConfigurationError(msg)
        return statement

    def namespaces(self) -> "set[str]":
        return {statement.namespace for statement in self._statements.values()}

    def merge(self, other: "Iterable[StatementDescriptor]") -> "StatementRegistry":
        """Return a new registry holding the statements of both."""
        return StatementRegistry([*self._statements.values(), *other])
