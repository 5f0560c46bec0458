from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Generic, Optional, TypeVar

from sqlbatis.core.parameters import ParameterStyle

if TYPE_CHECKING:
    from contextlib import AbstractContextManager


__all__ = ("ConfigT", "ConnectionT", "DatabaseConfigProtocol", "NoPoolSyncConfig")

ConnectionT = TypeVar("ConnectionT")
ConfigT = TypeVar("ConfigT", bound="DatabaseConfigProtocol[Any]")


class DatabaseConfigProtocol(ABC, Generic[ConnectionT]):
    """Protocol defining the interface for database configurations."""

    __slots__ = ("connection_config",)
    connection_type: "ClassVar[type[Any]]"
    parameter_style: "ClassVar[ParameterStyle]" = ParameterStyle.QMARK
    supports_connection_pooling: "ClassVar[bool]" = False

    def __hash__(self) -> int:
        return id(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, type(self)):
            return NotImplemented
        return self.connection_config == other.connection_config

    def __repr__(self) -> str:
        return f"{type(self).__name__}(connection_config={self.connection_config!r})"

    @abstractmethod
    def create_connection(self, auto_commit: bool = False) -> ConnectionT:
        """Create and return a new database connection."""
        raise NotImplementedError

    @abstractmethod
    def provide_connection(self, auto_commit: bool = False) -> "AbstractContextManager[ConnectionT]":
        """Provide a database connection context manager."""
        raise NotImplementedError


class NoPoolSyncConfig(DatabaseConfigProtocol[ConnectionT]):
    """Base class for sync database configurations that do not implement a pool."""

    __slots__ = ()
    supports_connection_pooling: "ClassVar[bool]" = False

    def __init__(self, *, connection_config: "Optional[dict[str, Any]]" = None) -> None:
        self.connection_config: dict[str, Any] = dict(connection_config) if connection_config else {}

    def create_connection(self, auto_commit: bool = False) -> ConnectionT:
        raise NotImplementedError

    def provide_connection(self, auto_commit: bool = False) -> "AbstractContextManager[ConnectionT]":
        raise NotImplementedError
