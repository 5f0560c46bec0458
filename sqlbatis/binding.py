"""Mapper interface binding.

A mapper interface is a :class:`typing.Protocol` class whose methods declare
only their signature. :class:`MapperRegistry` synthesizes one proxy class per
interface; every method on it routes the call to the session through a
:class:`MapperMethod`:

- the statement id is ``"<module>.<qualname>.<method>"``;
- the parameter is the method's first argument, or ``None``;
- the return annotation picks the session operation. Collections run
  ``select_list`` (``Optional`` collections included), ``None`` and ``int``
  run ``update`` and everything else runs ``select_one``.

Example:
    >>> class UserMapper(Protocol):
    ...     def select_by_id(self, user_id: int) -> "User | None": ...
    >>> registry = MapperRegistry()
    >>> registry.add_mapper(UserMapper)
    >>> mapper = registry.get_mapper(UserMapper, session)
"""

import functools
import inspect
import types
from collections.abc import (
    Callable,
    Collection,
    Generator,
    Iterable,
    Iterator,
    MutableSequence,
    MutableSet,
    Sequence,
)
from collections.abc import Set as AbstractSet
from enum import Enum
from typing import TYPE_CHECKING, Any, Final, Optional

from typing_extensions import get_origin, get_protocol_members, get_type_hints, is_protocol

from sqlbatis.core.result import unwrap_optional
from sqlbatis.exceptions import ConfigurationError
from sqlbatis.utils.logging import get_logger

if TYPE_CHECKING:
    from sqlbatis.session import SqlSession

__all__ = ("MapperMethod", "MapperProxy", "MapperProxyFactory", "MapperRegistry", "RouteKind", "mapper_namespace")

logger = get_logger("binding")

_CONCRETE_COLLECTIONS: Final = (list, tuple, set, frozenset)
_ITERATOR_TYPES: Final = (Iterator, Generator)
_ABSTRACT_COLLECTIONS: Final = (Sequence, MutableSequence, Collection, Iterable, AbstractSet, MutableSet)


def mapper_namespace(interface: type) -> str:
    """Return the statement namespace of a mapper interface."""
    return f"{interface.__module__}.{interface.__qualname__}"


class RouteKind(str, Enum):
    """Session operation a mapper method routes to."""

    SELECT_LIST = "select_list"
    SELECT_ONE = "select_one"
    UPDATE = "update"


def _collection_container(annotation: Any) -> "Optional[Callable[[Iterable[Any]], Any]]":
    """Return the container factory for collection annotations, ``None`` otherwise."""
    origin = get_origin(annotation) or annotation
    if origin in _CONCRETE_COLLECTIONS:
        return origin  # type: ignore[no-any-return]
    if origin in _ITERATOR_TYPES:
        return iter
    if origin in _ABSTRACT_COLLECTIONS:
        return list
    return None


class MapperMethod:
    """Routing information for one mapper interface method."""

    __slots__ = ("container", "name", "returns_none", "route", "signature", "statement_id")

    def __init__(self, interface: type, name: str) -> None:
        function = getattr(interface, name)
        self.name = name
        self.statement_id = f"{mapper_namespace(interface)}.{name}"
        try:
            hints = get_type_hints(function)
        except Exception as e:
            msg = f"Cannot resolve annotations of mapper method {self.statement_id}: {e}"
            raise ConfigurationError(msg) from e
        if "return" not in hints:
            msg = f"Mapper method {self.statement_id} must declare a return annotation"
            raise ConfigurationError(msg)

        return_type = hints["return"]
        self.returns_none = return_type is None or return_type is type(None)
        self.container = _collection_container(unwrap_optional(return_type))
        if self.container is not None:
            self.route = RouteKind.SELECT_LIST
        elif self.returns_none or return_type is int:
            self.route = RouteKind.UPDATE
        else:
            self.route = RouteKind.SELECT_ONE

        signature = inspect.signature(function)
        parameters = list(signature.parameters.values())[1:]
        self.signature = signature.replace(parameters=parameters)

    def resolve_parameter(self, args: "tuple[Any, ...]", kwargs: "dict[str, Any]") -> Any:
        """Bind the call against the method signature and return the first argument."""
        bound = self.signature.bind(*args, **kwargs)
        bound.apply_defaults()
        if not bound.arguments:
            return None
        return next(iter(bound.arguments.values()))

    def execute(self, session: "SqlSession", args: "tuple[Any, ...]", kwargs: "dict[str, Any]") -> Any:
        parameter = self.resolve_parameter(args, kwargs)
        if self.route is RouteKind.SELECT_LIST:
            rows = session.select_list(self.statement_id, parameter)
            return rows if self.container is list else self.container(rows)  # type: ignore[misc]
        if self.route is RouteKind.UPDATE:
            affected = session.update(self.statement_id, parameter)
            return None if self.returns_none else affected
        return session.select_one(self.statement_id, parameter)

    def __repr__(self) -> str:
        return f"MapperMethod({self.statement_id!r}, route={self.route.value})"


class MapperProxy:
    """Base of every synthesized mapper implementation."""

    _mapper_interface: "type[Any]"
    _mapper_methods: "dict[str, MapperMethod]"

    def __init__(self, session: "SqlSession") -> None:
        self._session = session

    @property
    def session(self) -> "SqlSession":
        return self._session

    def __repr__(self) -> str:
        return f"<{type(self).__name__} for {mapper_namespace(self._mapper_interface)}>"


def _routed(method: MapperMethod, original: "Callable[..., Any]") -> "Callable[..., Any]":
    def call(self: MapperProxy, *args: Any, **kwargs: Any) -> Any:
        return method.execute(self._session, args, kwargs)

    return functools.update_wrapper(call, original)


class MapperProxyFactory:
    """Builds proxy instances for one mapper interface.

    The proxy class subclasses the interface, so ``isinstance`` checks pass for
    interfaces decorated with ``@runtime_checkable``; Python raises ``TypeError``
    for ``isinstance`` against any other protocol.
    """

    __slots__ = ("_interface", "_methods", "_proxy_class")

    def __init__(self, interface: type) -> None:
        self._interface = interface
        self._methods = {name: MapperMethod(interface, name) for name in self._method_names(interface)}
        self._proxy_class: Optional[type[MapperProxy]] = None

    @staticmethod
    def _method_names(interface: type) -> "list[str]":
        return sorted(
            name
            for name in get_protocol_members(interface)
            if not name.startswith("_") and inspect.isfunction(inspect.getattr_static(interface, name, None))
        )

    @property
    def interface(self) -> type:
        return self._interface

    @property
    def methods(self) -> "dict[str, MapperMethod]":
        return dict(self._methods)

    @property
    def proxy_class(self) -> "type[MapperProxy]":
        if self._proxy_class is None:
            self._proxy_class = self._build_proxy_class()
        return self._proxy_class

    def _build_proxy_class(self) -> "type[MapperProxy]":
        interface = self._interface
        methods = self._methods

        def exec_body(namespace: "dict[str, Any]") -> None:
            namespace["__module__"] = interface.__module__
            namespace["_mapper_interface"] = interface
            namespace["_mapper_methods"] = methods
            for name, method in methods.items():
                namespace[name] = _routed(method, getattr(interface, name))

        return types.new_class(f"{interface.__name__}Proxy", (MapperProxy, interface), exec_body=exec_body)

    def new_instance(self, session: "SqlSession") -> Any:
        return self.proxy_class(session)


class MapperRegistry:
    """Registered mapper interfaces and their proxy factories."""

    __slots__ = ("_known_mappers",)

    def __init__(self) -> None:
        self._known_mappers: dict[type, MapperProxyFactory] = {}

    def add_mapper(self, interface: type) -> None:
        """Register a mapper interface.

        Registering the same interface twice logs a warning and does nothing.

        Raises:
            ConfigurationError: If ``interface`` is not a ``typing.Protocol`` class
                or one of its methods cannot be routed.
        """
        if not (isinstance(interface, type) and is_protocol(interface)):
            msg = f"Type {interface!r} is not a mapper interface; mappers must be typing.Protocol classes"
            raise ConfigurationError(msg)
        if interface in self._known_mappers:
            logger.warning("Mapper %s is already registered", mapper_namespace(interface))
            return
        self._known_mappers[interface] = MapperProxyFactory(interface)
        logger.info("Registered mapper %s", mapper_namespace(interface))

    def has_mapper(self, interface: type) -> bool:
        return interface in self._known_mappers

    def get_mapper(self, interface: "type[Any]", session: "SqlSession") -> Any:
        factory = self._known_mappers.get(interface)
        if factory is None:
            msg = f"Type {getattr(interface, '__qualname__', interface)!r} is not known to the MapperRegistry"
            raise ConfigurationError(msg)
        return factory.new_instance(session)

    @property
    def mappers(self) -> "tuple[type, ...]":
        return tuple(self._known_mappers)

    def __contains__(self, interface: object) -> bool:
        return interface in self._known_mappers

    def __len__(self) -> int:
        return len(self._known_mappers)
