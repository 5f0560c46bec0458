"""Execution skeleton shared by every statement strategy.

The :class:`Executor` owns the session's local cache and transaction state
and delegates the physical round-trip to an :class:`ExecutorStrategy`.
"""

from enum import Enum
from logging import DEBUG
from typing import TYPE_CHECKING, Any, Final

from mypy_extensions import mypyc_attr
from typing_extensions import Protocol, runtime_checkable

from sqlbatis.core.cache import CacheKey, PerpetualCache
from sqlbatis.exceptions import StateError, wrap_execution_errors
from sqlbatis.utils.logging import get_logger, log_with_context

if TYPE_CHECKING:
    from sqlbatis.configuration import Configuration
    from sqlbatis.core.statement import StatementDescriptor

__all__ = ("EXECUTION_PLACEHOLDER", "Executor", "ExecutorStrategy", "ExecutorType")

logger = get_logger("executor")


class _ExecutionPlaceholder:
    __slots__ = ()

    def __repr__(self) -> str:
        return "EXECUTION_PLACEHOLDER"


EXECUTION_PLACEHOLDER: Final = _ExecutionPlaceholder()


class ExecutorType(str, Enum):
    """Statement strategy used by a session's executor."""

    SIMPLE = "simple"
    REUSE = "reuse"


@runtime_checkable
class ExecutorStrategy(Protocol):
    """Physical execution hooks plugged into an :class:`Executor`."""

    def do_query(self, descriptor: "StatementDescriptor", parameter: Any) -> "list[Any]": ...

    def do_update(self, descriptor: "StatementDescriptor", parameter: Any) -> int: ...

    def close(self) -> None: ...


@mypyc_attr(allow_interpreted_subclasses=True)
class Executor:
    """Cache-aware execution skeleton.

    Reads consult the local cache first and store results keyed by
    ``(statement id, SQL template, parameter)``; any write clears the whole
    local cache before it runs. The strategy is only reached on a cache miss.

    Args:
        configuration: Shared runtime configuration.
        connection: DB-API connection owned by this executor's session.
        strategy: Physical execution hooks.
        auto_commit: Whether the connection commits on its own.
    """

    __slots__ = (
        "_auto_commit",
        "_closed",
        "_configuration",
        "_connection",
        "_local_cache",
        "_query_depth",
        "_strategy",
    )

    def __init__(
        self,
        configuration: "Configuration",
        connection: Any,
        strategy: ExecutorStrategy,
        auto_commit: bool = False,
    ) -> None:
        self._configuration = configuration
        self._connection = connection
        self._strategy = strategy
        self._auto_commit = auto_commit
        self._local_cache = PerpetualCache("LocalCache")
        self._query_depth = 0
        self._closed = False

    @property
    def configuration(self) -> "Configuration":
        return self._configuration

    @property
    def connection(self) -> Any:
        return self._connection

    @property
    def strategy(self) -> ExecutorStrategy:
        return self._strategy

    @property
    def local_cache(self) -> PerpetualCache:
        return self._local_cache

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def auto_commit(self) -> bool:
        return self._auto_commit

    @property
    def query_depth(self) -> int:
        return self._query_depth

    def _ensure_open(self) -> None:
        if self._closed:
            msg = "Executor was closed."
            raise StateError(msg)

    def create_cache_key(self, descriptor: "StatementDescriptor", parameter: Any) -> CacheKey:
        """Build the canonical read key: statement id, SQL template, parameter."""
        self._ensure_open()
        cache_key = CacheKey()
        cache_key.update(descriptor.id)
        cache_key.update(descriptor.sql)
        cache_key.update(parameter)
        return cache_key

    def is_cached(self, key: CacheKey) -> bool:
        return key in self._local_cache

    def clear_local_cache(self) -> None:
        if not self._closed:
            self._local_cache.clear()

    def query(self, statement_id: str, parameter: Any = None) -> "list[Any]":
        """Run a read statement, serving repeated equivalent calls from the local cache.

        Raises:
            StateError: If the executor is closed.
            ConfigurationError: If ``statement_id`` is not registered.
            ExecutionError: If the driver fails.
        """
        self._ensure_open()
        descriptor = self._configuration.get_statement(statement_id)
        if not (self._configuration.local_cache_enabled and descriptor.use_cache):
            log_with_context(logger, DEBUG, "Local cache bypassed", statement_id=statement_id, operation="query")
            return self._strategy.do_query(descriptor, parameter)

        key = self.create_cache_key(descriptor, parameter)
        self._query_depth += 1
        try:
            cached = self._local_cache.get(key)
            if cached is not None and cached is not EXECUTION_PLACEHOLDER:
                log_with_context(logger, DEBUG, "Local cache hit", statement_id=statement_id, operation="query")
                return cached  # type: ignore[no-any-return]
            log_with_context(logger, DEBUG, "Local cache miss", statement_id=statement_id, operation="query")
            return self._query_from_database(descriptor, parameter, key)
        finally:
            self._query_depth -= 1

    def _query_from_database(self, descriptor: "StatementDescriptor", parameter: Any, key: CacheKey) -> "list[Any]":
        self._local_cache.put(key, EXECUTION_PLACEHOLDER)
        try:
            result = self._strategy.do_query(descriptor, parameter)
        finally:
            self._local_cache.remove(key)
        self._local_cache.put(key, result)
        return result

    def update(self, statement_id: str, parameter: Any = None) -> int:
        """Run a write statement after clearing the local cache.

        Raises:
            StateError: If the executor is closed.
            ConfigurationError: If ``statement_id`` is not registered.
            ExecutionError: If the driver fails.
        """
        self._ensure_open()
        descriptor = self._configuration.get_statement(statement_id)
        self.clear_local_cache()
        return self._strategy.do_update(descriptor, parameter)

    def commit(self) -> None:
        self._ensure_open()
        self.clear_local_cache()
        if not self._auto_commit:
            with wrap_execution_errors("commit"):
                self._connection.commit()

    def rollback(self) -> None:
        self._ensure_open()
        self.clear_local_cache()
        if not self._auto_commit:
            with wrap_execution_errors("rollback"):
                self._connection.rollback()

    def close(self) -> None:
        """Release the strategy's resources. Safe to call more than once."""
        if self._closed:
            return
        self._local_cache.clear()
        try:
            self._strategy.close()
        finally:
            self._closed = True
            logger.debug("Executor closed")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(strategy={type(self._strategy).__name__}, closed={self._closed})"
