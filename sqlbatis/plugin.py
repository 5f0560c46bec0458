"""Interceptor chain wrapped around executors, preparers, binders and result mappers.

Interceptors declare the component types and method names they intercept.
:meth:`InterceptorChain.plugin_all` wraps each new component in one
:class:`Plugin` proxy per matching interceptor, in registration order.

Example:
    >>> class CountingInterceptor(Interceptor):
    ...     intercepts = ((Executor, ("query",)),)
    ...
    ...     def __init__(self) -> None:
    ...         self.calls = 0
    ...
    ...     def intercept(self, invocation: Invocation) -> Any:
    ...         self.calls += 1
    ...         return invocation.proceed()
"""

import functools
import logging
import time
from collections.abc import Callable, Iterator, Mapping
from typing import Any, ClassVar

from sqlbatis.executor import Executor
from sqlbatis.utils.logging import get_logger, log_with_context

__all__ = ("Interceptor", "InterceptorChain", "Invocation", "Plugin", "SlowQueryInterceptor")

logger = get_logger("plugin")

DEFAULT_SLOW_QUERY_THRESHOLD_MS = 1000.0


class Invocation:
    """A captured call to an intercepted method."""

    __slots__ = ("args", "kwargs", "method", "target")

    def __init__(
        self, target: Any, method: "Callable[..., Any]", args: "tuple[Any, ...]", kwargs: "dict[str, Any]"
    ) -> None:
        self.target = target
        self.method = method
        self.args = args
        self.kwargs = kwargs

    @property
    def method_name(self) -> str:
        return getattr(self.method, "__name__", repr(self.method))

    def proceed(self) -> Any:
        """Invoke the intercepted method with the captured arguments."""
        return self.method(*self.args, **self.kwargs)

    def __repr__(self) -> str:
        return f"Invocation({type(Plugin.unwrap(self.target)).__name__}.{self.method_name}, args={self.args!r})"


class Interceptor:
    """Base class for interceptors.

    Subclasses set ``intercepts`` to ``(target_type, method_names)`` pairs and
    override :meth:`intercept`.
    """

    intercepts: "ClassVar[tuple[tuple[type, tuple[str, ...]], ...]]" = ()

    def intercept(self, invocation: Invocation) -> Any:
        return invocation.proceed()

    def plugin(self, target: Any) -> Any:
        """Wrap ``target`` when it matches this interceptor, otherwise return it unchanged."""
        return Plugin.wrap(target, self)

    def set_properties(self, properties: "Mapping[str, Any]") -> None:
        """Receive configuration properties."""

    def intercepted_methods(self, target: Any) -> "frozenset[str]":
        methods: set[str] = set()
        for target_type, method_names in self.intercepts:
            if isinstance(target, target_type):
                methods.update(method_names)
        return frozenset(methods)


class Plugin:
    """Proxy routing selected methods of a target through an interceptor.

    Every other attribute is forwarded to the target unchanged.
    """

    __slots__ = ("_interceptor", "_methods", "_target")

    def __init__(self, target: Any, interceptor: Interceptor, methods: "frozenset[str]") -> None:
        self._target = target
        self._interceptor = interceptor
        self._methods = methods

    @staticmethod
    def wrap(target: Any, interceptor: Interceptor) -> Any:
        methods = interceptor.intercepted_methods(Plugin.unwrap(target))
        if not methods:
            return target
        return Plugin(target, interceptor, methods)

    @staticmethod
    def unwrap(target: Any) -> Any:
        """Return the innermost object behind any number of plugin proxies."""
        while isinstance(target, Plugin):
            target = target._target
        return target

    @property
    def target(self) -> Any:
        return self._target

    @property
    def interceptor(self) -> Interceptor:
        return self._interceptor

    def __getattr__(self, name: str) -> Any:
        if name in Plugin.__slots__:
            raise AttributeError(name)
        attribute = getattr(self._target, name)
        if name not in self._methods or not callable(attribute):
            return attribute
        target = self._target
        interceptor = self._interceptor

        @functools.wraps(attribute)
        def _intercepted(*args: Any, **kwargs: Any) -> Any:
            return interceptor.intercept(Invocation(target, attribute, args, kwargs))

        return _intercepted

    def __repr__(self) -> str:
        return f"Plugin({self._target!r}, interceptor={type(self._interceptor).__name__})"


class InterceptorChain:
    """Ordered list of interceptors applied to every new component."""

    __slots__ = ("_interceptors",)

    def __init__(self, interceptors: "tuple[Interceptor, ...] | list[Interceptor]" = ()) -> None:
        self._interceptors: list[Interceptor] = list(interceptors)

    def add_interceptor(self, interceptor: Interceptor) -> None:
        self._interceptors.append(interceptor)
        logger.info("Registered interceptor %s", type(interceptor).__name__)

    def plugin_all(self, target: Any) -> Any:
        for interceptor in self._interceptors:
            target = interceptor.plugin(target)
        return target

    @property
    def interceptors(self) -> "tuple[Interceptor, ...]":
        return tuple(self._interceptors)

    def __iter__(self) -> "Iterator[Interceptor]":
        return iter(self._interceptors)

    def __len__(self) -> int:
        return len(self._interceptors)


class SlowQueryInterceptor(Interceptor):
    """Logs the duration of every executor query and update.

    Calls slower than ``slow_query_threshold_ms`` are logged at WARNING,
    everything else at DEBUG.
    """

    intercepts = ((Executor, ("query", "update")),)

    def __init__(self, slow_query_threshold_ms: float = DEFAULT_SLOW_QUERY_THRESHOLD_MS) -> None:
        self.slow_query_threshold_ms = slow_query_threshold_ms

    def set_properties(self, properties: "Mapping[str, Any]") -> None:
        threshold = properties.get("slow_query_threshold_ms", properties.get("slowSqlThreshold"))
        if threshold is not None:
            self.slow_query_threshold_ms = float(threshold)

    def intercept(self, invocation: Invocation) -> Any:
        start = time.perf_counter()
        try:
            return invocation.proceed()
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            statement_id = invocation.args[0] if invocation.args else invocation.kwargs.get("statement_id")
            if elapsed_ms > self.slow_query_threshold_ms:
                log_with_context(
                    logger,
                    logging.WARNING,
                    f"Slow SQL: {statement_id} took {elapsed_ms:.2f} ms",
                    statement_id=statement_id,
                    operation=invocation.method_name,
                    duration_ms=round(elapsed_ms, 2),
                    threshold_ms=self.slow_query_threshold_ms,
                )
            else:
                logger.debug("%s %s took %.2f ms", invocation.method_name, statement_id, elapsed_ms)
