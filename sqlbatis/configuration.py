"""Runtime configuration shared by every session."""

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, Optional, Union

from sqlbatis.binding import MapperRegistry
from sqlbatis.core.parameters import ParameterBinder, ParameterStyle, StatementPreparer
from sqlbatis.core.result import ResultMapper
from sqlbatis.core.statement import StatementDescriptor, StatementRegistry
from sqlbatis.executor import Executor, ExecutorType, ReuseStrategy, SimpleStrategy
from sqlbatis.plugin import Interceptor, InterceptorChain
from sqlbatis.utils.logging import get_logger

if TYPE_CHECKING:
    from sqlbatis.session import SqlSession

__all__ = ("Configuration",)

logger = get_logger("configuration")


class Configuration:
    """Statements, mappers, interceptors and execution defaults.

    Built once at startup and then only read; every session holds a reference
    to the same instance.

    Args:
        statements: Registered statements, as a registry or any iterable of descriptors.
        mapper_registry: Registry of mapper interfaces.
        interceptor_chain: Interceptors applied to every executor, preparer,
            binder and result mapper.
        local_cache_enabled: Whether sessions cache query results locally.
        default_executor_type: Strategy used when a session does not ask for one.
        parameter_style: Positional marker style of the target driver.
    """

    __slots__ = (
        "default_executor_type",
        "interceptor_chain",
        "local_cache_enabled",
        "mapper_registry",
        "parameter_style",
        "statements",
    )

    def __init__(
        self,
        statements: "Optional[Union[StatementRegistry, Iterable[StatementDescriptor]]]" = None,
        *,
        mapper_registry: "Optional[MapperRegistry]" = None,
        interceptor_chain: "Optional[InterceptorChain]" = None,
        local_cache_enabled: bool = True,
        default_executor_type: "Union[ExecutorType, str]" = ExecutorType.SIMPLE,
        parameter_style: "Union[ParameterStyle, str]" = ParameterStyle.QMARK,
    ) -> None:
        if statements is None:
            statements = StatementRegistry()
        elif not isinstance(statements, StatementRegistry):
            statements = StatementRegistry(statements)
        self.statements = statements
        self.mapper_registry = mapper_registry if mapper_registry is not None else MapperRegistry()
        self.interceptor_chain = interceptor_chain if interceptor_chain is not None else InterceptorChain()
        self.local_cache_enabled = local_cache_enabled
        self.default_executor_type = ExecutorType(default_executor_type)
        self.parameter_style = ParameterStyle(parameter_style)

    def __repr__(self) -> str:
        return (
            f"Configuration(statements={len(self.statements)}, mappers={len(self.mapper_registry)}, "
            f"interceptors={len(self.interceptor_chain)}, executor_type={self.default_executor_type.value}, "
            f"parameter_style={self.parameter_style.value})"
        )

    def add_statements(self, statements: "Iterable[StatementDescriptor]") -> None:
        """Register more statements; ids must not collide with existing ones."""
        self.statements = self.statements.merge(statements)

    def get_statement(self, statement_id: str) -> StatementDescriptor:
        return self.statements.get_statement(statement_id)

    def has_statement(self, statement_id: str) -> bool:
        return statement_id in self.statements

    def add_mapper(self, interface: type) -> None:
        self.mapper_registry.add_mapper(interface)

    def add_mappers(self, *interfaces: type) -> None:
        for interface in interfaces:
            self.mapper_registry.add_mapper(interface)

    def has_mapper(self, interface: type) -> bool:
        return self.mapper_registry.has_mapper(interface)

    def get_mapper(self, interface: "type[Any]", session: "SqlSession") -> Any:
        return self.mapper_registry.get_mapper(interface, session)

    def add_interceptor(self, interceptor: Interceptor, properties: "Optional[Mapping[str, Any]]" = None) -> None:
        if properties:
            interceptor.set_properties(properties)
        self.interceptor_chain.add_interceptor(interceptor)

    def new_statement_preparer(self) -> StatementPreparer:
        return self.interceptor_chain.plugin_all(StatementPreparer(self.parameter_style))  # type: ignore[no-any-return]

    def new_parameter_binder(self) -> ParameterBinder:
        return self.interceptor_chain.plugin_all(ParameterBinder())  # type: ignore[no-any-return]

    def new_result_mapper(self) -> ResultMapper:
        return self.interceptor_chain.plugin_all(ResultMapper())  # type: ignore[no-any-return]

    def new_executor(
        self,
        connection: Any,
        executor_type: "Optional[Union[ExecutorType, str]]" = None,
        auto_commit: bool = False,
    ) -> Executor:
        """Build an executor over ``connection`` with the requested strategy.

        Args:
            connection: DB-API connection the executor will own.
            executor_type: Strategy to use; defaults to ``default_executor_type``.
            auto_commit: Whether the connection commits on its own.

        Returns:
            The executor, wrapped by any matching interceptors.
        """
        executor_type = ExecutorType(executor_type or self.default_executor_type)
        strategy_type = ReuseStrategy if executor_type is ExecutorType.REUSE else SimpleStrategy
        strategy = strategy_type(
            connection, self.new_statement_preparer(), self.new_parameter_binder(), self.new_result_mapper()
        )
        executor = Executor(self, connection, strategy, auto_commit=auto_commit)
        logger.debug("Created %s executor (auto_commit=%s)", executor_type.value, auto_commit)
        return self.interceptor_chain.plugin_all(executor)  # type: ignore[no-any-return]
