"""Statement strategies plugged into :class:`~sqlbatis.executor.Executor`."""

from logging import DEBUG
from typing import TYPE_CHECKING, Any

from mypy_extensions import mypyc_attr

from sqlbatis.exceptions import wrap_execution_errors
from sqlbatis.utils.logging import get_logger, log_with_context

if TYPE_CHECKING:
    from sqlbatis.core.parameters import ParameterBinder, PreparedStatement, StatementPreparer
    from sqlbatis.core.result import ResultMapper
    from sqlbatis.core.statement import StatementDescriptor

__all__ = ("BaseStrategy", "ReuseStrategy", "SimpleStrategy")

logger = get_logger("executor.strategies")


@mypyc_attr(allow_interpreted_subclasses=True)
class BaseStrategy:
    """Shared wiring of preparer, binder and result mapper."""

    __slots__ = ("_binder", "_connection", "_preparer", "_result_mapper")

    def __init__(
        self,
        connection: Any,
        preparer: "StatementPreparer",
        binder: "ParameterBinder",
        result_mapper: "ResultMapper",
    ) -> None:
        self._connection = connection
        self._preparer = preparer
        self._binder = binder
        self._result_mapper = result_mapper

    def do_query(self, descriptor: "StatementDescriptor", parameter: Any) -> "list[Any]":
        raise NotImplementedError

    def do_update(self, descriptor: "StatementDescriptor", parameter: Any) -> int:
        raise NotImplementedError

    def close(self) -> None:
        """Release held resources."""

    @staticmethod
    def _log_rows(descriptor: "StatementDescriptor", operation: str, rows: int) -> None:
        log_with_context(
            logger, DEBUG, "Statement executed", statement_id=descriptor.id, operation=operation, rows=rows
        )


@mypyc_attr(allow_interpreted_subclasses=True)
class SimpleStrategy(BaseStrategy):
    """Opens a new prepared statement per call and closes it afterwards."""

    __slots__ = ()

    def do_query(self, descriptor: "StatementDescriptor", parameter: Any) -> "list[Any]":
        with wrap_execution_errors("query", descriptor.id):
            prepared = self._preparer.prepare(self._connection, descriptor.sql)
            try:
                self._binder.bind(prepared, parameter)
                result_set = prepared.execute_query()
            finally:
                prepared.close()
        self._log_rows(descriptor, "query", len(result_set))
        return self._result_mapper.handle_result_set(result_set, descriptor.result_type)

    def do_update(self, descriptor: "StatementDescriptor", parameter: Any) -> int:
        with wrap_execution_errors("update", descriptor.id):
            prepared = self._preparer.prepare(self._connection, descriptor.sql)
            try:
                self._binder.bind(prepared, parameter)
                affected = prepared.execute_update()
            finally:
                prepared.close()
        self._log_rows(descriptor, "update", affected)
        return affected


@mypyc_attr(allow_interpreted_subclasses=True)
class ReuseStrategy(BaseStrategy):
    """Keeps one prepared statement per rewritten SQL until closed."""

    __slots__ = ("_statements",)

    def __init__(
        self,
        connection: Any,
        preparer: "StatementPreparer",
        binder: "ParameterBinder",
        result_mapper: "ResultMapper",
    ) -> None:
        super().__init__(connection, preparer, binder, result_mapper)
        self._statements: "dict[str, PreparedStatement]" = {}

    @property
    def statement_count(self) -> int:
        return len(self._statements)

    def _prepare(self, sql: str) -> "PreparedStatement":
        rewritten = self._preparer.rewrite(sql)
        prepared = self._statements.get(rewritten)
        if prepared is None or prepared.closed:
            prepared = self._preparer.prepare(self._connection, sql)
            self._statements[rewritten] = prepared
        else:
            logger.debug("Reusing prepared statement: %s", rewritten)
        return prepared

    def do_query(self, descriptor: "StatementDescriptor", parameter: Any) -> "list[Any]":
        with wrap_execution_errors("query", descriptor.id):
            prepared = self._prepare(descriptor.sql)
            self._binder.bind(prepared, parameter)
            result_set = prepared.execute_query()
        self._log_rows(descriptor, "query", len(result_set))
        return self._result_mapper.handle_result_set(result_set, descriptor.result_type)

    def do_update(self, descriptor: "StatementDescriptor", parameter: Any) -> int:
        with wrap_execution_errors("update", descriptor.id):
            prepared = self._prepare(descriptor.sql)
            self._binder.bind(prepared, parameter)
            affected = prepared.execute_update()
        self._log_rows(descriptor, "update", affected)
        return affected

    def close(self) -> None:
        statements = list(self._statements.values())
        self._statements.clear()
        with wrap_execution_errors("close"):
            for prepared in statements:
                prepared.close()
