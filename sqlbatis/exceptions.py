from collections.abc import Generator
from contextlib import contextmanager
from typing import Any, Optional

__all__ = (
    "CacheError",
    "ConfigurationError",
    "ExecutionError",
    "MappingError",
    "MissingDependencyError",
    "SQLBatisError",
    "SQLFileNotFoundError",
    "SQLFileParseError",
    "StateError",
    "wrap_execution_errors",
)


class SQLBatisError(Exception):
    """Base exception class from which all SQLBatis exceptions inherit."""

    detail: str

    def __init__(self, *args: Any, detail: str = "") -> None:
        """Initialize ``SQLBatisError``.

        Args:
            *args: args are converted to :class:`str` before passing to :class:`Exception`
            detail: detail of the exception.
        """
        str_args = [str(arg) for arg in args if arg]
        if not detail:
            if str_args:
                detail, *str_args = str_args
            elif hasattr(self, "detail"):
                detail = self.detail
        self.detail = detail
        super().__init__(*str_args)

    def __repr__(self) -> str:
        if self.detail:
            return f"{self.__class__.__name__} - {self.detail}"
        return self.__class__.__name__

    def __str__(self) -> str:
        return " ".join((*self.args, self.detail)).strip()


class MissingDependencyError(SQLBatisError, ImportError):
    """Missing optional dependency.

    This exception is raised only when a module depends on a dependency that has not been installed.
    """

    def __init__(self, package: str, install_package: Optional[str] = None) -> None:
        super().__init__(
            f"Package {package!r} is not installed but required. You can install it by running "
            f"'pip install sqlbatis[{install_package or package}]' to install sqlbatis with the required extra "
            f"or 'pip install {install_package or package}' to install the package separately",
        )


class ConfigurationError(SQLBatisError):
    """Improper configuration.

    Raised for unregistered statement ids, mapper types that are not interfaces,
    and parameter or result types that cannot be resolved. Never retried.
    """


class SQLFileNotFoundError(ConfigurationError):
    """Raised when a SQL file cannot be found."""

    def __init__(self, name: str, path: Optional[str] = None) -> None:
        message = f"SQL file '{name}' not found at path: {path}" if path else f"SQL file '{name}' not found"
        super().__init__(message)
        self.name = name
        self.path = path


class SQLFileParseError(ConfigurationError):
    """Raised when a SQL or mapper file cannot be parsed."""

    def __init__(self, name: str, path: str, original_error: "Exception") -> None:
        message = f"Failed to parse SQL file '{name}' at {path}: {original_error}"
        super().__init__(message)
        self.name = name
        self.path = path
        self.original_error = original_error


class StateError(SQLBatisError):
    """An operation was attempted on a closed session or executor."""


class ExecutionError(SQLBatisError):
    """The underlying database driver failed while running a statement.

    The driver exception is chained as ``__cause__``.
    """

    statement_id: Optional[str]
    operation: Optional[str]

    def __init__(self, message: str, statement_id: Optional[str] = None, operation: Optional[str] = None) -> None:
        detail_message = message
        if statement_id:
            detail_message = f"{message} [statement={statement_id}, operation={operation or 'unknown'}]"
        elif operation:
            detail_message = f"{message} [operation={operation}]"
        super().__init__(detail=detail_message)
        self.statement_id = statement_id
        self.operation = operation


class MappingError(SQLBatisError):
    """Rows or parameters could not be mapped.

    Raised for single-row queries returning more than one row, structured
    parameters whose placeholder paths cannot be resolved and result types
    that cannot be materialized.
    """


class CacheError(SQLBatisError):
    """Invalid use of a cache key, e.g. updating ``NULL_CACHE_KEY``."""


@contextmanager
def wrap_execution_errors(operation: str, statement_id: Optional[str] = None) -> Generator[None, None, None]:
    """Wrap driver failures into :class:`ExecutionError`.

    SQLBatis errors raised inside the block propagate untouched.

    Args:
        operation: Operation kind (``query``, ``update``, ``commit``, ...).
        statement_id: Identifier of the statement being run, if any.
    """
    try:
        yield
    except SQLBatisError:
        raise
    except Exception as exc:
        msg = f"Database error: {exc}"
        raise ExecutionError(msg, statement_id=statement_id, operation=operation) from exc
