"""Statement preparation and parameter binding.

Components:
- ParameterStyle enum: Positional marker emitted for ``#{name}`` placeholders
- parse_template: Memoized rewrite of a SQL template into driver SQL
- ResultSet: Column labels plus materialized rows
- PreparedStatement: A rewritten statement bound to an open cursor
- StatementPreparer: Opens prepared statements on a connection
- ParameterBinder: Binds a call parameter to a prepared statement
"""

import re
from collections.abc import Iterator, Mapping, Sequence
from enum import Enum
from functools import lru_cache
from typing import Any, Final

from mypy_extensions import mypyc_attr

from sqlbatis.exceptions import MappingError, StateError
from sqlbatis.utils.logging import get_logger
from sqlbatis.utils.type_conversion import is_scalar_type

__all__ = (
    "ParameterBinder",
    "ParameterStyle",
    "PreparedStatement",
    "ResultSet",
    "StatementPreparer",
    "is_scalar_parameter",
    "parse_template",
)

logger = get_logger("core.parameters")

_TEMPLATE_REGEX: Final = re.compile(
    r"""
    (?P<dquote>"(?:[^"\\]|\\.)*") |
    (?P<squote>'(?:[^'\\]|\\.)*') |
    (?P<line_comment>--[^\r\n]*) |
    (?P<block_comment>/\*(?:[^*]|\*(?!/))*\*/) |
    (?P<placeholder>\#\{(?P<name>[^}]+)\}) |
    (?P<percent>%)
    """,
    re.VERBOSE | re.MULTILINE | re.DOTALL,
)


class ParameterStyle(str, Enum):
    """Positional marker style of the target driver.

    - QMARK: ``?`` (sqlite3)
    - NUMERIC: ``:1``, ``:2``
    - FORMAT: ``%s`` (literal ``%`` escaped as ``%%``)
    - DOLLAR: ``$1``, ``$2``
    """

    QMARK = "qmark"
    NUMERIC = "numeric"
    FORMAT = "format"
    DOLLAR = "dollar"

    def marker(self, ordinal: int) -> str:
        """Return the marker for the 1-based ``ordinal``."""
        if self is ParameterStyle.QMARK:
            return "?"
        if self is ParameterStyle.NUMERIC:
            return f":{ordinal}"
        if self is ParameterStyle.FORMAT:
            return "%s"
        return f"${ordinal}"


@lru_cache(maxsize=512)
def parse_template(template: str, style: ParameterStyle = ParameterStyle.QMARK) -> tuple[str, tuple[str, ...]]:
    """Rewrite ``#{name}`` placeholders left to right into positional markers.

    Placeholders inside quoted strings and comments are left untouched. Any
    ``,option=value`` suffix inside the braces is dropped from the name.

    Args:
        template: SQL template.
        style: Marker style to emit.

    Returns:
        The rewritten SQL and the placeholder names in order of appearance.
    """
    names: list[str] = []

    def _replace(match: "re.Match[str]") -> str:
        if match.group("placeholder"):
            name = match.group("name").split(",", 1)[0].strip()
            names.append(name)
            return style.marker(len(names))
        if match.group("percent"):
            return "%%" if style is ParameterStyle.FORMAT else "%"
        text = match.group(0)
        return text.replace("%", "%%") if style is ParameterStyle.FORMAT else text

    sql = _TEMPLATE_REGEX.sub(_replace, template)
    return sql, tuple(names)


def is_scalar_parameter(value: Any) -> bool:
    return isinstance(value, Enum) or is_scalar_type(type(value))


@mypyc_attr(allow_interpreted_subclasses=False)
class ResultSet:
    """Column labels and rows returned by a query."""

    __slots__ = ("column_names", "rows")

    def __init__(self, column_names: "Sequence[str]", rows: "Sequence[Sequence[Any]]") -> None:
        self.column_names: tuple[str, ...] = tuple(column_names)
        self.rows: list[tuple[Any, ...]] = [tuple(row) for row in rows]

    def __iter__(self) -> "Iterator[tuple[Any, ...]]":
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def __repr__(self) -> str:
        return f"ResultSet(columns={self.column_names!r}, rows={len(self.rows)})"


@mypyc_attr(allow_interpreted_subclasses=True)
class PreparedStatement:
    """A rewritten SQL statement bound to an open DB-API cursor."""

    __slots__ = ("_closed", "_cursor", "_parameters", "placeholders", "sql", "template")

    def __init__(self, cursor: Any, sql: str, template: str, placeholders: "tuple[str, ...]") -> None:
        self._cursor = cursor
        self.sql = sql
        self.template = template
        self.placeholders = placeholders
        self._parameters: list[Any] = []
        self._closed = False

    @property
    def parameters(self) -> tuple[Any, ...]:
        return tuple(self._parameters)

    @property
    def closed(self) -> bool:
        return self._closed

    def set_parameter(self, index: int, value: Any) -> None:
        """Bind ``value`` to the 1-based marker ``index``."""
        if index < 1:
            msg = f"Parameter index must be 1 or greater, got {index}"
            raise MappingError(msg)
        if len(self._parameters) < index:
            self._parameters.extend([None] * (index - len(self._parameters)))
        self._parameters[index - 1] = value

    def clear_parameters(self) -> None:
        self._parameters.clear()

    def _check_open(self) -> None:
        if self._closed:
            msg = "Prepared statement is closed"
            raise StateError(msg)

    def execute_query(self) -> ResultSet:
        """Run the statement and materialize every row."""
        self._check_open()
        self._cursor.execute(self.sql, tuple(self._parameters))
        description = self._cursor.description or ()
        column_names = [column[0] for column in description]
        return ResultSet(column_names, self._cursor.fetchall())

    def execute_update(self) -> int:
        """Run the statement and return the affected row count."""
        self._check_open()
        self._cursor.execute(self.sql, tuple(self._parameters))
        rowcount = self._cursor.rowcount
        return rowcount if isinstance(rowcount, int) and rowcount >= 0 else 0

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._cursor.close()

    def __repr__(self) -> str:
        return f"PreparedStatement(sql={self.sql!r}, parameters={self._parameters!r})"


@mypyc_attr(allow_interpreted_subclasses=True)
class StatementPreparer:
    """Turns a SQL template into a :class:`PreparedStatement`."""

    __slots__ = ("parameter_style",)

    def __init__(self, parameter_style: ParameterStyle = ParameterStyle.QMARK) -> None:
        self.parameter_style = ParameterStyle(parameter_style)

    def rewrite(self, sql: str) -> str:
        return parse_template(sql, self.parameter_style)[0]

    def prepare(self, connection: Any, sql: str) -> PreparedStatement:
        """Rewrite ``sql`` and open a cursor for it on ``connection``."""
        rewritten, placeholders = parse_template(sql, self.parameter_style)
        logger.debug("Preparing: %s", rewritten)
        return PreparedStatement(connection.cursor(), rewritten, sql, placeholders)


@mypyc_attr(allow_interpreted_subclasses=True)
class ParameterBinder:
    """Binds a call parameter to the markers of a prepared statement.

    - ``None`` binds nothing.
    - A scalar binds to marker 1, and to any later marker repeating the same
      placeholder name. Distinct placeholder names need a structured parameter.
    - A list or tuple binds positionally.
    - A mapping, dataclass or object resolves each placeholder's dotted path.
    """

    __slots__ = ()

    def bind(self, prepared: PreparedStatement, parameter: Any) -> None:
        prepared.clear_parameters()
        placeholders = prepared.placeholders
        if parameter is None or not placeholders:
            return
        if is_scalar_parameter(parameter):
            if len(set(placeholders)) > 1:
                msg = (
                    f"Cannot bind {type(parameter).__name__} value to distinct placeholders "
                    f"{', '.join(dict.fromkeys(placeholders))}: {prepared.template!r}"
                )
                raise MappingError(msg)
            for index in range(1, len(placeholders) + 1):
                prepared.set_parameter(index, parameter)
        elif isinstance(parameter, (list, tuple)):
            if len(parameter) != len(placeholders):
                msg = (
                    f"Statement expects {len(placeholders)} parameters "
                    f"but {len(parameter)} were supplied: {prepared.template!r}"
                )
                raise MappingError(msg)
            for index, value in enumerate(parameter, start=1):
                prepared.set_parameter(index, value)
        else:
            for index, path in enumerate(placeholders, start=1):
                prepared.set_parameter(index, self.resolve_path(parameter, path))
        logger.debug("Parameters: %r", prepared.parameters)

    @staticmethod
    def resolve_path(parameter: Any, path: str) -> Any:
        """Resolve a dotted ``path`` against mapping keys, then attributes."""
        current = parameter
        for segment in path.split("."):
            if isinstance(current, Mapping) and segment in current:
                current = current[segment]
            elif not isinstance(current, Mapping) and _has_field(current, segment):
                current = getattr(current, segment)
            else:
                msg = f"Cannot resolve parameter path {path!r} on {type(parameter).__name__}"
                raise MappingError(msg)
        return current


def _has_field(value: Any, name: str) -> bool:
    return not name.startswith("_") and hasattr(value, name)
