"""Mapping of result sets into scalars, mappings and records."""

import dataclasses
import typing
from collections.abc import Mapping, MutableMapping
from enum import Enum
from functools import lru_cache
from typing import Any, Final, Optional, Union

from mypy_extensions import mypyc_attr
from typing_extensions import get_args, get_origin, get_type_hints, is_typeddict

from sqlbatis.core.parameters import ResultSet
from sqlbatis.exceptions import MappingError
from sqlbatis.utils.logging import get_logger
from sqlbatis.utils.text import camel_to_underscore, camelize
from sqlbatis.utils.type_conversion import is_scalar_type, to_value_type

__all__ = ("FieldInfo", "ResultMapper", "get_field_table", "is_mapping_type", "unwrap_optional")

logger = get_logger("core.result")

_MAPPING_TYPES: Final[frozenset[Any]] = frozenset({
    dict,
    Mapping,
    MutableMapping,
    typing.Dict,  # noqa: UP006
    typing.Mapping,  # noqa: UP035
})


def unwrap_optional(annotation: Any) -> Any:
    """Return ``T`` for ``Optional[T]``; other annotations are returned unchanged."""
    origin = get_origin(annotation)
    if origin is typing.Annotated:
        return unwrap_optional(get_args(annotation)[0])
    if origin is Union or (origin is not None and getattr(origin, "__name__", "") == "UnionType"):
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return unwrap_optional(args[0])
    return annotation


def is_mapping_type(result_type: Any) -> bool:
    if result_type is None or result_type in _MAPPING_TYPES:
        return True
    origin = get_origin(result_type)
    return origin is not None and origin in _MAPPING_TYPES


class FieldInfo:
    """A settable field of a record type."""

    __slots__ = ("name", "value_type")

    def __init__(self, name: str, value_type: Any) -> None:
        self.name = name
        self.value_type = value_type

    def __repr__(self) -> str:
        return f"FieldInfo(name={self.name!r}, value_type={self.value_type!r})"


def _is_namedtuple(record_type: type) -> bool:
    return issubclass(record_type, tuple) and hasattr(record_type, "_fields")


def _is_attrs(record_type: type) -> bool:
    return hasattr(record_type, "__attrs_attrs__")


def _is_pydantic(record_type: type) -> bool:
    return hasattr(record_type, "model_fields") or hasattr(record_type, "__fields__")


def _uses_keyword_construction(record_type: type) -> bool:
    return (
        dataclasses.is_dataclass(record_type)
        or _is_namedtuple(record_type)
        or _is_attrs(record_type)
        or _is_pydantic(record_type)
        or is_typeddict(record_type)
    )


def _declared_fields(record_type: type) -> "dict[str, Any]":
    try:
        hints = get_type_hints(record_type)
    except Exception as e:  # noqa: BLE001
        logger.warning(
            "Cannot resolve field annotations of %s, values are assigned without conversion: %s",
            record_type.__qualname__,
            e,
        )
        hints = {name: Any for name in getattr(record_type, "__annotations__", {})}

    if dataclasses.is_dataclass(record_type):
        return {f.name: hints.get(f.name, f.type) for f in dataclasses.fields(record_type)}
    if _is_namedtuple(record_type):
        return {name: hints.get(name, Any) for name in record_type._fields}  # type: ignore[attr-defined]
    if _is_attrs(record_type):
        attributes = record_type.__attrs_attrs__  # type: ignore[attr-defined]
        return {a.name: hints.get(a.name, a.type or Any) for a in attributes}
    if _is_pydantic(record_type):
        model_fields = getattr(record_type, "model_fields", None) or getattr(record_type, "__fields__", {})
        return {name: hints.get(name, Any) for name in model_fields}

    fields = {
        name: hint
        for name, hint in hints.items()
        if not name.startswith("_") and get_origin(hint) is not typing.ClassVar
    }
    for klass in reversed(record_type.__mro__):
        for name in getattr(klass, "__slots__", ()):
            if not name.startswith("_"):
                fields.setdefault(name, Any)
    return fields


@lru_cache(maxsize=256)
def get_field_table(record_type: type) -> "dict[str, FieldInfo]":
    """Build the column lookup table of ``record_type``.

    Each field is reachable by its lower-cased name, the lower-cased
    camel-to-underscore form and the lower-cased underscore-to-camel form.
    """
    table: dict[str, FieldInfo] = {}
    for name, hint in _declared_fields(record_type).items():
        info = FieldInfo(name, unwrap_optional(hint))
        for alias in (name.lower(), camel_to_underscore(name).lower(), camelize(name).lower()):
            table.setdefault(alias, info)
    return table


def _lookup_field(table: "dict[str, FieldInfo]", label: str) -> "Optional[FieldInfo]":
    lowered = label.lower()
    return table.get(lowered) or table.get(camel_to_underscore(label).lower()) or table.get(camelize(lowered).lower())


@mypyc_attr(allow_interpreted_subclasses=True)
class ResultMapper:
    """Turns a :class:`ResultSet` into a list of values of the requested type.

    - Scalar types take column 1 unchanged.
    - Mapping types (``dict``, ``Mapping``, ``dict[str, X]``, ``None``) give
      ``{label: value}`` using the driver's labels verbatim.
    - Anything else is treated as a record type.
    """

    __slots__ = ()

    def handle_result_set(self, result_set: ResultSet, result_type: Any = dict) -> "list[Any]":
        result_type = unwrap_optional(result_type)
        if result_type is Any or is_mapping_type(result_type):
            columns = result_set.column_names
            return [dict(zip(columns, row)) for row in result_set.rows]
        if get_origin(result_type) is not None or not isinstance(result_type, type):
            msg = f"Unsupported result type {result_type!r}"
            raise MappingError(msg)
        if is_scalar_type(result_type) or issubclass(result_type, Enum):
            return [row[0] if row else None for row in result_set.rows]
        return [self.map_row(result_set.column_names, row, result_type) for row in result_set.rows]

    def map_row(self, column_names: "tuple[str, ...]", row: "tuple[Any, ...]", record_type: type) -> Any:
        """Map one row into a new ``record_type`` instance."""
        table = get_field_table(record_type)
        values: dict[str, Any] = {}
        for label, value in zip(column_names, row):
            info = _lookup_field(table, label)
            if info is None:
                continue
            values[info.name] = self._coerce(value, info, record_type, label)
        return self._instantiate(record_type, values)

    @staticmethod
    def _coerce(value: Any, info: FieldInfo, record_type: type, label: str) -> Any:
        if value is None:
            return None
        value_type = info.value_type
        if value_type is Any or not isinstance(value_type, type):
            return value
        try:
            return to_value_type(value, value_type)
        except (TypeError, ValueError):
            logger.warning(
                "Cannot convert column %r value %r to %s for %s.%s; using raw value",
                label,
                value,
                value_type.__name__,
                record_type.__name__,
                info.name,
            )
            return value

    @staticmethod
    def _instantiate(record_type: type, values: "dict[str, Any]") -> Any:
        try:
            if _uses_keyword_construction(record_type):
                return record_type(**values)
            instance = record_type()
            for name, value in values.items():
                setattr(instance, name, value)
        except Exception as e:
            msg = f"Cannot instantiate result type {record_type.__name__}: {e}"
            raise MappingError(msg) from e
        return instance
