"""Scalar value coercion used when assigning column values to record fields."""

import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Final, cast
from uuid import UUID

from typing_extensions import TypeVar

__all__ = ("SCALAR_TYPES", "is_scalar_type", "to_value_type")

ValueT = TypeVar("ValueT")

SCALAR_TYPES: Final[frozenset[type]] = frozenset({
    int,
    float,
    str,
    bool,
    bytes,
    Decimal,
    datetime.datetime,
    datetime.date,
    datetime.time,
    UUID,
})

_BOOL_TRUE_VALUES: Final[frozenset[str]] = frozenset({"true", "1", "yes", "y", "t", "on"})


def is_scalar_type(value_type: Any) -> bool:
    """Return True for types mapped from a single column."""
    return isinstance(value_type, type) and (value_type in SCALAR_TYPES or issubclass(value_type, tuple(SCALAR_TYPES)))


def _convert_to_int(value: Any) -> int:
    if isinstance(value, (bool, int, float, Decimal)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            # "42.0"
            try:
                return int(float(value))
            except ValueError:
                pass
    msg = f"Cannot convert {type(value).__name__} to int"
    raise TypeError(msg)


def _convert_to_float(value: Any) -> float:
    if isinstance(value, (bool, int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            pass
    msg = f"Cannot convert {type(value).__name__} to float"
    raise TypeError(msg)


def _convert_to_bool(value: Any) -> bool:
    """Numeric 0 is False, any other number is True."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _BOOL_TRUE_VALUES
    msg = f"Cannot convert {type(value).__name__} to bool"
    raise TypeError(msg)


def _convert_to_datetime(value: Any) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.datetime.fromisoformat(value)
        except ValueError:
            pass
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time.min)
    msg = f"Cannot convert {type(value).__name__} to datetime"
    raise TypeError(msg)


def _convert_to_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        try:
            return datetime.date.fromisoformat(value)
        except ValueError:
            try:
                return datetime.datetime.fromisoformat(value).date()
            except ValueError:
                pass
    msg = f"Cannot convert {type(value).__name__} to date"
    raise TypeError(msg)


def _convert_to_time(value: Any) -> datetime.time:
    if isinstance(value, datetime.datetime):
        return value.time()
    if isinstance(value, datetime.time):
        return value
    if isinstance(value, str):
        try:
            return datetime.time.fromisoformat(value)
        except ValueError:
            pass
    msg = f"Cannot convert {type(value).__name__} to time"
    raise TypeError(msg)


def _convert_to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float, str)) and not isinstance(value, bool):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            pass
    msg = f"Cannot convert {type(value).__name__} to Decimal"
    raise TypeError(msg)


def _convert_to_uuid(value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value)
        except ValueError:
            pass
    if isinstance(value, bytes) and len(value) == 16:  # noqa: PLR2004
        return UUID(bytes=value)
    msg = f"Cannot convert {type(value).__name__} to UUID"
    raise TypeError(msg)


def _convert_to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode()
    msg = f"Cannot convert {type(value).__name__} to bytes"
    raise TypeError(msg)


def to_value_type(value: Any, value_type: "type[ValueT]") -> "ValueT":
    """Convert a database value to the specified Python type.

    When the value is already the correct type it is returned as-is.

    Args:
        value: The value to convert.
        value_type: The target Python type.

    Raises:
        TypeError: If the value cannot be converted to the specified type.

    Returns:
        The converted value.

    Examples:
        >>> to_value_type("42", int)
        42
        >>> to_value_type(0, bool)
        False
    """
    # bool is a subclass of int and datetime a subclass of date
    if value_type in (int, bool, datetime.date, datetime.time):
        if type(value) is value_type:
            return cast("ValueT", value)
    elif isinstance(value, value_type):
        return value

    if value_type is int:
        return cast("ValueT", _convert_to_int(value))
    if value_type is float:
        return cast("ValueT", _convert_to_float(value))
    if value_type is str:
        return cast("ValueT", value.decode() if isinstance(value, bytes) else str(value))
    if value_type is bool:
        return cast("ValueT", _convert_to_bool(value))
    if value_type is datetime.datetime:
        return cast("ValueT", _convert_to_datetime(value))
    if value_type is datetime.date:
        return cast("ValueT", _convert_to_date(value))
    if value_type is datetime.time:
        return cast("ValueT", _convert_to_time(value))
    if value_type is Decimal:
        return cast("ValueT", _convert_to_decimal(value))
    if value_type is UUID:
        return cast("ValueT", _convert_to_uuid(value))
    if value_type is bytes:
        return cast("ValueT", _convert_to_bytes(value))

    try:
        return value_type(value)  # type: ignore[call-arg]
    except (TypeError, ValueError) as e:
        msg = f"Cannot convert {type(value).__name__} to {getattr(value_type, '__name__', value_type)}"
        raise TypeError(msg) from e
