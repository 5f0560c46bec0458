"""Tests for text, type conversion and import helpers."""

import datetime
from decimal import Decimal
from uuid import UUID

import pytest

from sqlbatis.utils.module_loader import import_string
from sqlbatis.utils.serializers import from_json, to_json
from sqlbatis.utils.text import camel_to_underscore, camelize
from sqlbatis.utils.type_conversion import is_scalar_type, to_value_type


@pytest.mark.parametrize(
    ("value", "expected"),
    [("user_name", "userName"), ("id", "id"), ("created_at_utc", "createdAtUtc"), ("userName", "userName")],
)
def test_camelize(value: str, expected: str) -> None:
    assert camelize(value) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [("userName", "user_name"), ("UserName", "user_name"), ("id", "id"), ("userID", "user_i_d"), ("", "")],
)
def test_camel_to_underscore(value: str, expected: str) -> None:
    assert camel_to_underscore(value) == expected


@pytest.mark.parametrize(
    ("value", "value_type", "expected"),
    [
        ("42", int, 42),
        ("42.0", int, 42),
        (Decimal("3"), int, 3),
        (1, float, 1.0),
        ("2.5", float, 2.5),
        (1, bool, True),
        (0, bool, False),
        ("yes", bool, True),
        (5, str, "5"),
        (b"abc", str, "abc"),
        (2.5, Decimal, Decimal("2.5")),
        ("2024-01-15", datetime.date, datetime.date(2024, 1, 15)),
        ("2024-01-15T10:30:00", datetime.datetime, datetime.datetime(2024, 1, 15, 10, 30)),
        (datetime.datetime(2024, 1, 15, 10, 30), datetime.date, datetime.date(2024, 1, 15)),
        ("10:30:00", datetime.time, datetime.time(10, 30)),
        ("12345678-1234-5678-1234-567812345678", UUID, UUID("12345678-1234-5678-1234-567812345678")),
        ("abc", bytes, b"abc"),
    ],
)
def test_to_value_type(value: object, value_type: type, expected: object) -> None:
    assert to_value_type(value, value_type) == expected


def test_to_value_type_identity() -> None:
    value = Decimal("1.5")

    assert to_value_type(value, Decimal) is value


def test_bool_is_not_passed_through_as_int() -> None:
    result = to_value_type(True, int)

    assert result == 1
    assert type(result) is int


@pytest.mark.parametrize(("value", "value_type"), [("abc", int), ("abc", float), (object(), bool), ("x", UUID)])
def test_to_value_type_failures(value: object, value_type: type) -> None:
    with pytest.raises(TypeError, match="Cannot convert"):
        to_value_type(value, value_type)


def test_is_scalar_type() -> None:
    assert is_scalar_type(int)
    assert is_scalar_type(datetime.datetime)
    assert not is_scalar_type(dict)
    assert not is_scalar_type("int")


def test_import_string() -> None:
    assert import_string("decimal.Decimal") is Decimal
    assert import_string("datetime:datetime.now") == datetime.datetime.now
    with pytest.raises(ImportError):
        import_string("decimal.Missing")
    with pytest.raises(ImportError):
        import_string("datetime:nothing")


class Token:
    def __str__(self) -> str:
        return "token"


def test_to_json_encodes_driver_values() -> None:
    payload = {"amount": Decimal("1.50"), "day": datetime.date(2024, 1, 15), "token": Token()}

    assert from_json(to_json(payload)) == {"amount": "1.50", "day": "2024-01-15", "token": "token"}
    assert to_json([1, None], as_bytes=True) == b"[1,null]"
