"""Tests for CacheKey composition and equality."""

import pytest

from sqlbatis.core.cache import NULL_CACHE_KEY, CacheKey, component_hash
from sqlbatis.exceptions import CacheError


def test_fresh_key_state() -> None:
    """Test a new key starts from the seed values."""
    key = CacheKey()

    assert key.hashcode == 17
    assert key.checksum == 0
    assert key.update_count == 0
    assert key.components == ()


def test_update_folds_components() -> None:
    """Test hashcode and checksum follow the multiplicative fold."""
    key = CacheKey()
    key.update(None)
    assert key.hashcode == 37 * 17 + 1
    assert key.checksum == 1

    key.update(5)
    assert key.hashcode == 37 * 630 + 5 * 2
    assert key.checksum == 6
    assert key.update_count == 2


def test_hashcode_wraps_to_32_bits() -> None:
    """Test the hashcode wraps like a signed 32-bit integer."""
    key = CacheKey([2**40])

    assert key.hashcode == 629
    assert key.checksum == 2**40


def test_constructor_components_match_updates() -> None:
    """Test building from a list equals updating one by one."""
    built = CacheKey(["app.select", "SELECT 1", 7])
    updated = CacheKey()
    updated.update("app.select")
    updated.update("SELECT 1")
    updated.update(7)

    assert built == updated
    assert hash(built) == hash(updated)


def test_update_all() -> None:
    """Test update_all appends every component in order."""
    key = CacheKey()
    key.update_all(["a", 1, None])

    assert key.components == ("a", 1, None)
    assert key == CacheKey(["a", 1, None])


def test_equal_keys() -> None:
    """Test keys with the same component sequence are equal."""
    assert CacheKey(["stmt", "SELECT * FROM t", 1]) == CacheKey(["stmt", "SELECT * FROM t", 1])


def test_order_matters() -> None:
    """Test the same components in another order give a different key."""
    assert CacheKey(["a", 1]) != CacheKey([1, "a"])


def test_different_values_differ() -> None:
    """Test a different parameter value gives a different key."""
    assert CacheKey(["stmt", 1]) != CacheKey(["stmt", 2])


def test_same_hash_different_type_not_equal() -> None:
    """Test components with equal hashes but different types never compare equal."""
    assert CacheKey([1]).hashcode == CacheKey([True]).hashcode
    assert CacheKey([1]) != CacheKey([True])
    assert CacheKey([[1, 2]]) != CacheKey([(1, 2)])


def test_array_components_compare_elementwise() -> None:
    """Test sequences hash by their elements and compare element by element."""
    assert CacheKey([[1, 2, 3]]).hashcode == 629 + 6
    assert CacheKey([[1, 2, 3]]).hashcode == CacheKey([[3, 2, 1]]).hashcode
    assert CacheKey([[1, 2, 3]]) != CacheKey([[3, 2, 1]])
    assert CacheKey([[1, 2, 3]]) == CacheKey([[1, 2, 3]])


def test_mapping_components() -> None:
    """Test unhashable mapping parameters are supported."""
    first = CacheKey(["stmt", {"id": 1, "name": "alice"}])
    second = CacheKey(["stmt", {"name": "alice", "id": 1}])

    assert first == second
    assert hash(first) == hash(second)
    assert first != CacheKey(["stmt", {"id": 2, "name": "alice"}])


def test_component_hash_of_none_and_sequences() -> None:
    """Test the component hash of None and of nested sequences."""
    assert component_hash(None) == 1
    assert component_hash([1, 2, 3]) == 6
    assert component_hash(()) == 0


def test_copy_is_independent() -> None:
    """Test a copy can be extended without touching the original."""
    key = CacheKey(["stmt", 1])
    clone = key.copy()

    assert clone == key
    clone.update(2)

    assert clone != key
    assert key.update_count == 2
    assert clone.update_count == 3


def test_not_equal_to_other_types() -> None:
    """Test comparison with a non-key object."""
    assert CacheKey(["a"]) != "a"


def test_repr() -> None:
    """Test the textual form lists hashcode, checksum and components."""
    assert repr(CacheKey([None, 5])) == "23320:6:None:5"


def test_null_cache_key_rejects_updates() -> None:
    """Test the null key cannot be updated."""
    with pytest.raises(CacheError, match="null cache key"):
        NULL_CACHE_KEY.update(1)
    with pytest.raises(CacheError):
        NULL_CACHE_KEY.update_all([1, 2])

    assert NULL_CACHE_KEY.update_count == 0


def test_key_usable_in_dict() -> None:
    """Test keys work as dictionary keys."""
    cache = {CacheKey(["stmt", {"id": 1}]): "row"}

    assert cache[CacheKey(["stmt", {"id": 1}])] == "row"
