"""Cache keys and the per-session local cache.

Components:
- CacheKey: Order-sensitive composite key folded from statement id, SQL
  template and parameter value
- NULL_CACHE_KEY: Sentinel key that refuses updates
- Cache: Protocol shared by cache implementations
- PerpetualCache: Unbounded dictionary-backed cache used as the local cache
"""

import dataclasses
from collections.abc import Iterable, Mapping
from typing import Any, Final, Optional

from mypy_extensions import mypyc_attr
from typing_extensions import Protocol, runtime_checkable

from sqlbatis.exceptions import CacheError
from sqlbatis.utils.logging import get_logger

__all__ = ("NULL_CACHE_KEY", "Cache", "CacheKey", "PerpetualCache", "component_hash")

logger = get_logger("core.cache")

DEFAULT_MULTIPLIER: Final = 37
DEFAULT_HASHCODE: Final = 17
NONE_HASH: Final = 1

_INT32_MASK: Final = 0xFFFFFFFF
_INT64_MASK: Final = 0xFFFFFFFFFFFFFFFF


def _to_int32(value: int) -> int:
    value &= _INT32_MASK
    return value - 0x100000000 if value & 0x80000000 else value


def _to_int64(value: int) -> int:
    value &= _INT64_MASK
    return value - 0x10000000000000000 if value & 0x8000000000000000 else value


def component_hash(component: Any) -> int:
    """Hash a single key component.

    ``None`` hashes to 1. Sequences and sets hash as the sum of their element
    hashes, mappings as the sum of their key/value pair hashes. Unhashable
    objects fall back to their dataclass fields or attribute dictionary.
    """
    if component is None:
        return NONE_HASH
    if isinstance(component, (str, bytes)):
        return hash(component)
    if isinstance(component, Mapping):
        return _to_int64(sum(hash(k) ^ component_hash(v) for k, v in component.items()))
    if isinstance(component, (list, tuple, set, frozenset)):
        return _to_int64(sum(component_hash(item) for item in component))
    try:
        return hash(component)
    except TypeError:
        pass
    if dataclasses.is_dataclass(component) and not isinstance(component, type):
        return _to_int64(
            hash(type(component).__qualname__)
            + sum(component_hash(getattr(component, f.name)) for f in dataclasses.fields(component))
        )
    state = getattr(component, "__dict__", None)
    if state is not None:
        return _to_int64(hash(type(component).__qualname__) + component_hash(state))
    return hash(type(component).__qualname__)


def _components_equal(left: Any, right: Any) -> bool:
    """Ordinal deep comparison; ``1`` and ``True`` are distinct, as are lists and tuples."""
    if left is right:
        return True
    if type(left) is not type(right):
        return False
    if isinstance(left, (list, tuple)):
        return len(left) == len(right) and all(_components_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, Mapping):
        if len(left) != len(right):
            return False
        for key, value in left.items():
            if key not in right or not _components_equal(value, right[key]):
                return False
        return True
    try:
        return bool(left == right)
    except Exception:  # noqa: BLE001
        return False


@mypyc_attr(allow_interpreted_subclasses=True)
class CacheKey:
    """Composite, order-sensitive cache key.

    Each :meth:`update` folds one component into a running hash code
    (32-bit, multiplier 37, seed 17) and checksum (64-bit). Keys compare equal
    only when their hash code, checksum, update count and every component
    match in order.

    Example:
        >>> key = CacheKey()
        >>> key.update_all(["UserMapper.selectById", "SELECT ...", 1])
        >>> key.update_count
        3
    """

    __slots__ = ("_checksum", "_components", "_count", "_hashcode", "_multiplier")

    def __init__(self, components: "Optional[Iterable[Any]]" = None) -> None:
        self._multiplier = DEFAULT_MULTIPLIER
        self._hashcode = DEFAULT_HASHCODE
        self._checksum = 0
        self._count = 0
        self._components: list[Any] = []
        if components is not None:
            self.update_all(components)

    @property
    def hashcode(self) -> int:
        return self._hashcode

    @property
    def checksum(self) -> int:
        return self._checksum

    @property
    def update_count(self) -> int:
        return self._count

    @property
    def components(self) -> tuple[Any, ...]:
        return tuple(self._components)

    def update(self, component: Any) -> None:
        """Fold one component into the key."""
        base = component_hash(component)
        self._count += 1
        self._checksum = _to_int64(self._checksum + base)
        base = _to_int64(base * self._count)
        self._hashcode = _to_int32(self._multiplier * self._hashcode + base)
        self._components.append(component)

    def update_all(self, components: "Iterable[Any]") -> None:
        for component in components:
            self.update(component)

    def copy(self) -> "CacheKey":
        """Return an independent key with the same state."""
        clone = CacheKey()
        clone._multiplier = self._multiplier
        clone._hashcode = self._hashcode
        clone._checksum = self._checksum
        clone._count = self._count
        clone._components = list(self._components)
        return clone

    def __hash__(self) -> int:
        return self._hashcode

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, CacheKey):
            return False
        if (
            self._hashcode != other._hashcode
            or self._checksum != other._checksum
            or self._count != other._count
            or len(self._components) != len(other._components)
        ):
            return False
        return all(_components_equal(a, b) for a, b in zip(self._components, other._components))

    def __repr__(self) -> str:
        parts = [str(self._hashcode), str(self._checksum), *(repr(c) for c in self._components)]
        return ":".join(parts)


@mypyc_attr(allow_interpreted_subclasses=True)
class _NullCacheKey(CacheKey):
    """Key that refuses every update."""

    __slots__ = ()

    def update(self, component: Any) -> None:
        msg = "Not allowed to update a null cache key instance."
        raise CacheError(msg)

    def update_all(self, components: "Iterable[Any]") -> None:
        msg = "Not allowed to update a null cache key instance."
        raise CacheError(msg)

    def __repr__(self) -> str:
        return "NULL_CACHE_KEY"


NULL_CACHE_KEY: Final[CacheKey] = _NullCacheKey()


@runtime_checkable
class Cache(Protocol):
    """Minimal cache contract used by executors."""

    @property
    def id(self) -> str: ...

    def get(self, key: Any) -> Any: ...

    def put(self, key: Any, value: Any) -> None: ...

    def remove(self, key: Any) -> Any: ...

    def clear(self) -> None: ...

    def size(self) -> int: ...


@mypyc_attr(allow_interpreted_subclasses=False)
class PerpetualCache:
    """Unbounded dictionary-backed cache with no eviction.

    Not thread-safe; each session owns exactly one instance.
    """

    __slots__ = ("_cache", "_id")

    def __init__(self, cache_id: str) -> None:
        if not cache_id:
            msg = "Cache instances require an id."
            raise CacheError(msg)
        self._id = cache_id
        self._cache: dict[Any, Any] = {}

    @property
    def id(self) -> str:
        return self._id

    def get(self, key: Any) -> Any:
        """Return the cached value or ``None``."""
        return self._cache.get(key)

    def put(self, key: Any, value: Any) -> None:
        self._cache[key] = value

    def remove(self, key: Any) -> Any:
        """Remove ``key`` and return its previous value, if any."""
        return self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()

    def size(self) -> int:
        return len(self._cache)

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: object) -> bool:
        return key in self._cache

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PerpetualCache):
            return NotImplemented
        return self._id == other._id

    def __hash__(self) -> int:
        return hash(self._id)

    def __repr__(self) -> str:
        return f"PerpetualCache(id={self._id!r}, size={len(self._cache)})"
