"""Identifier case conversion helpers used by result mapping."""

from functools import lru_cache

__all__ = (
    "camel_to_underscore",
    "camelize",
)


@lru_cache(maxsize=256)
def camelize(string: str) -> str:
    """Convert a string to camel case.

    Args:
        string (str): The string to convert.

    Returns:
        str: The converted string.
    """
    return "".join(word if index == 0 else word.capitalize() for index, word in enumerate(string.split("_")))


@lru_cache(maxsize=256)
def camel_to_underscore(string: str) -> str:
    """Convert a camel-case identifier to underscore-separated form.

    Every upper-case character after the first starts a new segment, so
    ``userName`` becomes ``user_name`` and ``userID`` becomes ``user_i_d``.

    Args:
        string: The identifier to convert.

    Returns:
        The lower-cased, underscore-separated identifier.
    """
    if not string:
        return string
    parts = [string[0].lower()]
    for char in string[1:]:
        if char.isupper():
            parts.append("_")
            parts.append(char.lower())
        else:
            parts.append(char)
    return "".join(parts)


