"""Typed accessors for reading untyped provider documents.

An accessor is a function from a document to an optional value: it
returns None when its path is missing or the value there has the wrong
shape. Field rules are ordered lists of accessors combined with
``first``, so the first accessor that finds a usable value wins.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

T = TypeVar("T")

Accessor = Callable[[Any], T | None]

# Score objects store computed values under one of these keys.
WRAPPER_KEYS = ("total", "value", "permanentTotal")

_INT_TEXT = re.compile(r"^\s*([+-]?\d{1,19})\s*%?\s*$")
_LEVEL_IN_KEY = re.compile(r"\d+")

# SQLite INTEGER range.
INT_MIN = -(2**63)
INT_MAX = 2**63 - 1


def dig(document: Any, *path: str | int) -> Any:
    """Follow ``path`` through nested dicts and lists.

    Returns:
        The value found, or None if any step is missing.
    """
    current = document
    for step in path:
        if isinstance(step, int) and isinstance(current, list):
            if not -len(current) <= step < len(current):
                return None
            current = current[step]
        elif isinstance(step, str) and isinstance(current, dict):
            if step not in current:
                return None
            current = current[step]
        else:
            return None
    return current


def in_range(number: int | None) -> int | None:
    """Return ``number`` if it fits a signed 64-bit column, else None."""
    if number is None or not INT_MIN <= number <= INT_MAX:
        return None
    return number


def as_int(value: Any) -> int | None:
    """Read an integer from a number, numeric text or a score object.

    Values outside the signed 64-bit range count as absent.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return in_range(value)
    if isinstance(value, float):
        return in_range(int(value)) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _INT_TEXT.match(value)
        return in_range(int(match.group(1))) if match else None
    if isinstance(value, dict):
        for key in WRAPPER_KEYS:
            if key in value:
                found = as_int(value[key])
                if found is not None:
                    return found
    return None


def as_text(value: Any) -> str | None:
    """Read non-empty text from a string or a ``{"name": ...}`` object."""
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, dict):
        return as_text(value.get("name"))
    return None


def as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str) and value.strip().lower() in {"true", "yes", "1", "false", "no", "0"}:
        return value.strip().lower() in {"true", "yes", "1"}
    return None


def as_collection(value: Any) -> list | dict | None:
    return value if isinstance(value, (list, dict)) else None


def int_at(*path: str | int) -> Accessor[int]:
    return lambda document: as_int(dig(document, *path))


def text_at(*path: str | int) -> Accessor[str]:
    return lambda document: as_text(dig(document, *path))


def collection_at(*path: str | int) -> Accessor[list | dict]:
    return lambda document: as_collection(dig(document, *path))


def first(
    accessors: Iterable[Accessor[T]],
    document: Any,
    default: T,
    *,
    valid: Callable[[T], bool] | None = None,
) -> T:
    """Return the first usable value any accessor finds, else ``default``."""
    for accessor in accessors:
        value = accessor(document)
        if value is None:
            continue
        if valid is not None and not valid(value):
            continue
        return value
    return default


def first_of_keys(entry: dict[str, Any], keys: Iterable[str], reader: Callable[[Any], T | None]) -> T | None:
    """Read the first of several alternative key names in one object."""
    for key in keys:
        if key in entry:
            value = reader(entry[key])
            if value is not None:
                return value
    return None


def keyed_entries(container: list | dict) -> list[tuple[str | None, Any]]:
    """Flatten an array or a keyed object into ``(key, entry)`` pairs.

    Array items get a None key. Order follows the source.
    """
    if isinstance(container, dict):
        return [(str(key), entry) for key, entry in container.items()]
    return [(None, entry) for entry in container]


def names_in(container: list | dict) -> list[str]:
    """Read entry names from an array or keyed object of entries.

    Entries may be plain strings or objects with a ``name``; in a keyed
    object the key is used when the entry itself has no name.
    """
    names: list[str] = []
    for key, entry in keyed_entries(container):
        name = as_text(entry)
        if name is None and key is not None and entry is not None and entry is not False:
            name = as_text(key)
        if name is not None:
            names.append(name)
    return names


def level_from_key(key: str) -> int | None:
    """Parse a spell level out of keys like ``"3"``, ``"level3"`` or ``"3rd"``."""
    match = _LEVEL_IN_KEY.search(key)
    if match is None or len(match.group(0)) > 2:
        return None
    return int(match.group(0))
