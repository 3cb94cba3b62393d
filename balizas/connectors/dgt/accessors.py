"""Balizas V16 — Accessors over loosely-parsed feed trees.

Decoded feed documents may or may not keep namespace prefixes
(``"sit:situation"`` vs ``"situation"``) and any element may be a single
object or a list. These helpers hide both ambiguities so extraction code can
be written as ordered lists of paths.
"""

import math
from typing import Any, Callable, Iterable, List, Optional, Sequence

from balizas.models.beacon_models import NOT_AVAILABLE

Accessor = Callable[[Any], Any]


def as_list(value: Any) -> List[Any]:
    """None → [], list → list, anything else → [value]."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def get_key(node: Any, name: str) -> Any:
    """Look up ``name`` in a dict, accepting any ``prefix:name`` spelling."""
    if not isinstance(node, dict):
        return None
    if name in node:
        return node[name]
    suffix = f":{name}"
    for key, value in node.items():
        if isinstance(key, str) and key.endswith(suffix):
            return value
    return None


def scalar(value: Any) -> Any:
    """Unwrap a text node decoded with attributes (``{"#text": ..., "@lang": ...}``)."""
    if isinstance(value, dict):
        return value.get("#text")
    if isinstance(value, list):
        return scalar(value[0]) if value else None
    return value


def path(*names: str) -> Accessor:
    """Build an accessor walking nested keys; lists take their first element."""

    def _walk(node: Any) -> Any:
        current = node
        for name in names:
            if isinstance(current, list):
                current = current[0] if current else None
            current = get_key(current, name)
            if current is None:
                return None
        return current

    _walk.__name__ = "path:" + ".".join(names)
    return _walk


def is_missing(value: Any) -> bool:
    return value is None or value == "" or value == NOT_AVAILABLE


def first_present(node: Any, accessors: Sequence[Accessor]) -> Any:
    """Try accessors in order; return the first non-missing scalar value."""
    for accessor in accessors:
        value = scalar(accessor(node))
        if not is_missing(value):
            return value
    return None


def first_text(
    node: Any, accessors: Sequence[Accessor], default: str = NOT_AVAILABLE
) -> str:
    """Like first_present but always a string, falling back to the sentinel."""
    value = first_present(node, accessors)
    if value is None:
        return default
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def first_key(record: Any, keys: Iterable[str]) -> Any:
    """First non-missing value among alternative key spellings of a flat record."""
    return first_present(record, [path(k) for k in keys])


def parse_coordinate(value: Any) -> Optional[float]:
    """Parse a latitude/longitude. Zero, NaN and garbage are all invalid."""
    value = scalar(value)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number == 0:
        return None
    return number
