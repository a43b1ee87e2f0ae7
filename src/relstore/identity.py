"""Identity coercion helpers.

Storage keys are strings; identity values may be numbers or strings. Merge
addressing compares numerically whenever the key parses as a number.
"""

from __future__ import annotations

import re
from typing import Any

_NUMERIC_RE = re.compile(r"^-?\d+(\.\d+)?$")


def identity_key(value: Any) -> str:
    """Coerce an identity (or any scalar) to its storage-key form."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def is_numeric_key(key: Any) -> bool:
    return isinstance(key, str) and bool(_NUMERIC_RE.match(key))


def parse_identity(key: str) -> int | float | str:
    """Parse a storage key back into an identity value.

    Numeric keys become ``int`` (or ``float``); anything else stays a string.
    """
    if not is_numeric_key(key):
        return key
    if "." not in key:
        return int(key)
    number = float(key)
    return int(number) if number.is_integer() else number


def same_identity(value: Any, key: str) -> bool:
    """True when a record's identity value is addressed by ``key``."""
    if value is None or isinstance(value, bool):
        return False
    parsed = parse_identity(key)
    if isinstance(value, (int, float)):
        return isinstance(parsed, (int, float)) and value == parsed
    return identity_key(value) == key
