"""Property extraction from structured secret payloads.

Paths use `.` as the separator and `\\.` for a literal dot inside a key.
Array elements are addressed by numeric index, and `#` yields the array length.

Lookups walk the payload text rather than a decoded copy, so objects and arrays
come back as their verbatim JSON text and integers as their original token.
"""
import json
import re
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

_WHITESPACE = re.compile(r"[ \t\n\r]*")
_INTEGER = re.compile(r"-?[0-9]+\Z")


def _reject_constant(name: str):
    raise ValueError(f"invalid JSON literal {name}")


# NaN and Infinity are not JSON
_decoder = json.JSONDecoder(parse_constant=_reject_constant)

Span = Tuple[int, int]


def parse_json(text: str) -> Any:
    """Decode a complete JSON document."""
    return _decoder.decode(text)


def escape_path(path: str) -> str:
    """Escape every dot so the whole path addresses a single flat key."""
    return path.replace(".", "\\.")


def split_path(path: str) -> List[str]:
    """Split a property path on unescaped dots."""
    parts = []
    current = []
    i = 0
    while i < len(path):
        ch = path[i]
        if ch == "\\" and i + 1 < len(path):
            current.append(path[i + 1])
            i += 2
            continue
        if ch == ".":
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    parts.append("".join(current))
    return parts


def _skip_ws(text: str, pos: int) -> int:
    return _WHITESPACE.match(text, pos).end()


def _object_members(text: str, pos: int) -> Tuple[List[Tuple[str, int, int]], int]:
    """
    Scan the object opening at pos.

    Returns:
        (key, value start, value end) for each member, and the offset after the closing brace
    """
    members = []
    pos = _skip_ws(text, pos + 1)
    if text.startswith("}", pos):
        return members, pos + 1
    while True:
        if not text.startswith('"', pos):
            raise ValueError(f"expected object key at position {pos}")
        key, pos = _decoder.raw_decode(text, pos)
        pos = _skip_ws(text, pos)
        if not text.startswith(":", pos):
            raise ValueError(f"expected ':' at position {pos}")
        start = _skip_ws(text, pos + 1)
        _, end = _decoder.raw_decode(text, start)
        members.append((key, start, end))
        pos = _skip_ws(text, end)
        if text.startswith(",", pos):
            pos = _skip_ws(text, pos + 1)
            continue
        if text.startswith("}", pos):
            return members, pos + 1
        raise ValueError(f"expected ',' or '}}' at position {pos}")


def _array_items(text: str, pos: int) -> Tuple[List[Span], int]:
    """Scan the array opening at pos into element spans."""
    items = []
    pos = _skip_ws(text, pos + 1)
    if text.startswith("]", pos):
        return items, pos + 1
    while True:
        _, end = _decoder.raw_decode(text, pos)
        items.append((pos, end))
        pos = _skip_ws(text, end)
        if text.startswith(",", pos):
            pos = _skip_ws(text, pos + 1)
            continue
        if text.startswith("]", pos):
            return items, pos + 1
        raise ValueError(f"expected ',' or ']' at position {pos}")


def _step(text: str, start: int, segment: str) -> Optional[Span]:
    if text.startswith("{", start):
        members, _ = _object_members(text, start)
        # first occurrence of a duplicated key wins
        for key, value_start, value_end in members:
            if key == segment:
                return value_start, value_end
    elif text.startswith("[", start) and segment.isdigit():
        items, _ = _array_items(text, start)
        idx = int(segment)
        if idx < len(items):
            return items[idx]
    return None


def _format_number(number: float) -> str:
    # shortest round-trip digits, never in exponent form
    return format(Decimal(repr(number)).normalize(), "f")


def _render(text: str, start: int, end: int) -> str:
    raw = text[start:end]
    value = parse_json(raw)
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if _INTEGER.match(raw):
            return raw
        return _format_number(float(value))
    return raw


def lookup(payload: bytes, path: str) -> Optional[str]:
    """
    Resolve a property path against a JSON payload.

    Args:
        payload: Raw secret payload
        path: Property path

    Returns:
        Rendered value, or None when the path does not exist or the payload
        is not JSON
    """
    try:
        text = payload.decode("utf-8")
        parse_json(text)
    except (ValueError, UnicodeDecodeError):
        return None

    start = _skip_ws(text, 0)
    _, end = _decoder.raw_decode(text, start)
    segments = split_path(path)
    for i, segment in enumerate(segments):
        if segment == "#" and i == len(segments) - 1 and text.startswith("[", start):
            items, _ = _array_items(text, start)
            return str(len(items))
        span = _step(text, start, segment)
        if span is None:
            return None
        start, end = span
    return _render(text, start, end)


def get_property(payload: bytes, path: str) -> Optional[str]:
    """
    Resolve a property, preferring a flat key over nested access.

    For payload {"a.b": "v1", "a": {"b": "v2"}} and path "a.b" the flat key wins.
    """
    if path.find(".") > 0:
        value = lookup(payload, escape_path(path))
        if value is not None:
            return value
    return lookup(payload, path)


def split_raw_object(text: str) -> Dict[str, str]:
    """
    Split a JSON object into its keys and the verbatim JSON text of each value.

    Raises:
        ValueError: If the text is not a single JSON object
    """
    pos = _skip_ws(text, 0)
    if not text.startswith("{", pos):
        raise ValueError("payload is not a JSON object")
    members, pos = _object_members(text, pos)
    if _skip_ws(text, pos) != len(text):
        raise ValueError("trailing data after JSON object")
    return {key: text[start:end] for key, start, end in members}
