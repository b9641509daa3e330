"""JSON Pointer (RFC 6901) helpers shared by the resolver, overlay and normalizer."""

from __future__ import annotations

from typing import Any
from urllib.parse import unquote


def escape_token(value: str) -> str:
    return value.replace("~", "~0").replace("/", "~1")


def unescape_token(value: str) -> str:
    return unquote(value).replace("~1", "/").replace("~0", "~")


def join_path(path: str, *segments: str) -> str:
    """Append escaped segments to a ``#``-rooted pointer fragment."""
    if path in ("", "#"):
        path = "#"
    for segment in segments:
        if segment == "":
            continue
        path = f"{path}/{escape_token(segment)}"
    return path


def parse_index(token: str, length: int) -> int | None:
    if not token or not token.isdigit() or not token.isascii():
        return None
    index = int(token)
    if index >= length:
        return None
    return index


def walk(root: Any, pointer: str) -> Any:
    """Return the node addressed by ``pointer`` (which must start with ``/``).

    Raises ``KeyError`` when a segment does not exist and ``TypeError`` when a
    segment traverses a scalar.
    """
    current = root
    for raw_token in pointer.split("/")[1:]:
        token = unescape_token(raw_token)
        if isinstance(current, dict):
            if token not in current:
                raise KeyError(token)
            current = current[token]
        elif isinstance(current, list):
            index = parse_index(token, len(current))
            if index is None:
                raise KeyError(token)
            current = current[index]
        else:
            raise TypeError(token)
    return current
