import json
from typing import Any

from formschema.core.errors import DialectError

DRAFT_2020_12_URIS = frozenset(
    {
        "https://json-schema.org/draft/2020-12/schema",
        "http://json-schema.org/draft/2020-12/schema",
    }
)


def read_string(payload: dict[str, Any] | None, key: str) -> str:
    """Return ``payload[key]`` when it is a string, otherwise ``""``."""
    if not payload:
        return ""
    value = payload.get(key)
    return value if isinstance(value, str) else ""


def is_vendor_extension(key: str) -> bool:
    return key.strip().lower().startswith("x-")


def parse_json_schema(raw: bytes, location: str = "") -> dict[str, Any]:
    trimmed = raw.strip()
    if not trimmed:
        raise DialectError("raw schema is empty", location)
    try:
        payload = json.loads(trimmed)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DialectError(f"parse schema: {exc}", location) from exc
    if not isinstance(payload, dict):
        raise DialectError("schema must be a JSON object", location)
    return payload


def is_draft_2020_12(value: str) -> bool:
    return value.strip().removesuffix("#") in DRAFT_2020_12_URIS


def validate_dialect(payload: dict[str, Any], location: str = "") -> None:
    value = read_string(payload, "$schema").strip()
    if not value:
        raise DialectError("$schema is required", location)
    if not is_draft_2020_12(value):
        raise DialectError(f"unsupported $schema {value!r}", location)


def detect_json_schema(raw: bytes) -> bool:
    """Heuristically report whether ``raw`` looks like a JSON Schema document."""
    trimmed = raw.strip()
    if not trimmed.startswith(b"{"):
        return False
    try:
        payload = json.loads(trimmed)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return False
    if not isinstance(payload, dict):
        return False
    if "openapi" in payload or "swagger" in payload:
        return False
    return any(key in payload for key in ("$schema", "$id", "$defs", "properties", "type", "items"))
