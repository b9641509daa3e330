"""UI overlay documents: extension overrides addressed by JSON Pointer.

An overlay looks like::

    {
      "$schema": "x-ui-overlay/v1",
      "overrides": [
        {"path": "/properties/title", "x-formgen": {"widget": "textarea"}}
      ]
    }

``x-formgen`` and ``x-admin`` objects are merged into the target's existing
extension object; ``x-formgen-*`` / ``x-admin-*`` single values overwrite.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from formschema.core.errors import OverlayError
from formschema.core.pointer import parse_index, unescape_token

OVERLAY_SCHEMA_ID = "x-ui-overlay/v1"

_MERGED_KEYS = ("x-formgen", "x-admin")
_SINGLE_VALUE_PREFIXES = ("x-formgen-", "x-admin-")


@dataclass
class OverlayOverride:
    path: str
    extensions: dict[str, Any] = field(default_factory=dict)


@dataclass
class Overlay:
    overrides: list[OverlayOverride] = field(default_factory=list)


def parse_overlay(raw: bytes | str) -> Overlay:
    if not raw.strip():
        raise OverlayError("overlay document is empty")
    try:
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise OverlayError(f"parse overlay: {exc}") from exc
    if not isinstance(payload, dict):
        raise OverlayError("overlay document must be an object")

    schema_id = payload.get("$schema")
    schema_id = schema_id.strip().removesuffix("#") if isinstance(schema_id, str) else ""
    if not schema_id:
        raise OverlayError("$schema is required")
    if schema_id != OVERLAY_SCHEMA_ID:
        raise OverlayError(f"unsupported $schema {schema_id!r}")

    if "overrides" not in payload:
        return Overlay()
    entries = payload["overrides"]
    if not isinstance(entries, list):
        raise OverlayError("overrides must be an array")

    overrides: list[OverlayOverride] = []
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise OverlayError(f"overrides[{idx}] must be an object")
        path = entry.get("path")
        path = path.strip() if isinstance(path, str) else ""
        if not path:
            raise OverlayError(f"overrides[{idx}].path is required")

        extensions: dict[str, Any] = {}
        for key, value in entry.items():
            if key in _MERGED_KEYS:
                if not isinstance(value, dict):
                    raise OverlayError(f"{key} must be an object", path)
                extensions[key] = value
            elif key.startswith(_SINGLE_VALUE_PREFIXES):
                extensions[key] = value

        if extensions:
            overrides.append(OverlayOverride(path=path, extensions=extensions))

    return Overlay(overrides=overrides)


def apply_overlay(payload: dict[str, Any], overlay: Overlay) -> None:
    """Mutate ``payload`` in place with every override of ``overlay``."""
    if not payload or not overlay.overrides:
        return
    for override in overlay.overrides:
        target = resolve_overlay_target(payload, override.path)
        for key, value in override.extensions.items():
            if key in _MERGED_KEYS:
                existing = target.get(key)
                merged = dict(existing) if isinstance(existing, dict) else {}
                merged.update(value)
                target[key] = merged
            else:
                target[key] = value


def resolve_overlay_target(root: dict[str, Any], pointer: str) -> dict[str, Any]:
    trimmed = pointer.strip().removeprefix("#")
    if trimmed in ("", "/"):
        return root
    if not trimmed.startswith("/"):
        raise OverlayError("path must be a JSON pointer", pointer)

    current: Any = root
    for raw_token in trimmed.split("/")[1:]:
        token = unescape_token(raw_token)
        if isinstance(current, dict) and token in current:
            current = current[token]
        elif isinstance(current, list) and (index := parse_index(token, len(current))) is not None:
            current = current[index]
        else:
            raise OverlayError("path not found", pointer)

    if not isinstance(current, dict):
        raise OverlayError("path does not resolve to an object", pointer)
    return current
