"""Form identifier discovery for JSON Schema documents."""

from __future__ import annotations

import json
from typing import Any

from formschema.core.dialect import read_string
from formschema.core.errors import FormDiscoveryError
from formschema.models import FormRef

DEFAULT_FORM_SUFFIX = ".edit"


def discover_forms_from_bytes(raw: bytes, slug: str = "", form_id_suffix: str = "") -> list[FormRef]:
    if not raw:
        raise FormDiscoveryError("raw schema is empty")
    try:
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FormDiscoveryError(f"parse schema: {exc}") from exc
    return discover_forms_from_map(payload, slug, form_id_suffix)


def discover_forms_from_map(payload: Any, slug: str = "", form_id_suffix: str = "") -> list[FormRef]:
    """Derive form refs from ``x-formgen.forms``, then ``$id``, then ``slug``."""
    if not isinstance(payload, dict):
        raise FormDiscoveryError("schema must be an object")

    refs = _forms_from_extension(payload)
    if refs is not None:
        return refs

    suffix = resolve_suffix(form_id_suffix)
    schema_id = read_string(payload, "$id").strip()
    if schema_id:
        return [FormRef(id=schema_id + suffix)]

    slug = slug.strip()
    if not slug:
        raise FormDiscoveryError("slug required to derive form id")
    return [FormRef(id=slug + suffix)]


def _forms_from_extension(payload: dict[str, Any]) -> list[FormRef] | None:
    if "x-formgen" not in payload:
        return None
    meta = payload["x-formgen"]
    if not isinstance(meta, dict):
        raise FormDiscoveryError("x-formgen must be an object", "#/x-formgen")
    if "forms" not in meta:
        return None

    entries = meta["forms"]
    if not isinstance(entries, list):
        raise FormDiscoveryError("x-formgen.forms must be an array", "#/x-formgen/forms")
    if not entries:
        raise FormDiscoveryError("x-formgen.forms is empty", "#/x-formgen/forms")

    refs: list[FormRef] = []
    for idx, entry in enumerate(entries):
        where = f"#/x-formgen/forms/{idx}"
        if not isinstance(entry, dict):
            raise FormDiscoveryError(f"x-formgen.forms[{idx}] must be an object", where)
        form_id = read_string(entry, "id").strip()
        if not form_id:
            raise FormDiscoveryError(f"x-formgen.forms[{idx}].id is required", where)
        refs.append(
            FormRef(
                id=form_id,
                title=read_string(entry, "title").strip(),
                summary=read_string(entry, "summary").strip(),
                description=read_string(entry, "description").strip(),
            )
        )
    return refs


def resolve_suffix(suffix: str) -> str:
    value = suffix.strip()
    if not value:
        return DEFAULT_FORM_SUFFIX
    return value if value.startswith(".") else "." + value
