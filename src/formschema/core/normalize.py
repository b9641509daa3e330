"""Conversion of a resolved JSON Schema tree into the canonical :class:`Schema` IR.

Only a constrained subset of Draft 2020-12 is accepted. Unknown keywords,
type unions other than ``["T", "null"]`` and ``oneOf`` outside of array
``items`` are rejected with a :class:`NormalizationError` naming the offending
pointer.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any

from formschema.core.dialect import is_vendor_extension
from formschema.core.errors import NormalizationError
from formschema.core.pointer import join_path
from formschema.models import Schema

SUPPORTED_KEYWORDS = frozenset(
    {
        "$schema",
        "$id",
        "$defs",
        "$ref",
        "$anchor",
        "type",
        "properties",
        "required",
        "items",
        "oneOf",
        "enum",
        "const",
        "title",
        "description",
        "default",
        "minimum",
        "maximum",
        "exclusiveMinimum",
        "exclusiveMaximum",
        "minLength",
        "maxLength",
        "pattern",
        "format",
    }
)

SUPPORTED_TYPES = frozenset({"object", "array", "string", "integer", "number", "boolean"})

DISCRIMINATOR_PROPERTY = "_type"


@dataclass(frozen=True)
class NormalizeContext:
    allow_one_of: bool = False
    require_discriminator: bool = False

    def for_items(self) -> NormalizeContext:
        return NormalizeContext(allow_one_of=True)

    def for_one_of_variant(self) -> NormalizeContext:
        return NormalizeContext(require_discriminator=True)

    def for_child(self) -> NormalizeContext:
        return NormalizeContext()


def schema_from_json_schema(node: Any, path: str = "#", ctx: NormalizeContext | None = None) -> Schema:
    if ctx is None:
        ctx = NormalizeContext()
    if node is None:
        raise NormalizationError("schema is nil", path)
    if not isinstance(node, dict):
        raise NormalizationError("schema must be an object", path)
    if "$ref" in node:
        raise NormalizationError(f"unresolved $ref {node['$ref']!r}", path)

    validate_keywords(node, path)
    type_name, nullable = _read_type(node, path)

    out = Schema(
        type=type_name,
        nullable=nullable,
        title=_read_trimmed(node, "title", path),
        description=_read_trimmed(node, "description", path),
        format=_read_trimmed(node, "format", path),
        default=copy.deepcopy(node.get("default")),
        const=copy.deepcopy(node.get("const")),
        extensions=extract_extensions(node),
    )

    if "enum" in node:
        if not isinstance(node["enum"], list):
            raise NormalizationError("enum must be an array", path)
        out.enum = copy.deepcopy(node["enum"])

    if "required" in node:
        out.required = _read_required(node["required"], path)

    _apply_numeric_bounds(out, node, path)
    _apply_string_bounds(out, node, path)

    child_ctx = ctx.for_child()

    if "$defs" in node:
        defs = node["$defs"]
        if not isinstance(defs, dict):
            raise NormalizationError("$defs must be an object", path)
        for key in sorted(defs):
            schema_from_json_schema(defs[key], join_path(path, "$defs", key), child_ctx)

    if "properties" in node:
        props = node["properties"]
        if not isinstance(props, dict):
            raise NormalizationError("properties must be an object", path)
        out.properties = {
            key: schema_from_json_schema(props[key], join_path(path, "properties", key), child_ctx)
            for key in sorted(props)
        }
        nullable_names = {key for key, prop in out.properties.items() if prop.nullable}
        if nullable_names:
            out.required = [name for name in out.required if name not in nullable_names]

    if "items" in node:
        items = node["items"]
        if isinstance(items, list):
            raise NormalizationError("tuple items are not supported", path)
        if not isinstance(items, dict):
            raise NormalizationError("items must be an object", path)
        out.items = schema_from_json_schema(items, join_path(path, "items"), ctx.for_items())

    if "oneOf" in node:
        if not ctx.allow_one_of:
            raise NormalizationError("oneOf is only supported for array items", path)
        variants = node["oneOf"]
        if not isinstance(variants, list):
            raise NormalizationError("oneOf must be an array", path)
        if not variants:
            raise NormalizationError("oneOf must include at least one schema", path)
        out.one_of = [
            schema_from_json_schema(entry, join_path(path, "oneOf", str(idx)), ctx.for_one_of_variant())
            for idx, entry in enumerate(variants)
        ]

    if ctx.require_discriminator:
        apply_discriminator_rules(out, path)

    return out


def validate_keywords(payload: dict[str, Any], path: str) -> None:
    for key in sorted(payload):
        if is_vendor_extension(key) or key in SUPPORTED_KEYWORDS:
            continue
        raise NormalizationError(f"unsupported keyword {key!r}", path)


def extract_extensions(payload: dict[str, Any]) -> dict[str, Any] | None:
    extensions = {key: copy.deepcopy(payload[key]) for key in sorted(payload) if is_vendor_extension(key)}
    return extensions or None


def apply_discriminator_rules(target: Schema, path: str) -> None:
    """Enforce the ``_type`` discriminator on a ``oneOf`` variant, in place."""
    if target.type and target.type != "object":
        raise NormalizationError("oneOf variant must be an object", path)
    if not target.properties:
        raise NormalizationError("oneOf variant missing properties", path)

    prop = target.properties.get(DISCRIMINATOR_PROPERTY)
    if prop is None:
        raise NormalizationError(f"oneOf variant missing {DISCRIMINATOR_PROPERTY} discriminator", path)
    value = discriminator_value(prop)
    if value is None:
        raise NormalizationError(f"oneOf variant {DISCRIMINATOR_PROPERTY} must be a const string", path)
    if not prop.type:
        prop.type = "string"
    elif prop.type != "string":
        raise NormalizationError(f"oneOf variant {DISCRIMINATOR_PROPERTY} must be a string", path)

    if prop.const != value:
        prop.const = value
    prop.extensions = _with_readonly(prop.extensions)

    if DISCRIMINATOR_PROPERTY not in target.required:
        target.required = [*target.required, DISCRIMINATOR_PROPERTY]


def discriminator_value(prop: Schema) -> str | None:
    if isinstance(prop.const, str) and prop.const.strip():
        return prop.const
    if prop.enum is not None and len(prop.enum) == 1:
        only = prop.enum[0]
        if isinstance(only, str) and only.strip():
            return only
    return None


def _with_readonly(extensions: dict[str, Any] | None) -> dict[str, Any]:
    updated = dict(extensions or {})
    nested = updated.get("x-formgen")
    nested = dict(nested) if isinstance(nested, dict) else {}
    nested["readonly"] = True
    updated["x-formgen"] = nested
    return updated


def _read_type(payload: dict[str, Any], path: str) -> tuple[str, bool]:
    """Return ``(type, nullable)``; ``["T", "null"]`` collapses to ``(T, True)``."""
    raw = payload.get("type")
    if raw is None:
        return "", False
    if isinstance(raw, str):
        return _check_type(raw.strip(), path), False
    if isinstance(raw, list):
        if len(raw) == 2 and all(isinstance(entry, str) for entry in raw) and "null" in raw:
            others = [entry.strip() for entry in raw if entry != "null"]
            if len(others) == 1 and others[0]:
                return _check_type(others[0], path), True
        raise NormalizationError(f"unsupported type union {raw!r}", path)
    raise NormalizationError("type must be a string", path)


def _check_type(value: str, path: str) -> str:
    if value and value not in SUPPORTED_TYPES:
        raise NormalizationError(f"unsupported type {value!r}", path)
    return value


def _read_trimmed(payload: dict[str, Any], key: str, path: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise NormalizationError(f"{key} must be a string", path)
    return value.strip()


def _read_required(raw: Any, path: str) -> list[str]:
    if not isinstance(raw, list):
        raise NormalizationError("required must be an array", path)
    required: list[str] = []
    for idx, item in enumerate(raw):
        if not isinstance(item, str) or not item.strip():
            raise NormalizationError(f"required[{idx}] must be a string", path)
        required.append(item)
    return required


def _apply_numeric_bounds(out: Schema, payload: dict[str, Any], path: str) -> None:
    if "minimum" in payload:
        out.minimum = _require_number(payload["minimum"], "minimum", path)
    if "maximum" in payload:
        out.maximum = _require_number(payload["maximum"], "maximum", path)

    if "exclusiveMinimum" in payload:
        raw = payload["exclusiveMinimum"]
        if isinstance(raw, bool):
            # boolean form only toggles an already-set bound
            if out.minimum is not None:
                out.exclusive_minimum = raw
        else:
            number = _require_number(raw, "exclusiveMinimum", path)
            if out.minimum is not None:
                raise NormalizationError("minimum conflicts with exclusiveMinimum", path)
            out.minimum = number
            out.exclusive_minimum = True

    if "exclusiveMaximum" in payload:
        raw = payload["exclusiveMaximum"]
        if isinstance(raw, bool):
            if out.maximum is not None:
                out.exclusive_maximum = raw
        else:
            number = _require_number(raw, "exclusiveMaximum", path)
            if out.maximum is not None:
                raise NormalizationError("maximum conflicts with exclusiveMaximum", path)
            out.maximum = number
            out.exclusive_maximum = True


def _apply_string_bounds(out: Schema, payload: dict[str, Any], path: str) -> None:
    if "minLength" in payload:
        out.min_length = _require_int(payload["minLength"], "minLength", path)
    if "maxLength" in payload:
        out.max_length = _require_int(payload["maxLength"], "maxLength", path)
    if "pattern" in payload:
        pattern = payload["pattern"]
        if not isinstance(pattern, str):
            raise NormalizationError("pattern must be a string", path)
        out.pattern = pattern


def _require_number(value: Any, key: str, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise NormalizationError(f"{key} must be a number", path)
    return float(value)


def _require_int(value: Any, key: str, path: str) -> int:
    if isinstance(value, bool):
        raise NormalizationError(f"{key} must be an integer", path)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise NormalizationError(f"{key} must be an integer", path)
