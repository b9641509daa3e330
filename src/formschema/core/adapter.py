from __future__ import annotations

import logging

from formschema.core.dialect import detect_json_schema, parse_json_schema, validate_dialect
from formschema.core.errors import FormDiscoveryError, LimitExceededError, LoadError
from formschema.core.forms import discover_forms_from_map
from formschema.core.normalize import schema_from_json_schema
from formschema.core.overlay import Overlay, apply_overlay
from formschema.core.ports.loader import DocumentLoader
from formschema.core.resolver import ResolveOptions, Resolver
from formschema.core.source import Document, Source
from formschema.models import Form, FormRef, NormalizeOptions, SchemaIR

logger = logging.getLogger(__name__)

ADAPTER_NAME = "jsonschema"
DEFAULT_FORM_METHOD = "POST"


class JSONSchemaAdapter:
    """Load, resolve and normalize JSON Schema documents into a :class:`SchemaIR`.

    A custom ``resolver`` takes precedence over ``resolve_options``.
    """

    name = ADAPTER_NAME

    def __init__(
        self,
        loader: DocumentLoader | None,
        resolver: Resolver | None = None,
        resolve_options: ResolveOptions | None = None,
    ) -> None:
        self._loader = loader
        self._resolver = resolver or Resolver(loader, resolve_options)

    def detect(self, source: Source, raw: bytes) -> bool:
        return detect_json_schema(raw)

    async def load(self, source: Source) -> Document:
        if self._loader is None:
            raise LoadError("loader is not configured", source.location)
        document = await self._loader.load(source)
        return Document(document.source, document.raw)

    async def normalize(
        self,
        document: Document,
        options: NormalizeOptions | None = None,
        overlay: Overlay | None = None,
    ) -> SchemaIR:
        options = options or NormalizeOptions()
        payload = parse_json_schema(document.raw, document.location)
        validate_dialect(payload, document.location)

        try:
            resolved = await self._resolver.resolve(document, payload)
            if overlay is not None:
                apply_overlay(resolved, overlay)
            canonical = schema_from_json_schema(resolved, "#")
        except RecursionError:
            raise LimitExceededError("schema nesting is too deep", document.location) from None

        refs = discover_forms_from_map(payload, options.content_type_slug, options.default_form_suffix)
        if options.form_id:
            refs = [ref for ref in refs if ref.id == options.form_id][:1]
            if not refs:
                raise FormDiscoveryError(f"form {options.form_id!r} not found", document.location)

        ir = SchemaIR()
        for idx, ref in enumerate(refs):
            # each form owns an independent schema tree
            schema = canonical if idx == 0 else schema_from_json_schema(resolved, "#")
            ir.forms[ref.id] = Form(
                id=ref.id,
                method=DEFAULT_FORM_METHOD,
                endpoint=derive_form_endpoint(options.content_type_slug),
                summary=ref.summary.strip() or ref.title.strip(),
                description=ref.description,
                schema_=schema,
            )
        logger.debug("Normalized %s into %d form(s)", document.location, len(ir.forms))
        return ir

    def forms(self, ir: SchemaIR) -> list[FormRef]:
        return ir.form_refs()


def derive_form_endpoint(slug: str) -> str:
    value = slug.strip()
    if not value:
        return "/"
    return value if value.startswith("/") else "/" + value
