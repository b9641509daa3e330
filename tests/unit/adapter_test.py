"""Unit tests for the JSON Schema adapter."""

import json
from pathlib import Path
from typing import Any

import pytest

from formschema.core.adapter import ADAPTER_NAME, JSONSchemaAdapter, derive_form_endpoint
from formschema.core.errors import (
    DialectError,
    FormDiscoveryError,
    LimitExceededError,
    LoadError,
    NormalizationError,
    RefCycleError,
)
from formschema.core.overlay import parse_overlay
from formschema.core.source import Document, source_from_file, source_from_fs
from formschema.loaders import DirectoryLoader, FileLoader
from formschema.models import FormRef, NormalizeOptions
from tests.conftest import DRAFT_2020_12, MemoryLoader, schema_doc, to_bytes


def _document(payload: Any, location: str = "post.json") -> Document:
    raw = payload if isinstance(payload, bytes) else to_bytes(payload)
    return Document(source_from_fs(location), raw)


POST_SCHEMA = schema_doc(
    **{"$id": "post", "$defs": {"title": {"type": "string", "minLength": 1}}},
    type="object",
    required=["title"],
    properties={
        "title": {"$ref": "#/$defs/title", "title": "Title"},
        "subtitle": {"type": ["string", "null"]},
    },
)


class TestDetect:
    def test_name(self) -> None:
        assert JSONSchemaAdapter(None).name == ADAPTER_NAME == "jsonschema"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (b'{"$schema": "https://json-schema.org/draft/2020-12/schema"}', True),
            (b'  {"type": "object"}', True),
            (b'{"openapi": "3.1.0", "type": "object"}', False),
            (b'{"name": "x"}', False),
            (b"[1, 2]", False),
            (b"{broken", False),
            (b"", False),
        ],
    )
    def test_detect(self, raw: bytes, expected: bool) -> None:
        assert JSONSchemaAdapter(None).detect(source_from_fs("x.json"), raw) is expected


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_delegates_to_loader(self, memory_loader: MemoryLoader) -> None:
        memory_loader.add("post.json", POST_SCHEMA)
        doc = await JSONSchemaAdapter(memory_loader).load(source_from_fs("post.json"))
        assert json.loads(doc.raw) == POST_SCHEMA
        assert memory_loader.calls["post.json"] == 1

    @pytest.mark.asyncio
    async def test_load_without_loader(self) -> None:
        with pytest.raises(LoadError, match="loader is not configured"):
            await JSONSchemaAdapter(None).load(source_from_fs("post.json"))


class TestNormalize:
    @pytest.mark.asyncio
    async def test_default_form_from_id(self) -> None:
        ir = await JSONSchemaAdapter(None).normalize(_document(POST_SCHEMA), NormalizeOptions(content_type_slug="posts"))
        assert list(ir.forms) == ["post.edit"]

        form = ir.form("post.edit")
        assert form is not None
        assert form.method == "POST"
        assert form.endpoint == "/posts"
        schema = form.schema_
        assert schema.type == "object"
        assert schema.required == ["title"]
        assert schema.properties is not None
        assert schema.properties["title"].title == "Title"
        assert schema.properties["title"].min_length == 1
        assert schema.properties["subtitle"].nullable is True

    @pytest.mark.asyncio
    async def test_slug_fallback_and_custom_suffix(self) -> None:
        payload = schema_doc(type="object", properties={"name": {"type": "string"}})
        ir = await JSONSchemaAdapter(None).normalize(
            _document(payload), NormalizeOptions(content_type_slug="pages", default_form_suffix="create")
        )
        assert list(ir.forms) == ["pages.create"]

    @pytest.mark.asyncio
    async def test_explicit_forms_share_schema_without_aliasing(self) -> None:
        payload = schema_doc(
            type="object",
            properties={"name": {"type": "string"}},
            **{
                "x-formgen": {
                    "forms": [
                        {"id": "page.edit", "title": "Edit page"},
                        {"id": "page.create", "summary": " Create page ", "description": "New"},
                    ]
                }
            },
        )
        ir = await JSONSchemaAdapter(None).normalize(_document(payload), NormalizeOptions(content_type_slug="/pages"))

        create = ir.forms["page.create"]
        edit = ir.forms["page.edit"]
        assert create.endpoint == "/pages"
        assert create.summary == "Create page"
        assert create.description == "New"
        assert edit.summary == "Edit page"
        assert create.schema_ == edit.schema_
        assert create.schema_ is not edit.schema_

        assert JSONSchemaAdapter(None).forms(ir) == [
            FormRef(id="page.create", title="Create page", summary="Create page", description="New"),
            FormRef(id="page.edit", title="Edit page", summary="Edit page"),
        ]

    @pytest.mark.asyncio
    async def test_form_id_filter(self) -> None:
        payload = schema_doc(
            type="object", **{"x-formgen": {"forms": [{"id": "a.edit"}, {"id": "b.edit"}]}}
        )
        ir = await JSONSchemaAdapter(None).normalize(_document(payload), NormalizeOptions(form_id="b.edit"))
        assert list(ir.forms) == ["b.edit"]

        with pytest.raises(FormDiscoveryError, match="form 'c.edit' not found"):
            await JSONSchemaAdapter(None).normalize(_document(payload), NormalizeOptions(form_id="c.edit"))

    @pytest.mark.asyncio
    async def test_missing_dialect(self) -> None:
        with pytest.raises(DialectError, match="\\$schema is required"):
            await JSONSchemaAdapter(None).normalize(_document({"$id": "post", "type": "object"}))

    @pytest.mark.asyncio
    async def test_unsupported_dialect(self) -> None:
        payload = {"$schema": "http://json-schema.org/draft-07/schema#", "$id": "post"}
        with pytest.raises(DialectError, match="unsupported \\$schema"):
            await JSONSchemaAdapter(None).normalize(_document(payload))

    @pytest.mark.asyncio
    async def test_dialect_with_trailing_hash_is_accepted(self) -> None:
        payload = {"$schema": DRAFT_2020_12 + "#", "$id": "post", "type": "object"}
        ir = await JSONSchemaAdapter(None).normalize(_document(payload))
        assert list(ir.forms) == ["post.edit"]

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        with pytest.raises(DialectError, match="parse schema"):
            await JSONSchemaAdapter(None).normalize(_document(b"{oops"))

    @pytest.mark.asyncio
    async def test_unsupported_keyword(self) -> None:
        payload = schema_doc(**{"$id": "post"}, type="object", properties={"a": {"type": "string", "not": {}}})
        with pytest.raises(NormalizationError) as excinfo:
            await JSONSchemaAdapter(None).normalize(_document(payload))
        assert excinfo.value.path == "#/properties/a"

    @pytest.mark.asyncio
    async def test_ref_cycle(self) -> None:
        payload = schema_doc(
            **{"$id": "post", "$defs": {"a": {"$ref": "#/$defs/a"}}},
            type="object",
        )
        with pytest.raises(RefCycleError):
            await JSONSchemaAdapter(None).normalize(_document(payload))

    @pytest.mark.asyncio
    async def test_overlay_is_applied_after_resolution(self) -> None:
        overlay = parse_overlay(
            json.dumps(
                {
                    "$schema": "x-ui-overlay/v1",
                    "overrides": [{"path": "/properties/title", "x-formgen": {"widget": "textarea"}}],
                }
            )
        )
        ir = await JSONSchemaAdapter(None).normalize(_document(POST_SCHEMA), overlay=overlay)
        title = ir.forms["post.edit"].schema_.properties["title"]  # type: ignore[index]
        assert title.extensions == {"x-formgen": {"widget": "textarea"}}
        assert title.min_length == 1

    @pytest.mark.asyncio
    async def test_block_union(self) -> None:
        payload = schema_doc(
            **{
                "$id": "page",
                "$defs": {
                    "hero": {
                        "type": "object",
                        "properties": {"_type": {"const": "hero"}, "headline": {"type": "string"}},
                    },
                    "text": {
                        "type": "object",
                        "properties": {"_type": {"const": "text"}, "body": {"type": "string"}},
                    },
                },
            },
            type="object",
            properties={
                "blocks": {
                    "type": "array",
                    "items": {"oneOf": [{"$ref": "#/$defs/hero"}, {"$ref": "#/$defs/text"}]},
                }
            },
        )
        ir = await JSONSchemaAdapter(None).normalize(_document(payload))
        blocks = ir.forms["page.edit"].schema_.properties["blocks"]  # type: ignore[index]
        variants = blocks.items.one_of  # type: ignore[union-attr]
        assert [v.properties["_type"].const for v in variants] == ["hero", "text"]  # type: ignore[union-attr,index]
        assert all(v.required == ["_type"] for v in variants)  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_external_refs_use_loader(self, memory_loader: MemoryLoader) -> None:
        memory_loader.add("defs.json", schema_doc(**{"$defs": {"n": {"type": "string"}}}))
        payload = schema_doc(**{"$id": "post"}, type="object", properties={"n": {"$ref": "defs.json#/$defs/n"}})
        ir = await JSONSchemaAdapter(memory_loader).normalize(_document(payload))
        assert ir.forms["post.edit"].schema_.properties["n"].type == "string"  # type: ignore[index]

    @pytest.mark.asyncio
    async def test_deeply_nested_schema(self) -> None:
        leaf: dict[str, Any] = {"type": "string"}
        for _ in range(300):
            leaf = {"type": "object", "properties": {"a": leaf}}
        payload = schema_doc(**{"$id": "deep"}, **leaf)

        ir = await JSONSchemaAdapter(None).normalize(_document(payload))
        node = ir.forms["deep.edit"].schema_
        depth = 0
        while node.properties:
            node = node.properties["a"]
            depth += 1
        assert depth == 300
        assert node.type == "string"

    @pytest.mark.asyncio
    async def test_deeply_nested_schema_with_several_forms(self) -> None:
        leaf: dict[str, Any] = {"type": "string"}
        for _ in range(300):
            leaf = {"type": "object", "properties": {"a": leaf}}
        payload = schema_doc(**{"x-formgen": {"forms": [{"id": "a.edit"}, {"id": "b.edit"}]}}, **leaf)

        ir = await JSONSchemaAdapter(None).normalize(_document(payload))
        first = ir.forms["a.edit"].schema_
        second = ir.forms["b.edit"].schema_
        assert first is not second
        assert first.properties["a"] is not second.properties["a"]  # type: ignore[index]

    @pytest.mark.asyncio
    async def test_recursion_error_is_reported_as_limit(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _overflow(node: Any, path: str = "#") -> None:
            raise RecursionError("maximum recursion depth exceeded")

        monkeypatch.setattr("formschema.core.adapter.schema_from_json_schema", _overflow)
        with pytest.raises(LimitExceededError, match="nesting is too deep") as excinfo:
            await JSONSchemaAdapter(None).normalize(_document(POST_SCHEMA))
        assert excinfo.value.path == "post.json"


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_file_source(self, schemas_dir: Path) -> None:
        adapter = JSONSchemaAdapter(FileLoader())
        doc = await adapter.load(source_from_file(schemas_dir / "root.json"))
        ir = await adapter.normalize(doc, NormalizeOptions(content_type_slug="people"))
        form = ir.forms["people.edit"]
        assert form.endpoint == "/people"
        assert form.schema_.properties["name"].min_length == 1  # type: ignore[index]

    @pytest.mark.asyncio
    async def test_directory_source(self, schemas_dir: Path) -> None:
        adapter = JSONSchemaAdapter(DirectoryLoader(schemas_dir))
        doc = await adapter.load(source_from_fs("root.json"))
        ir = await adapter.normalize(doc, NormalizeOptions(content_type_slug="people"))
        assert ir.forms["people.edit"].schema_.properties["name"].type == "string"  # type: ignore[index]


@pytest.mark.parametrize(("slug", "expected"), [("posts", "/posts"), ("/posts", "/posts"), ("  ", "/"), ("", "/")])
def test_derive_form_endpoint(slug: str, expected: str) -> None:
    assert derive_form_endpoint(slug) == expected
