"""Schema commands: resolve, normalize and list forms."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import replace
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from formschema.config import get_loader_options, get_resolve_options
from formschema.core.adapter import JSONSchemaAdapter
from formschema.core.dialect import parse_json_schema, validate_dialect
from formschema.core.errors import SchemaError
from formschema.core.overlay import Overlay, parse_overlay
from formschema.core.resolver import ResolveOptions, Resolver
from formschema.core.source import Document, Source, source_from_file, source_from_fs
from formschema.loaders import CompositeLoader
from formschema.models import NormalizeOptions

console = Console()
err_console = Console(stderr=True)

T = TypeVar("T")

PathArg = Annotated[str, typer.Argument(help="Path to the root JSON Schema document.")]
RootOpt = Annotated[
    Path | None,
    typer.Option("--root", help="Treat PATH as relative to this directory and sandbox refs inside it."),
]
AllowHTTPOpt = Annotated[bool | None, typer.Option("--allow-http/--no-allow-http", help="Follow http(s) $refs.")]
AllowTraversalOpt = Annotated[
    bool | None,
    typer.Option("--allow-traversal/--no-allow-traversal", help="Allow $refs outside the root directory."),
]


def _source_for(path: str, root: Path | None) -> Source:
    return source_from_fs(path) if root is not None else source_from_file(path)


def _options(allow_http: bool | None, allow_traversal: bool | None) -> ResolveOptions:
    options = get_resolve_options()
    if allow_http is not None:
        options = replace(options, allow_http_refs=allow_http)
    if allow_traversal is not None:
        options = replace(options, allow_path_traversal=allow_traversal)
    return options


def _run(
    path: str,
    root: Path | None,
    options: ResolveOptions,
    action: Callable[[CompositeLoader, Document], Awaitable[T]],
) -> T:
    loader = CompositeLoader(get_loader_options(fs_root=root, allow_http=options.allow_http_refs))

    async def _go() -> T:
        try:
            document = await loader.load(_source_for(path, root))
            return await action(loader, document)
        finally:
            await loader.aclose()

    try:
        return asyncio.run(_go())
    except SchemaError as exc:
        err_console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from None


def resolve(
    path: PathArg,
    root: RootOpt = None,
    allow_http: AllowHTTPOpt = None,
    allow_traversal: AllowTraversalOpt = None,
) -> None:
    """Expand every $ref and print the self-contained document."""
    options = _options(allow_http, allow_traversal)

    async def _action(loader: CompositeLoader, document: Document) -> dict[str, Any]:
        payload = parse_json_schema(document.raw, document.location)
        validate_dialect(payload, document.location)
        return await Resolver(loader, options).resolve(document, payload)

    console.print_json(data=_run(path, root, options, _action))


def normalize(
    path: PathArg,
    root: RootOpt = None,
    overlay: Annotated[Path | None, typer.Option(help="UI overlay document to apply.")] = None,
    slug: Annotated[str, typer.Option(help="Content type slug used for form ids and endpoints.")] = "",
    suffix: Annotated[str, typer.Option(help="Suffix for derived form ids (default .edit).")] = "",
    form_id: Annotated[str, typer.Option("--form-id", help="Only emit this form.")] = "",
    allow_http: AllowHTTPOpt = None,
    allow_traversal: AllowTraversalOpt = None,
) -> None:
    """Resolve, optionally overlay, and print the canonical schema IR."""
    options = _options(allow_http, allow_traversal)
    parsed_overlay: Overlay | None = None
    if overlay is not None:
        try:
            parsed_overlay = parse_overlay(overlay.read_bytes())
        except (OSError, SchemaError) as exc:
            err_console.print(f"[red]Error:[/red] {escape(str(exc))}")
            raise typer.Exit(1) from None
    normalize_options = NormalizeOptions(content_type_slug=slug, default_form_suffix=suffix, form_id=form_id)

    async def _action(loader: CompositeLoader, document: Document) -> dict[str, Any]:
        adapter = JSONSchemaAdapter(loader, resolve_options=options)
        ir = await adapter.normalize(document, normalize_options, overlay=parsed_overlay)
        return ir.model_dump(by_alias=True, exclude_none=True)

    console.print_json(data=_run(path, root, options, _action))


def forms(
    path: PathArg,
    root: RootOpt = None,
    slug: Annotated[str, typer.Option(help="Content type slug used for form ids.")] = "",
    allow_http: AllowHTTPOpt = None,
    allow_traversal: AllowTraversalOpt = None,
) -> None:
    """List the forms a schema document exposes."""
    options = _options(allow_http, allow_traversal)

    async def _action(loader: CompositeLoader, document: Document) -> list[tuple[str, str, str]]:
        adapter = JSONSchemaAdapter(loader, resolve_options=options)
        ir = await adapter.normalize(document, NormalizeOptions(content_type_slug=slug))
        return [(ref.id, ir.forms[ref.id].method, ir.forms[ref.id].endpoint) for ref in adapter.forms(ir)]

    rows = _run(path, root, options, _action)
    table = Table(show_lines=False)
    for header in ("id", "method", "endpoint"):
        table.add_column(header)
    for row in rows:
        table.add_row(*row)
    console.print(table)
    console.print(f"({len(rows)} forms)")
