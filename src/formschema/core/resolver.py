"""``$ref`` expansion for JSON Schema documents.

A :class:`Resolver` turns a parsed root payload into a self-contained tree.
Referenced documents are fetched through the injected
:class:`~formschema.core.ports.loader.DocumentLoader`, parsed once per call and
kept in a session cache keyed by a canonical location:

* ``file:<absolute path>`` for on-disk documents,
* ``fs:<cleaned relative name>`` for documents inside a loader-provided root,
* ``url:<raw url>`` for HTTP(S) documents.

The root document's base directory is the sandbox boundary for relative
references unless ``allow_path_traversal`` is set.
"""

from __future__ import annotations

import copy
import logging
import os
import posixpath
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import unquote, urljoin, urlsplit

from formschema.core import pointer as jsonpointer
from formschema.core.dialect import is_vendor_extension, parse_json_schema, validate_dialect
from formschema.core.errors import (
    HTTPRefsDisabledError,
    LimitExceededError,
    LoadError,
    PathTraversalError,
    RefCycleError,
    ResolutionError,
)
from formschema.core.ports.loader import DocumentLoader
from formschema.core.source import (
    Document,
    Source,
    SourceKind,
    source_from_file,
    source_from_fs,
    source_from_url,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DOCUMENT_BYTES = 5 << 20
DEFAULT_MAX_DOCUMENTS = 128
DEFAULT_MAX_REF_DEPTH = 64

_ALLOWED_REF_SIBLINGS = frozenset({"title", "description", "default"})
_SCHEMA_MAP_KEYS = ("$defs", "properties")
_SCHEMA_LIST_KEYS = ("oneOf", "anyOf", "allOf")


@dataclass(frozen=True)
class ResolveOptions:
    allow_http_refs: bool = False
    allow_path_traversal: bool = False
    max_document_bytes: int = DEFAULT_MAX_DOCUMENT_BYTES
    max_documents: int = DEFAULT_MAX_DOCUMENTS
    max_ref_depth: int = DEFAULT_MAX_REF_DEPTH

    def with_defaults(self) -> ResolveOptions:
        """Replace non-positive limits with the built-in defaults."""
        return replace(
            self,
            max_document_bytes=self.max_document_bytes if self.max_document_bytes > 0 else DEFAULT_MAX_DOCUMENT_BYTES,
            max_documents=self.max_documents if self.max_documents > 0 else DEFAULT_MAX_DOCUMENTS,
            max_ref_depth=self.max_ref_depth if self.max_ref_depth > 0 else DEFAULT_MAX_REF_DEPTH,
        )


@dataclass
class _ResolvedDocument:
    key: str
    kind: SourceKind
    location: str
    base_dir: str
    data: dict[str, Any]
    anchors: dict[str, str]


@dataclass
class _ResolveState:
    stack: list[str] = field(default_factory=list)
    in_stack: set[str] = field(default_factory=set)

    def push(self, ref_key: str) -> None:
        self.stack.append(ref_key)
        self.in_stack.add(ref_key)

    def pop(self) -> None:
        if self.stack:
            self.in_stack.discard(self.stack.pop())

    def __contains__(self, ref_key: str) -> bool:
        return ref_key in self.in_stack

    def __len__(self) -> int:
        return len(self.stack)


class Resolver:
    def __init__(self, loader: DocumentLoader | None, options: ResolveOptions | None = None) -> None:
        self._loader = loader
        self._options = (options or ResolveOptions()).with_defaults()

    @property
    def options(self) -> ResolveOptions:
        return self._options

    async def resolve(self, document: Document, payload: dict[str, Any]) -> dict[str, Any]:
        """Return a deep copy of ``payload`` with every ``$ref`` expanded."""
        session = _ResolveSession(self._loader, self._options)
        root = session.prepare_root(document, payload)
        resolved = await session.resolve_node(root, root.data, _ResolveState(), "#")
        if not isinstance(resolved, dict):
            raise ResolutionError("resolved root is not an object", root.location)
        return resolved


class _ResolveSession:
    def __init__(self, loader: DocumentLoader | None, options: ResolveOptions) -> None:
        self.loader = loader
        self.options = options
        self.cache: dict[str, _ResolvedDocument] = {}
        self.root: _ResolvedDocument | None = None

    # -- documents ---------------------------------------------------------

    def prepare_root(self, document: Document, payload: dict[str, Any]) -> _ResolvedDocument:
        if not isinstance(payload, dict):
            raise ResolutionError("payload must be an object", document.location)
        key, location, base_dir = canonical_location(document.source)
        if len(document.raw) > self.options.max_document_bytes:
            raise LimitExceededError(f"document too large ({len(document.raw)} bytes)", location)

        root = _ResolvedDocument(
            key=key,
            kind=document.kind,
            location=location,
            base_dir=base_dir,
            data=payload,
            anchors=index_anchors(payload, location),
        )
        self.root = root
        self.cache[key] = root
        return root

    async def load_document(self, source: Source) -> _ResolvedDocument:
        key, location, base_dir = canonical_location(source)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Reusing cached document %s", key)
            return cached
        if len(self.cache) >= self.options.max_documents:
            raise LimitExceededError(f"exceeded max documents ({self.options.max_documents})", location)
        if self.loader is None:
            raise LoadError("loader is not configured", location)

        document = await self.loader.load(source)
        if len(document.raw) > self.options.max_document_bytes:
            raise LimitExceededError(f"document too large ({len(document.raw)} bytes)", location)
        payload = parse_json_schema(document.raw, location)
        validate_dialect(payload, location)

        resolved = _ResolvedDocument(
            key=key,
            kind=source.kind,
            location=location,
            base_dir=base_dir,
            data=payload,
            anchors=index_anchors(payload, location),
        )
        self.cache[key] = resolved
        logger.debug("Loaded document %s (%d bytes)", key, len(document.raw))
        return resolved

    # -- tree walk ---------------------------------------------------------

    async def resolve_node(self, doc: _ResolvedDocument, node: Any, state: _ResolveState, path: str) -> Any:
        if isinstance(node, list):
            return [
                await self.resolve_node(doc, entry, state, jsonpointer.join_path(path, str(idx)))
                for idx, entry in enumerate(node)
            ]
        if not isinstance(node, dict):
            return node

        if "$ref" in node:
            return await self._resolve_ref(doc, node, state, path)

        resolved: dict[str, Any] = {}
        for key, value in node.items():
            child_path = jsonpointer.join_path(path, key)
            if key in _SCHEMA_MAP_KEYS and isinstance(value, dict):
                children: dict[str, Any] = {}
                for child_key, child_value in value.items():
                    children[child_key] = await self.resolve_node(
                        doc, child_value, state, jsonpointer.join_path(child_path, child_key)
                    )
                resolved[key] = children
            elif key == "items" or (key in _SCHEMA_LIST_KEYS and isinstance(value, list)):
                resolved[key] = await self.resolve_node(doc, value, state, child_path)
            else:
                resolved[key] = copy.deepcopy(value)
        return resolved

    async def _resolve_ref(
        self, doc: _ResolvedDocument, node: dict[str, Any], state: _ResolveState, path: str
    ) -> Any:
        raw_ref = node["$ref"]
        where = f"{doc.location}{path}"
        if not isinstance(raw_ref, str) or not raw_ref.strip():
            raise ResolutionError("$ref must be a non-empty string", where)
        ref = raw_ref.strip()

        target_doc, target_path, target = await self._resolve_ref_target(doc, ref, where)
        ref_key = f"{target_doc.key}{target_path}"
        if len(state) >= self.options.max_ref_depth:
            raise LimitExceededError(f"ref depth exceeds {self.options.max_ref_depth}", where)
        if ref_key in state:
            raise RefCycleError(f"ref cycle detected at {ref}", where)

        merged = merge_ref_target(target, node, where)
        state.push(ref_key)
        try:
            return await self.resolve_node(target_doc, merged, state, target_path)
        finally:
            state.pop()

    async def _resolve_ref_target(
        self, doc: _ResolvedDocument, ref: str, where: str
    ) -> tuple[_ResolvedDocument, str, Any]:
        ref_path, _, fragment = ref.partition("#")
        if not ref_path:
            target_path, target = resolve_fragment(doc, fragment, where)
            return doc, target_path, target

        try:
            parsed = urlsplit(ref_path)
        except ValueError as exc:
            raise ResolutionError(f"invalid ref {ref!r}", where) from exc

        scheme = parsed.scheme.lower()
        if scheme in ("http", "https"):
            if not self.options.allow_http_refs:
                raise HTTPRefsDisabledError(f"http refs disabled ({ref})", where)
            source = source_from_url(ref_path)
        elif scheme == "file":
            source = self._file_scheme_source(doc, unquote(parsed.path), ref, where)
        elif scheme:
            raise ResolutionError(f"unsupported ref scheme {parsed.scheme!r}", where)
        else:
            source = self._relative_source(doc, ref_path, where)

        target_doc = await self.load_document(source)
        target_path, target = resolve_fragment(target_doc, fragment, where)
        return target_doc, target_path, target

    # -- sandboxing --------------------------------------------------------

    def _root_base_dir(self, fallback: str) -> str:
        return self.root.base_dir if self.root is not None else fallback

    def _file_scheme_source(self, doc: _ResolvedDocument, file_path: str, ref: str, where: str) -> Source:
        if self.options.allow_path_traversal:
            return source_from_file(file_path)
        if self.root is None or self.root.kind is not SourceKind.FILE:
            raise PathTraversalError(f"ref path escapes root ({ref})", where)
        base_dir = doc.base_dir if doc.kind is SourceKind.FILE else self.root.base_dir
        return source_from_file(self.clean_file_path(base_dir, file_path, ref, where))

    def _relative_source(self, doc: _ResolvedDocument, ref_path: str, where: str) -> Source:
        if doc.kind is SourceKind.FILE:
            return source_from_file(self.clean_file_path(doc.base_dir, unquote(ref_path), ref_path, where))
        if doc.kind is SourceKind.FS:
            return source_from_fs(self.clean_fs_path(doc.base_dir, unquote(ref_path), ref_path, where))
        if not self.options.allow_http_refs:
            raise HTTPRefsDisabledError(f"http refs disabled ({ref_path})", where)
        return source_from_url(urljoin(doc.location, ref_path))

    def clean_file_path(self, base_dir: str, ref_path: str, ref: str, where: str) -> str:
        candidate = ref_path if os.path.isabs(ref_path) else os.path.join(base_dir, ref_path)
        candidate = os.path.normpath(candidate)
        if self.options.allow_path_traversal:
            return candidate
        root = self._root_base_dir(base_dir)
        try:
            rel = os.path.relpath(candidate, root)
        except ValueError as exc:
            raise PathTraversalError(f"ref path escapes root ({ref})", where) from exc
        if rel == os.pardir or rel.startswith(os.pardir + os.sep):
            raise PathTraversalError(f"ref path escapes root ({ref})", where)
        return candidate

    def clean_fs_path(self, base_dir: str, ref_path: str, ref: str, where: str) -> str:
        candidate = posixpath.normpath(posixpath.join(base_dir, ref_path)).lstrip("/")
        if self.options.allow_path_traversal:
            return candidate
        root = posixpath.normpath(self._root_base_dir(base_dir)).lstrip("/")
        if root == ".":
            root = ""
        escapes = candidate == ".." or candidate.startswith("../")
        if root and not (candidate == root or candidate.startswith(root + "/")):
            escapes = True
        if escapes:
            raise PathTraversalError(f"ref path escapes root ({ref})", where)
        return candidate


def canonical_location(source: Source) -> tuple[str, str, str]:
    """Return ``(cache key, location, base directory)`` for ``source``."""
    if source is None:
        raise ResolutionError("source is nil")
    location = source.location
    if source.kind is SourceKind.FILE:
        absolute = os.path.abspath(location)
        return f"file:{absolute}", absolute, os.path.dirname(absolute)
    if source.kind is SourceKind.FS:
        cleaned = posixpath.normpath(location.lstrip("/"))
        return f"fs:{cleaned}", cleaned, posixpath.dirname(cleaned) or "."
    if source.kind is SourceKind.URL:
        return f"url:{location}", location, posixpath.dirname(location)
    raise ResolutionError(f"unsupported source kind {source.kind!r}", location)


def resolve_fragment(doc: _ResolvedDocument, fragment: str, where: str = "") -> tuple[str, Any]:
    """Return ``(pointer path, node)`` for a ``$ref`` fragment within ``doc``."""
    fragment = fragment.removeprefix("#")
    if not fragment:
        return "#", doc.data
    if fragment.startswith("/"):
        return f"#{fragment}", resolve_json_pointer(doc.data, fragment, where)

    anchor_path = doc.anchors.get(fragment)
    if anchor_path is None:
        raise ResolutionError(f"anchor {fragment!r} not found in {doc.location}", where)
    pointer = anchor_path.removeprefix("#")
    if not pointer:
        return "#", doc.data
    return anchor_path, resolve_json_pointer(doc.data, pointer, where)


def resolve_json_pointer(root: Any, pointer: str, where: str = "") -> Any:
    if pointer in ("", "#"):
        return root
    if not pointer.startswith("/"):
        raise ResolutionError(f"invalid json pointer {pointer!r}", where)
    try:
        return jsonpointer.walk(root, pointer)
    except (KeyError, TypeError) as exc:
        raise ResolutionError(f"pointer {pointer!r} not found", where) from exc


def index_anchors(
    node: Any, location: str = "", path: str = "#", anchors: dict[str, str] | None = None
) -> dict[str, str]:
    """Map each ``$anchor`` name to its pointer, skipping vendor extension subtrees."""
    if anchors is None:
        anchors = {}
    if isinstance(node, dict):
        name = node.get("$anchor")
        if isinstance(name, str) and name.strip():
            name = name.strip()
            if name in anchors:
                raise ResolutionError(f"duplicate anchor {name!r}", f"{location}{path}")
            anchors[name] = path
        for key, value in node.items():
            if is_vendor_extension(key):
                continue
            index_anchors(value, location, jsonpointer.join_path(path, key), anchors)
    elif isinstance(node, list):
        for idx, value in enumerate(node):
            index_anchors(value, location, jsonpointer.join_path(path, str(idx)), anchors)
    return anchors


def merge_ref_target(target: Any, ref_node: dict[str, Any], where: str = "") -> Any:
    """Deep-copy ``target`` and overlay the permitted siblings of ``$ref``."""
    merged = copy.deepcopy(target)
    siblings = {key: value for key, value in ref_node.items() if key != "$ref"}
    if not isinstance(merged, dict):
        if siblings:
            raise ResolutionError("$ref target is not an object", where)
        return merged
    for key, value in siblings.items():
        if key not in _ALLOWED_REF_SIBLINGS and not is_vendor_extension(key):
            raise ResolutionError(f"unsupported $ref sibling {key!r}", where)
        merged[key] = copy.deepcopy(value)
    return merged
