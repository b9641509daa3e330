"""Environment-driven defaults for resolution limits and loaders."""

from __future__ import annotations

import os
from pathlib import Path

from formschema.core.resolver import (
    DEFAULT_MAX_DOCUMENT_BYTES,
    DEFAULT_MAX_DOCUMENTS,
    DEFAULT_MAX_REF_DEPTH,
    ResolveOptions,
)
from formschema.loaders import LoaderOptions
from formschema.loaders.http import DEFAULT_REQUEST_TIMEOUT

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def get_resolve_options() -> ResolveOptions:
    return ResolveOptions(
        allow_http_refs=_env_bool("FORMSCHEMA_ALLOW_HTTP_REFS"),
        allow_path_traversal=_env_bool("FORMSCHEMA_ALLOW_PATH_TRAVERSAL"),
        max_document_bytes=_env_int("FORMSCHEMA_MAX_DOCUMENT_BYTES", DEFAULT_MAX_DOCUMENT_BYTES),
        max_documents=_env_int("FORMSCHEMA_MAX_DOCUMENTS", DEFAULT_MAX_DOCUMENTS),
        max_ref_depth=_env_int("FORMSCHEMA_MAX_REF_DEPTH", DEFAULT_MAX_REF_DEPTH),
    ).with_defaults()


def get_loader_options(fs_root: str | Path | None = None, allow_http: bool | None = None) -> LoaderOptions:
    if allow_http is None:
        allow_http = _env_bool("FORMSCHEMA_ALLOW_HTTP_REFS")
    return LoaderOptions(
        fs_root=fs_root,
        allow_http_fallback=allow_http,
        request_timeout=_env_float("FORMSCHEMA_HTTP_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
    )
