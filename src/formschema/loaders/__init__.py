from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import httpx

from formschema.core.errors import LoadError
from formschema.core.source import Document, Source, SourceKind
from formschema.loaders.file import FileLoader
from formschema.loaders.fs import DirectoryLoader
from formschema.loaders.http import DEFAULT_REQUEST_TIMEOUT, HTTPLoader


@dataclass(frozen=True)
class LoaderOptions:
    fs_root: str | Path | None = None
    http_client: httpx.AsyncClient | None = None
    allow_http_fallback: bool = False
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT


class CompositeLoader:
    """Dispatch each source to the file, directory or HTTP loader by kind."""

    def __init__(self, options: LoaderOptions | None = None) -> None:
        options = options or LoaderOptions()
        self._file = FileLoader()
        self._fs = DirectoryLoader(options.fs_root) if options.fs_root is not None else None
        self._http: HTTPLoader | None = None
        if options.http_client is not None or options.allow_http_fallback:
            self._http = HTTPLoader(options.http_client, timeout=options.request_timeout)

    async def load(self, source: Source) -> Document:
        if source is None:
            raise LoadError("source is nil")
        if source.kind is SourceKind.FILE:
            return await self._file.load(source)
        if source.kind is SourceKind.FS:
            if self._fs is None:
                raise LoadError("fs root is not configured", source.location)
            return await self._fs.load(source)
        if source.kind is SourceKind.URL:
            if self._http is None:
                raise LoadError("http support disabled", source.location)
            return await self._http.load(source)
        raise LoadError(f"unsupported source kind {source.kind!r}", source.location)

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()


__all__ = [
    "CompositeLoader",
    "DirectoryLoader",
    "FileLoader",
    "HTTPLoader",
    "LoaderOptions",
]
