"""Value objects identifying where a schema document came from."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlsplit


class SourceKind(str, Enum):
    FILE = "file"
    FS = "fs"
    URL = "url"


@dataclass(frozen=True)
class Source:
    kind: SourceKind
    location: str


def source_from_file(path: str | os.PathLike[str]) -> Source:
    return Source(SourceKind.FILE, os.path.normpath(os.fspath(path)))


def source_from_fs(name: str) -> Source:
    """Identify a resource by name inside a loader-provided filesystem root."""
    return Source(SourceKind.FS, name)


def source_from_url(raw: str) -> Source:
    """Parse ``raw`` eagerly so configuration mistakes surface at construction."""
    if not raw:
        raise ValueError("empty URL source")
    try:
        parts = urlsplit(raw)
    except ValueError as exc:
        raise ValueError(f"invalid URL {raw!r}: {exc}") from exc
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"invalid URL {raw!r}: scheme and host are required")
    return Source(SourceKind.URL, raw)


@dataclass(frozen=True)
class Document:
    source: Source
    raw: bytes = field(repr=False)

    def __post_init__(self) -> None:
        if self.source is None:
            raise ValueError("source is required")
        if not self.raw:
            raise ValueError("raw document is empty")
        if not isinstance(self.raw, bytes):
            object.__setattr__(self, "raw", bytes(self.raw))

    @property
    def location(self) -> str:
        return self.source.location

    @property
    def kind(self) -> SourceKind:
        return self.source.kind
