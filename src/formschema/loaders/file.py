from __future__ import annotations

import logging
from pathlib import Path

from formschema.core.errors import LoadError
from formschema.core.source import Document, Source, SourceKind

logger = logging.getLogger(__name__)


class FileLoader:
    """Read schema documents from the local disk.

    Implements the ``DocumentLoader`` protocol for ``file`` sources.
    """

    async def load(self, source: Source) -> Document:
        if source.kind is not SourceKind.FILE:
            raise LoadError(f"file loader cannot load {source.kind.value} sources", source.location)
        if not source.location:
            raise LoadError("file path is required")
        path = Path(source.location).resolve()
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise LoadError(f"read file: {exc.strerror or exc}", str(path)) from exc
        logger.debug("Read %s (%d bytes)", path, len(raw))
        return to_document(source, raw)


def to_document(source: Source, raw: bytes) -> Document:
    try:
        return Document(source, raw)
    except ValueError as exc:
        raise LoadError(str(exc), source.location) from exc
