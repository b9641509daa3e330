from __future__ import annotations

import logging
import posixpath
from pathlib import Path

from formschema.core.errors import LoadError
from formschema.core.source import Document, Source, SourceKind
from formschema.loaders.file import to_document

logger = logging.getLogger(__name__)


class DirectoryLoader:
    """Serve ``fs`` sources from files below a fixed root directory.

    Names are cleaned posix paths relative to the root; names that would
    leave the root are rejected.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    async def load(self, source: Source) -> Document:
        if source.kind is not SourceKind.FS:
            raise LoadError(f"directory loader cannot load {source.kind.value} sources", source.location)
        if not source.location:
            raise LoadError("fs path is required")
        name = posixpath.normpath(source.location.lstrip("/"))
        if name == ".." or name.startswith("../"):
            raise LoadError("fs path escapes the loader root", source.location)

        path = self._root / name
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise LoadError(f"read {name}: {exc.strerror or exc}", source.location) from exc
        logger.debug("Read %s from %s (%d bytes)", name, self._root, len(raw))
        return to_document(source, raw)
