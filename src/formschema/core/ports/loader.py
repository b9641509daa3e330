from typing import Protocol

from formschema.core.source import Document, Source


class DocumentLoader(Protocol):
    async def load(self, source: Source) -> Document: ...
