from __future__ import annotations

import logging

import httpx

from formschema.core.errors import LoadError
from formschema.core.source import Document, Source, SourceKind
from formschema.loaders.file import to_document

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0


class HTTPLoader:
    """Fetch ``url`` sources with an ``httpx.AsyncClient``.

    The loader owns the client only when it created it; call :meth:`aclose`
    to release it.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = DEFAULT_REQUEST_TIMEOUT) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self._timeout = timeout

    async def load(self, source: Source) -> Document:
        if source.kind is not SourceKind.URL:
            raise LoadError(f"http loader cannot load {source.kind.value} sources", source.location)
        if not source.location:
            raise LoadError("url is required")
        try:
            response = await self._client.get(source.location, timeout=self._timeout)
        except httpx.HTTPError as exc:
            raise LoadError(f"fetch failed: {exc}", source.location) from exc
        if not response.is_success:
            raise LoadError(
                f"unexpected status {response.status_code} {response.reason_phrase}".rstrip(), source.location
            )
        logger.debug("Fetched %s (%d bytes)", source.location, len(response.content))
        return to_document(source, response.content)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
