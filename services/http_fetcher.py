from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

from services.feed_contracts import ByteStream
from services.ingest_errors import FetchError

DEFAULT_FETCH_TIMEOUT_S = 15.0
DEFAULT_USER_AGENT = "newsfeed-ingest/0.1"


class HttpFeedFetcher:
    """
    Fetch feeds over HTTP with one shared httpx.AsyncClient.

    Only a 200 response yields a stream; everything else raises FetchError.
    The response is always closed when the fetch context exits.
    """

    def __init__(
        self,
        *,
        logger: Any,
        timeout_s: float = DEFAULT_FETCH_TIMEOUT_S,
        user_agent: str = DEFAULT_USER_AGENT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout_s = timeout_s
        self.user_agent = user_agent
        self._logger = logger.bind(component="http-fetcher")
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "HttpFeedFetcher":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_s,
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @asynccontextmanager
    async def fetch(self, address: str) -> AsyncIterator[ByteStream]:
        log = self._logger.bind(url=address)
        log.info("feed_fetch_started")
        client = self._ensure_client()
        try:
            request = client.build_request("GET", address)
            response = await client.send(request, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            log.warning("feed_fetch_request_failed", error=str(exc))
            raise FetchError(f"failed to fetch url {address}: {exc}") from exc

        try:
            if response.status_code != httpx.codes.OK:
                log.warning("feed_fetch_unexpected_status", status_code=response.status_code)
                raise FetchError(
                    f"unexpected status code: {response.status_code} for url {address}",
                    status_code=response.status_code,
                )
            log.info("feed_fetch_succeeded")
            yield _iter_body(response, address)
        finally:
            await response.aclose()


async def _iter_body(response: httpx.Response, address: str) -> AsyncIterator[bytes]:
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    except httpx.HTTPError as exc:
        raise FetchError(f"failed to read body of {address}: {exc}") from exc
