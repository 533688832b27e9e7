from __future__ import annotations

import httpx
import pytest

from services.http_fetcher import HttpFeedFetcher
from services.ingest_errors import FetchError
from tests.fixtures import SAMPLE_RSS, make_logger

pytestmark = pytest.mark.asyncio


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _read_all(stream) -> bytes:
    chunks = []
    async for chunk in stream:
        chunks.append(chunk)
    return b"".join(chunks)


async def test_fetch_streams_body_on_200():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["user_agent"] = request.headers.get("user-agent")
        return httpx.Response(200, content=SAMPLE_RSS)

    async with _client(handler) as client:
        fetcher = HttpFeedFetcher(logger=make_logger(), client=client)
        async with fetcher.fetch("https://feeds.example.com/rss") as stream:
            body = await _read_all(stream)

    assert body == SAMPLE_RSS
    assert seen["url"] == "https://feeds.example.com/rss"


async def test_fetch_non_200_raises_with_status_code():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, content=b"Not Found")

    async with _client(handler) as client:
        fetcher = HttpFeedFetcher(logger=make_logger(), client=client)
        with pytest.raises(FetchError) as exc_info:
            async with fetcher.fetch("https://feeds.example.com/missing"):
                pytest.fail("stream must not be yielded for a 404")

    assert exc_info.value.status_code == 404
    assert "unexpected status code: 404" in str(exc_info.value)
    assert exc_info.value.stage == "fetch"


async def test_fetch_transport_error_is_fetch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        fetcher = HttpFeedFetcher(logger=make_logger(), client=client)
        with pytest.raises(FetchError) as exc_info:
            async with fetcher.fetch("https://down.example.com/rss"):
                pass

    assert exc_info.value.status_code is None
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


async def test_fetch_invalid_url_is_fetch_error():
    async with HttpFeedFetcher(logger=make_logger()) as fetcher:
        with pytest.raises(FetchError):
            async with fetcher.fetch("not-a-url"):
                pass


async def test_aclose_leaves_injected_client_open():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"")

    client = _client(handler)
    fetcher = HttpFeedFetcher(logger=make_logger(), client=client)
    await fetcher.aclose()
    assert not client.is_closed
    await client.aclose()


async def test_owned_client_uses_configured_user_agent():
    fetcher = HttpFeedFetcher(logger=make_logger(), user_agent="tester/1.0", timeout_s=3.0)
    async with fetcher:
        client = fetcher._ensure_client()
        assert client.headers["User-Agent"] == "tester/1.0"
        assert client.timeout.read == 3.0
    assert fetcher._client is None
