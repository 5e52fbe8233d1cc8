from __future__ import annotations

import json

import httpx
import pytest

from leadscout.clients.exa import ExaClient, ExaError, ExaRateLimitError, ExaSchemaError, ExaTimeoutError
from leadscout.clients.tavily import TavilyClient, TavilyError, TavilyRateLimitError, TavilySchemaError


def _exa(handler) -> ExaClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.exa.ai")
    return ExaClient("exa-key", http_client=http)


def _tavily(handler) -> TavilyClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.tavily.com")
    return TavilyClient("tavily-key", http_client=http)


@pytest.mark.asyncio
async def test_exa_search_sends_contents_request():
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"results": [{"url": "https://acme.io", "title": "Acme", "text": "About"}]})

    client = _exa(handler)
    results = await client.search_and_contents(query="saas company", limit=7, max_characters=300)

    assert results == [{"url": "https://acme.io", "title": "Acme", "text": "About"}]
    assert captured["path"] == "/search"
    assert captured["headers"]["x-api-key"] == "exa-key"
    assert captured["body"]["numResults"] == 7
    assert captured["body"]["contents"] == {"text": {"maxCharacters": 300}}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_code", "body", "expected"),
    [
        (429, {}, ExaRateLimitError),
        (504, {}, ExaTimeoutError),
        (500, {"message": "upstream broke"}, ExaError),
        (200, {"data": []}, ExaSchemaError),
        (200, {"results": ["not-an-object"]}, ExaSchemaError),
    ],
)
async def test_exa_error_mapping(status_code, body, expected):
    client = _exa(lambda request: httpx.Response(status_code, json=body))

    with pytest.raises(expected):
        await client.search_and_contents(query="q", limit=5)


@pytest.mark.asyncio
async def test_exa_transport_timeout_is_mapped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ExaTimeoutError) as excinfo:
        await _exa(handler).search_and_contents(query="q", limit=5)
    assert excinfo.value.code == "EXA_TIMEOUT"


@pytest.mark.asyncio
async def test_exa_rejects_non_positive_limit():
    with pytest.raises(ValueError):
        await _exa(lambda request: httpx.Response(200, json={"results": []})).search_and_contents(query="q", limit=0)


def test_clients_require_api_keys():
    with pytest.raises(ValueError):
        ExaClient("")
    with pytest.raises(ValueError):
        TavilyClient("")


@pytest.mark.asyncio
async def test_tavily_search_uses_bearer_auth_and_exclusions():
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers["authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"results": [{"url": "https://acme.io", "content": "About Acme"}]})

    results = await _tavily(handler).search(query="saas", max_results=4, exclude_domains=["linkedin.com"])

    assert results[0]["url"] == "https://acme.io"
    assert captured["auth"] == "Bearer tavily-key"
    assert captured["body"]["max_results"] == 4
    assert captured["body"]["exclude_domains"] == ["linkedin.com"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_code", "body", "expected"),
    [
        (429, {}, TavilyRateLimitError),
        (503, {"detail": "maintenance"}, TavilyError),
        (200, {"answer": "no results key"}, TavilySchemaError),
    ],
)
async def test_tavily_error_mapping(status_code, body, expected):
    with pytest.raises(expected):
        await _tavily(lambda request: httpx.Response(status_code, json=body)).search(query="q")


@pytest.mark.asyncio
async def test_owned_http_client_is_closed():
    client = ExaClient("exa-key")
    await client.aclose()

    assert client._http.is_closed
