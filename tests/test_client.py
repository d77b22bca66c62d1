from __future__ import annotations

import json

import httpx
import pytest

from applecore.client import (ApiClientError, JsonApiClient,
                              ResourceNotFoundError, load_json_source)
from applecore.models import ApiConfig

CONFIG = ApiConfig(
    url="https://api.example.com/v1",
    api_key="secret",
    max_retries=2,
    backoff_factor=0.01,
    backoff_max=0.01,
)


def transport_for(*responses):
    calls = []
    queue = list(responses)

    def handler(request):
        calls.append(request)
        return queue.pop(0)

    return httpx.MockTransport(handler), calls


@pytest.mark.asyncio
async def test_get_json_sends_key_and_joins_base_url():
    transport, calls = transport_for(httpx.Response(200, json=[{"id": 1}]))

    async with JsonApiClient(CONFIG, transport=transport) as client:
        payload = await client.get_json("/posts", params={"page": 2})

    assert payload == [{"id": 1}]
    [request] = calls
    assert str(request.url) == "https://api.example.com/v1/posts?page=2"
    assert request.headers["Authorization"] == "ApiKey secret"


@pytest.mark.asyncio
async def test_no_authorization_header_without_key():
    transport, calls = transport_for(httpx.Response(200, json={}))

    async with JsonApiClient(ApiConfig(), transport=transport) as client:
        await client.get_json("https://other.example.com/x")

    assert "Authorization" not in calls[0].headers


@pytest.mark.asyncio
async def test_server_errors_are_retried():
    transport, calls = transport_for(
        httpx.Response(503), httpx.Response(200, json={"ok": True})
    )

    async with JsonApiClient(CONFIG, transport=transport) as client:
        assert await client.get_json("posts") == {"ok": True}

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_retries_are_bounded():
    transport, calls = transport_for(*[httpx.Response(500) for _ in range(3)])

    async with JsonApiClient(CONFIG, transport=transport) as client:
        with pytest.raises(ApiClientError, match="HTTP 500"):
            await client.get_json("posts")

    assert len(calls) == 3


@pytest.mark.asyncio
async def test_not_found_raises_without_retry():
    transport, calls = transport_for(httpx.Response(404, text="gone"))

    async with JsonApiClient(CONFIG, transport=transport) as client:
        with pytest.raises(ResourceNotFoundError):
            await client.get_json("posts/9")

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    transport, calls = transport_for(httpx.Response(400, text="bad"))

    async with JsonApiClient(CONFIG, transport=transport) as client:
        with pytest.raises(ApiClientError, match="bad"):
            await client.get_json("posts")

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_non_json_body_raises():
    transport, _ = transport_for(httpx.Response(200, text="<html>"))

    async with JsonApiClient(CONFIG, transport=transport) as client:
        with pytest.raises(ApiClientError, match="did not return JSON"):
            await client.get_json("posts")


@pytest.mark.asyncio
async def test_client_must_be_opened():
    with pytest.raises(RuntimeError):
        await JsonApiClient(CONFIG).get_json("posts")


@pytest.mark.asyncio
async def test_load_json_source_reads_files_and_urls(tmp_path):
    path = tmp_path / "posts.json"
    path.write_text(json.dumps([{"id": 1}]), encoding="utf-8")
    transport, _ = transport_for(httpx.Response(200, json={"id": 2}))

    assert await load_json_source(str(path)) == [{"id": 1}]
    assert await load_json_source(
        "https://api.example.com/v1/posts/2", CONFIG, transport=transport
    ) == {"id": 2}


def test_backoff_doubles_up_to_the_ceiling():
    client = JsonApiClient(ApiConfig(max_retries=4, backoff_factor=1.0, backoff_max=3.0))

    assert list(client._delays()) == [1.0, 2.0, 3.0, 3.0]
    assert list(JsonApiClient(ApiConfig(max_retries=0))._delays()) == []
