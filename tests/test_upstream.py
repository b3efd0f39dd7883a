"""Unit tests for the upstream client."""
import asyncio
import json

import httpx
import pytest

from config import UpstreamConfig
from errors import ConfigurationError, UpstreamError
from models import UpstreamOptions
from upstream import UpstreamClient, build_payload, extract_error_message

MESSAGES = [{"role": "user", "content": "Hi"}]


def test_build_payload_applies_defaults_and_omits_unset_parameters():
    payload = build_payload(MESSAGES, UpstreamOptions(api_key="k"), UpstreamConfig())

    assert payload == {
        "model": "deepseek-chat",
        "messages": MESSAGES,
        "max_tokens": 4000,
        "temperature": 0.7,
        "stream": False,
    }


def test_build_payload_includes_given_tuning_parameters():
    options = UpstreamOptions(
        api_key="k",
        model="deepseek-reasoner",
        max_tokens=128,
        temperature=0,
        stream=True,
        top_p=0.9,
        presence_penalty=0.5,
        stop=["\n\n"],
    )
    payload = build_payload(MESSAGES, options, UpstreamConfig())

    assert payload["model"] == "deepseek-reasoner"
    assert payload["max_tokens"] == 128
    assert payload["temperature"] == 0
    assert payload["stream"] is True
    assert payload["top_p"] == 0.9
    assert payload["presence_penalty"] == 0.5
    assert payload["stop"] == ["\n\n"]
    assert "frequency_penalty" not in payload


def test_extract_error_message_prefers_nested_message():
    body = json.dumps({"error": {"message": "rate limited", "type": "rate_limit"}})
    assert extract_error_message(429, body) == "rate limited"


@pytest.mark.parametrize("body", ["oops", '{"error": "flat string"}', "[]", '{"detail": "x"}'])
def test_extract_error_message_falls_back_to_status_and_text(body):
    message = extract_error_message(500, body)
    assert "500" in message
    assert body in message


def test_call_without_api_key_makes_no_request():
    seen = []
    transport = httpx.MockTransport(lambda request: seen.append(request) or httpx.Response(200, json={}))
    client = UpstreamClient(UpstreamConfig(), transport=transport)

    with pytest.raises(ConfigurationError, match="API key not configured"):
        asyncio.run(client.call(MESSAGES, UpstreamOptions(api_key="")))
    assert seen == []


def test_call_sends_authenticated_post():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"id": "abc"})

    client = UpstreamClient(UpstreamConfig(base_url="https://upstream.test/v1"), transport=httpx.MockTransport(handler))

    async def run():
        response = await client.call(MESSAGES, UpstreamOptions(api_key="secret"))
        return await UpstreamClient.read_json(response)

    assert asyncio.run(run()) == {"id": "abc"}
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://upstream.test/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer secret"
    assert request.headers["Content-Type"] == "application/json"


def test_call_raises_upstream_error_with_status():
    transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"error": {"message": "bad key"}}))
    client = UpstreamClient(UpstreamConfig(), transport=transport)

    with pytest.raises(UpstreamError) as exc_info:
        asyncio.run(client.call(MESSAGES, UpstreamOptions(api_key="k")))
    assert exc_info.value.message == "bad key"
    assert exc_info.value.upstream_status == 401


def test_transport_failure_becomes_upstream_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = UpstreamClient(UpstreamConfig(), transport=httpx.MockTransport(handler))

    with pytest.raises(UpstreamError, match="connection refused"):
        asyncio.run(client.call(MESSAGES, UpstreamOptions(api_key="k")))


def test_relay_closes_upstream_response_when_abandoned():
    chunks = [b"data: one\n\n", b"data: two\n\n", b"data: [DONE]\n\n"]

    def handler(request):
        async def body():
            for chunk in chunks:
                yield chunk

        return httpx.Response(200, content=body(), headers={"content-type": "text/event-stream"})

    client = UpstreamClient(UpstreamConfig(), transport=httpx.MockTransport(handler))

    async def run():
        response = await client.call(MESSAGES, UpstreamOptions(api_key="k", stream=True))
        relay = UpstreamClient.relay(response)
        first = await relay.__anext__()
        await relay.aclose()
        return first, response

    first, response = asyncio.run(run())
    assert first == chunks[0]
    assert response.is_closed


def test_relay_closes_upstream_response_when_drained():
    def handler(request):
        async def body():
            yield b"data: [DONE]\n\n"

        return httpx.Response(200, content=body())

    client = UpstreamClient(UpstreamConfig(), transport=httpx.MockTransport(handler))

    async def run():
        response = await client.call(MESSAGES, UpstreamOptions(api_key="k", stream=True))
        received = [chunk async for chunk in UpstreamClient.relay(response)]
        return received, response

    received, response = asyncio.run(run())
    assert received == [b"data: [DONE]\n\n"]
    assert response.is_closed
