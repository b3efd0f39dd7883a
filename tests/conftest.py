"""Shared fixtures: a gateway app wired to a mocked upstream and an in-memory store."""
import gzip
import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from storage import InMemoryKeyValueStore, KeyValueStore

CHAT_RESPONSE = {
    "id": "chatcmpl-123",
    "object": "chat.completion",
    "created": 1700000000,
    "model": "deepseek-chat",
    "choices": [
        {
            "index": 0,
            "message": {"role": "assistant", "content": "Hello! How can I help?"},
            "finish_reason": "stop",
        }
    ],
    "usage": {"prompt_tokens": 9, "completion_tokens": 7, "total_tokens": 16},
}

STREAM_CHUNKS = [
    b'data: {"id":"chatcmpl-123","choices":[{"delta":{"content":"Hel"}}]}\n\n',
    b'data: {"id":"chatcmpl-123","choices":[{"delta":{"content":"lo"}}]}\n\n',
    b"data: [DONE]\n\n",
]


class FakeUpstream:
    """Records outbound requests and answers with a configurable response."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status_code = 200
        self.json_body: Any = CHAT_RESPONSE
        self.text_body: Optional[str] = None
        self.stream_chunks: Optional[List[bytes]] = None
        # Gzip the stream for clients that accept it, like a compressing CDN.
        self.gzip_stream = False

    @property
    def payloads(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if self.stream_chunks is not None:
            chunks = list(self.stream_chunks)
            headers = {"content-type": "text/event-stream"}
            if self.gzip_stream and "gzip" in request.headers.get("accept-encoding", ""):
                chunks = [gzip.compress(b"".join(chunks))]
                headers["content-encoding"] = "gzip"

            async def body():
                for chunk in chunks:
                    yield chunk

            return httpx.Response(self.status_code, content=body(), headers=headers)

        if self.text_body is not None:
            return httpx.Response(self.status_code, text=self.text_body)
        return httpx.Response(self.status_code, json=self.json_body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class BrokenStore(KeyValueStore):
    async def put(self, key, value, expiration_ttl=None):
        raise RuntimeError("store is down")


def make_settings(**overrides) -> Settings:
    values = {
        "DEEPSEEK_API_KEY": "test-key",
        "CHAT_HISTORY_BACKEND": "",
        "DEBUG": False,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def build_client(fake_upstream) -> Callable[..., TestClient]:
    """Factory for a TestClient; pass store=None for a gateway without history."""

    def _build(store=None, **setting_overrides) -> TestClient:
        app = create_app(make_settings(**setting_overrides), store=store, transport=fake_upstream.transport)
        return TestClient(app)

    return _build


@pytest.fixture
def client(build_client, store) -> TestClient:
    return build_client(store=store)


@pytest.fixture
def client_without_store(build_client) -> TestClient:
    return build_client()
