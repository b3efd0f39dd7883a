"""Client for the DeepSeek chat-completion API."""
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from config import UpstreamConfig
from errors import ConfigurationError, UpstreamError
from models import UpstreamOptions

logger = logging.getLogger("deepseek-gateway.upstream")

OPTIONAL_PARAMETERS = ("top_p", "frequency_penalty", "presence_penalty", "stop")


def build_payload(messages: List[Dict[str, Any]], options: UpstreamOptions, config: UpstreamConfig) -> Dict[str, Any]:
    """Build the completion request body; unset tuning parameters are left out entirely."""
    payload: Dict[str, Any] = {
        "model": options.model or config.default_model,
        "messages": messages,
        "max_tokens": options.max_tokens or config.max_tokens,
        "temperature": options.temperature if options.temperature is not None else config.temperature,
        "stream": options.stream,
    }
    for name in OPTIONAL_PARAMETERS:
        value = getattr(options, name)
        if value is not None:
            payload[name] = value
    return payload


def extract_error_message(status_code: int, body_text: str) -> str:
    """Pull error.message out of an upstream error body, falling back to status and raw text."""
    try:
        parsed = json.loads(body_text)
    except ValueError:
        parsed = None

    if isinstance(parsed, dict):
        error = parsed.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str) and error["message"]:
            return error["message"]

    return f"Upstream API error ({status_code}): {body_text}"


class UpstreamClient:
    """Sends chat completions upstream and classifies failures."""

    def __init__(self, config: UpstreamConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        # An injected transport is used as-is, without proxy mounts from the environment.
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout),
            transport=transport,
            trust_env=transport is None,
        )

    async def call(self, messages: List[Dict[str, Any]], options: UpstreamOptions) -> httpx.Response:
        """POST the completion request and return the still-open response.

        The caller owns the returned response: either stream its body or
        hand it to read_json, which closes it.
        """
        if not options.api_key:
            raise ConfigurationError("API key not configured")

        payload = build_payload(messages, options, self.config)
        request = self._client.build_request(
            "POST",
            self.config.chat_url,
            json=payload,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {options.api_key}",
                # relay() forwards raw bytes, so the body must arrive unencoded.
                "Accept-Encoding": "identity",
            },
        )

        logger.info(f"Upstream request: model={payload['model']} messages={len(messages)} stream={payload['stream']}")

        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error(f"Upstream request failed: {e}")
            raise UpstreamError(f"Upstream request failed: {e}") from e

        if not response.is_success:
            try:
                await response.aread()
                body_text = response.text
            finally:
                await response.aclose()
            message = extract_error_message(response.status_code, body_text)
            logger.warning(f"Upstream returned {response.status_code}: {message}")
            raise UpstreamError(message, upstream_status=response.status_code)

        return response

    @staticmethod
    async def read_json(response: httpx.Response) -> Any:
        """Buffer a successful response, parse it and release the connection."""
        try:
            await response.aread()
            return response.json()
        finally:
            await response.aclose()

    @staticmethod
    async def relay(response: httpx.Response) -> AsyncIterator[bytes]:
        """Yield the raw body bytes, closing the response however iteration ends."""
        try:
            async for chunk in response.aiter_raw():
                yield chunk
        finally:
            await response.aclose()

    async def close(self):
        await self._client.aclose()
