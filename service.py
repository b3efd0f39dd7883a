"""Chat, health, stats and history operations shared by the REST and GraphQL entry points."""
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError as ModelValidationError

from config import Settings
from errors import StorageError, StorageNotConfiguredError, ValidationError
from history import KEY_PREFIX, HistoryLogger, parse_key_timestamp
from models import ChatLogEntry, ChatRequest, HealthStatus, Usage, UpstreamOptions
from responses import utc_timestamp
from storage import KeyValueStore
from upstream import UpstreamClient
from validation import validate_chat_request

logger = logging.getLogger("deepseek-gateway.service")

STATS_KEY_LIMIT = 100
STATS_RECENT_COUNT = 10
HISTORY_DEFAULT_LIMIT = 10
HISTORY_MAX_LIMIT = 100


class ChatService:
    def __init__(self, settings: Settings, upstream: UpstreamClient, store: Optional[KeyValueStore] = None):
        self.settings = settings
        self.upstream = upstream
        self.store = store
        self.history = HistoryLogger(store, ttl_seconds=settings.history_ttl_seconds)

    def prepare(self, body: Any, force_stream: Optional[bool] = None) -> Tuple[ChatRequest, UpstreamOptions]:
        """Validate a chat body and resolve its upstream options."""
        validate_chat_request(body)
        try:
            chat_request = ChatRequest.model_validate(body)
        except ModelValidationError as e:
            raise ValidationError(_first_error(e)) from e
        config = self.upstream.config

        stream = bool(chat_request.stream) if force_stream is None else force_stream
        options = UpstreamOptions(
            api_key=config.api_key,
            model=chat_request.model or config.default_model,
            max_tokens=chat_request.max_tokens or config.max_tokens,
            temperature=chat_request.temperature if chat_request.temperature is not None else config.temperature,
            stream=stream,
            top_p=chat_request.top_p,
            frequency_penalty=chat_request.frequency_penalty,
            presence_penalty=chat_request.presence_penalty,
            stop=chat_request.stop,
        )
        return chat_request, options

    async def open_stream(self, chat_request: ChatRequest, options: UpstreamOptions) -> httpx.Response:
        return await self.upstream.call(_messages(chat_request), options)

    async def complete(self, chat_request: ChatRequest, options: UpstreamOptions) -> Tuple[Any, Optional[ChatLogEntry]]:
        """Run a non-streaming completion; returns the upstream JSON and its log entry."""
        response = await self.upstream.call(_messages(chat_request), options)
        data = await UpstreamClient.read_json(response)
        try:
            entry = build_log_entry(data, options, len(chat_request.messages))
        except Exception as e:
            logger.error(f"Could not summarise usage for chat history: {e}")
            entry = None
        return data, entry

    async def record(self, entry: Optional[ChatLogEntry]) -> None:
        if entry is not None:
            await self.history.log(entry)

    def health(self) -> Dict[str, Any]:
        return HealthStatus(
            timestamp=utc_timestamp(),
            service=self.settings.SERVICE_NAME,
            version=self.settings.VERSION,
        ).model_dump()

    async def stats(self) -> Dict[str, Any]:
        """Count stored chat logs and list the most recent ones."""
        if self.store is None:
            raise StorageNotConfiguredError()

        try:
            keys = await self.store.list_keys(prefix=KEY_PREFIX, limit=STATS_KEY_LIMIT)
        except Exception as e:
            raise StorageError(f"Failed to get stats: {e}") from e

        recent = [{"key": key, "timestamp": parse_key_timestamp(key)} for key in keys]
        recent.sort(key=lambda item: _key_millis(item["key"]), reverse=True)
        return {
            "totalChats": len(keys),
            "recentChats": recent[:STATS_RECENT_COUNT],
            "timestamp": utc_timestamp(),
        }

    async def chat_history(self, limit: Any = None, offset: Any = None) -> List[Dict[str, Any]]:
        """Page through stored log entries; storage problems yield an empty page."""
        limit, offset = _page_bounds(limit, offset)
        if self.store is None:
            return []

        try:
            keys = await self.store.list_keys(prefix=KEY_PREFIX, limit=limit + offset)
        except Exception as e:
            logger.error(f"Failed to list chat history: {e}")
            return []

        entries = []
        for key in keys[offset:offset + limit]:
            try:
                raw = await self.store.get(key)
                if raw is None:
                    continue
                entries.append(json.loads(raw))
            except Exception as e:
                logger.warning(f"Skipping unreadable chat history entry {key}: {e}")
        return entries


def build_log_entry(data: Any, options: UpstreamOptions, messages_count: int) -> ChatLogEntry:
    usage = data.get("usage") if isinstance(data, dict) else None
    request_id = data.get("id") if isinstance(data, dict) else None
    return ChatLogEntry(
        timestamp=utc_timestamp(),
        model=options.model or "",
        messagesCount=messages_count,
        tokensUsed=Usage.model_validate(usage) if isinstance(usage, dict) else Usage(),
        requestId=request_id if isinstance(request_id, str) else None,
    )


def _first_error(exc: ModelValidationError) -> str:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error["loc"]) or "request"
    return f"Invalid {field}: {error['msg']}"


def _messages(chat_request: ChatRequest) -> List[Dict[str, Any]]:
    return [message.model_dump() for message in chat_request.messages]


def _key_millis(key: str) -> int:
    try:
        return int(key.split("_")[1])
    except (IndexError, ValueError):
        return -1


def _page_bounds(limit: Any, offset: Any) -> Tuple[int, int]:
    try:
        limit = int(limit) if limit is not None else HISTORY_DEFAULT_LIMIT
    except (TypeError, ValueError):
        limit = HISTORY_DEFAULT_LIMIT
    try:
        offset = int(offset) if offset is not None else 0
    except (TypeError, ValueError):
        offset = 0
    return min(max(limit, 1), HISTORY_MAX_LIMIT), max(offset, 0)
