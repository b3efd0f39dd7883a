"""Best-effort usage logging to the chat history store."""
import logging
import random
import string
import time
from datetime import datetime, timezone
from typing import Optional

from models import ChatLogEntry
from storage import KeyValueStore

logger = logging.getLogger("deepseek-gateway.history")

KEY_PREFIX = "chat_"
KEY_SUFFIX_LENGTH = 9
KEY_ALPHABET = string.ascii_lowercase + string.digits


def generate_log_key(now_ms: Optional[int] = None) -> str:
    """chat_<epoch millis>_<random suffix>"""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(random.choices(KEY_ALPHABET, k=KEY_SUFFIX_LENGTH))
    return f"{KEY_PREFIX}{now_ms}_{suffix}"


def parse_key_timestamp(key: str) -> Optional[str]:
    """ISO timestamp embedded in a log key, or None if the key is malformed."""
    parts = key.split("_")
    if len(parts) < 3 or parts[0] != KEY_PREFIX.rstrip("_"):
        return None
    try:
        millis = int(parts[1])
    except ValueError:
        return None
    moment = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class HistoryLogger:
    """Writes ChatLogEntry records; a failed write never reaches the caller."""

    def __init__(self, store: Optional[KeyValueStore], ttl_seconds: int = 30 * 24 * 60 * 60):
        self.store = store
        self.ttl_seconds = ttl_seconds

    async def log(self, entry: ChatLogEntry) -> Optional[str]:
        """Store the entry and return its key, or None when skipped or failed."""
        if self.store is None:
            return None

        key = generate_log_key()
        try:
            await self.store.put(key, entry.to_json(), expiration_ttl=self.ttl_seconds)
        except Exception as e:
            logger.error(f"Failed to log chat history {key}: {e}")
            return None

        logger.debug(f"Logged chat history {key}")
        return key
