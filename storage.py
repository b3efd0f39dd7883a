"""Key-value storage for chat history with per-key expiry."""
import asyncio
import logging
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from config import Settings
from errors import StorageError

logger = logging.getLogger("deepseek-gateway.storage")


class KeyValueStore:
    """Put/get/list store; list_keys returns keys in ascending order."""

    async def initialize(self):
        pass

    async def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def list_keys(self, prefix: str = "", limit: int = 1000) -> List[str]:
        raise NotImplementedError

    async def close(self):
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store for development and tests."""

    def __init__(self):
        self._items: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> bool:
        _, expires_at = self._items[key]
        return expires_at is None or expires_at > time.time()

    async def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        expires_at = time.time() + expiration_ttl if expiration_ttl else None
        self._items[key] = (value, expires_at)

    async def get(self, key: str) -> Optional[str]:
        if key not in self._items or not self._live(key):
            return None
        return self._items[key][0]

    async def list_keys(self, prefix: str = "", limit: int = 1000) -> List[str]:
        keys = sorted(k for k in self._items if k.startswith(prefix) and self._live(k))
        return keys[:limit]


class MongoKeyValueStore(KeyValueStore):
    """MongoDB-backed store; expiry is enforced by a TTL index on expireAt."""

    def __init__(self, uri: str, db_name: str, collection_name: str, timeout_seconds: int = 5):
        timeout_ms = timeout_seconds * 1000
        self._client = AsyncIOMotorClient(
            uri,
            maxPoolSize=50,
            serverSelectionTimeoutMS=timeout_ms,
            connectTimeoutMS=timeout_ms,
            socketTimeoutMS=timeout_ms,
        )
        self._collection = self._client[db_name][collection_name]
        self._timeout_seconds = timeout_seconds

    async def initialize(self):
        """Check connectivity and create the TTL index."""
        try:
            await asyncio.wait_for(self._client.admin.command("ping"), timeout=self._timeout_seconds)
            await self._collection.create_index([("expireAt", ASCENDING)], expireAfterSeconds=0)
            logger.info("Connected to MongoDB chat history store")
        except (PyMongoError, asyncio.TimeoutError) as e:
            # History is optional; requests still succeed and writes are logged as failures.
            logger.warning(f"MongoDB chat history store unavailable: {e}")

    async def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        document = {"_id": key, "value": value}
        if expiration_ttl:
            document["expireAt"] = datetime.now(timezone.utc) + timedelta(seconds=expiration_ttl)
        try:
            await self._collection.replace_one({"_id": key}, document, upsert=True)
        except PyMongoError as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        try:
            document = await self._collection.find_one({"_id": key, **self._not_expired()})
        except PyMongoError as e:
            raise StorageError(f"Failed to read {key}: {e}") from e
        return document["value"] if document else None

    async def list_keys(self, prefix: str = "", limit: int = 1000) -> List[str]:
        query = {"_id": {"$regex": f"^{re.escape(prefix)}"}, **self._not_expired()}
        try:
            cursor = self._collection.find(query, {"_id": 1}).sort("_id", ASCENDING).limit(limit)
            return [document["_id"] async for document in cursor]
        except PyMongoError as e:
            raise StorageError(f"Failed to list keys: {e}") from e

    @staticmethod
    def _not_expired() -> Dict:
        # The TTL monitor runs about once a minute, so expired documents can linger.
        return {
            "$or": [
                {"expireAt": {"$exists": False}},
                {"expireAt": {"$gt": datetime.now(timezone.utc)}},
            ]
        }

    async def close(self):
        self._client.close()


def build_store(app_settings: Settings) -> Optional[KeyValueStore]:
    """Return the configured chat history store, or None when history is disabled."""
    backend = app_settings.CHAT_HISTORY_BACKEND
    if backend == "mongo":
        return MongoKeyValueStore(
            app_settings.MONGO_URI,
            app_settings.DB_NAME,
            app_settings.CHAT_HISTORY_COLLECTION,
            timeout_seconds=app_settings.DB_CONNECTION_TIMEOUT,
        )
    if backend == "memory":
        return InMemoryKeyValueStore()
    return None
