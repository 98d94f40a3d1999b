"""
Persisted key-value store — the shared storage behind the fallback mailbox.

Provides:
    • KeyValueStore protocol (async JSON get/set/delete + ping)
    • MemoryKeyValueStore — process-local, with write notifications
    • RedisKeyValueStore  — async Redis client, poll-only
    • create_store() factory driven by settings.MAILBOX_BACKEND

Values are stored as JSON text. A value that does not parse is treated as
the caller's default and logged; a corrupt key never takes the process down.

Usage:
    from backend.app.core.kv_store import create_store

    store = create_store()
    await store.set_json("sosAlertBroadcast", {"timestamp": 1758500000000, "data": {...}})
    envelope = await store.get_json("sosAlertBroadcast")
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from backend.app.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

WriteCallback = Callable[[str, Any], Awaitable[None]]


def _encode(value: Any) -> str:
    return json.dumps(value, default=str)


def _decode(key: str, raw: Optional[str], default: Any) -> Any:
    """Parse stored JSON; malformed or missing → default."""
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning("Malformed JSON under key %s — treating as empty: %s", key, e)
        return default


class KeyValueStore(Protocol):
    """Async JSON key-value store shared by reporters and observers."""

    async def get_json(self, key: str, default: Any = None) -> Any: ...

    async def set_json(self, key: str, value: Any) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def ping(self) -> bool: ...


# ═══════════════════════════════════════════════════════════════════════════
# In-memory backend
# ═══════════════════════════════════════════════════════════════════════════

class MemoryKeyValueStore:
    """
    Process-local store.

    Watchers registered with watch() are awaited after every write, in
    registration order, with the key and the decoded value. This stands in
    for the browser's storage event.
    """

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._watchers: List[WriteCallback] = []

    async def get_json(self, key: str, default: Any = None) -> Any:
        return _decode(key, self._data.get(key), default)

    async def get_raw(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set_raw(self, key: str, raw: str) -> bool:
        """Store text as-is (other writers are not obliged to write valid JSON)."""
        self._data[key] = raw
        await self._notify(key, _decode(key, raw, None))
        return True

    async def set_json(self, key: str, value: Any) -> bool:
        self._data[key] = _encode(value)
        await self._notify(key, value)
        return True

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def ping(self) -> bool:
        return True

    def watch(self, callback: WriteCallback) -> Callable[[], None]:
        """Register a write callback; returns a function that unregisters it."""
        self._watchers.append(callback)

        def _unwatch() -> None:
            if callback in self._watchers:
                self._watchers.remove(callback)

        return _unwatch

    async def _notify(self, key: str, value: Any) -> None:
        for callback in list(self._watchers):
            try:
                await callback(key, value)
            except Exception as e:
                logger.error("Store watcher failed for key %s: %s", key, e)


# ═══════════════════════════════════════════════════════════════════════════
# Redis backend
# ═══════════════════════════════════════════════════════════════════════════

class RedisKeyValueStore:
    """Redis-backed store. Readers poll; there are no write notifications."""

    def __init__(self, url: str, client: Any = None) -> None:
        self.url = url
        self._client = client

    async def _get_client(self):
        """Get or create async Redis client."""
        if self._client is None:
            import redis.asyncio as aioredis
            self._client = aioredis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("Redis connected: %s", self.url)
        return self._client

    async def get_json(self, key: str, default: Any = None) -> Any:
        client = await self._get_client()
        try:
            raw = await client.get(key)
        except Exception as e:
            logger.warning("Store GET error for %s: %s", key, e)
            return default
        return _decode(key, raw, default)

    async def set_json(self, key: str, value: Any) -> bool:
        client = await self._get_client()
        try:
            await client.set(key, _encode(value))
            return True
        except Exception as e:
            logger.warning("Store SET error for %s: %s", key, e)
            return False

    async def delete(self, key: str) -> bool:
        client = await self._get_client()
        try:
            return bool(await client.delete(key))
        except Exception as e:
            logger.warning("Store DELETE error for %s: %s", key, e)
            return False

    async def ping(self) -> bool:
        client = await self._get_client()
        try:
            return bool(await client.ping())
        except Exception as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.info("Redis connection closed")


def create_store(config: Optional[Settings] = None) -> KeyValueStore:
    """Build the store selected by MAILBOX_BACKEND."""
    config = config or default_settings
    backend = config.MAILBOX_BACKEND.lower()
    if backend == "redis":
        return RedisKeyValueStore(config.REDIS_URL)
    if backend != "memory":
        logger.warning("Unknown MAILBOX_BACKEND %r — using memory", config.MAILBOX_BACKEND)
    return MemoryKeyValueStore()
