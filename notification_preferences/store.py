"""
Key/value persistence for serialized notification preferences.

The preference service only needs two async operations, get and set, on a
string blob. Redis is used when REDIS_URL is configured; otherwise an
in-process dict is used.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol, runtime_checkable

from .config import REDIS_URL

logger = logging.getLogger(__name__)


@runtime_checkable
class PreferenceStore(Protocol):
    """Durable key/value primitive supplied by the host platform."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...


def _require_key(key: str) -> str:
    normalized = str(key).strip()
    if not normalized:
        raise ValueError("storage key is required")
    return normalized


class InMemoryPreferenceStore:
    """Process-local store; contents are lost on restart."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(_require_key(key))

    async def set(self, key: str, value: str) -> None:
        self._data[_require_key(key)] = value

    def __contains__(self, key: object) -> bool:
        return key in self._data


class RedisPreferenceStore:
    """Redis-backed store. Records are written without expiry."""

    def __init__(self, redis_url: Optional[str] = None, client=None) -> None:
        if client is None:
            url = redis_url or REDIS_URL
            if not url:
                raise ValueError("redis_url is required when no client is given")
            import redis.asyncio as redis

            client = redis.from_url(url, decode_responses=True)
        self._redis = client

    async def get(self, key: str) -> Optional[str]:
        raw = await self._redis.get(_require_key(key))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            return raw.decode("utf-8")
        return raw

    async def set(self, key: str, value: str) -> None:
        await self._redis.set(_require_key(key), value)

    async def close(self) -> None:
        await self._redis.aclose()


def build_store(redis_url: Optional[str] = None) -> PreferenceStore:
    """Pick the Redis store when a URL is configured, else the in-memory store."""
    url = redis_url if redis_url is not None else REDIS_URL
    if url:
        logger.info("Using Redis notification preference store")
        return RedisPreferenceStore(redis_url=url)
    logger.info("REDIS_URL not set; using in-memory notification preference store")
    return InMemoryPreferenceStore()
