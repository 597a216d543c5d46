"""Durable key/value stores backing the analysis cache."""

from __future__ import annotations

import asyncio
import json
import os
import time
from hashlib import sha256
from pathlib import Path
from typing import Any, Optional

from serp_entities.config import settings
from serp_entities.errors import CacheError
from serp_entities.models.interfaces import DurableStore

STORE_VERSION = 1


class FileCacheStore:
    """One JSON file per key with an absolute expiry timestamp."""

    def __init__(self, cache_dir: str = ".cache/analysis", clock=time.time):
        self.cache_dir = Path(cache_dir)
        self._clock = clock

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{sha256(key.encode('utf-8')).hexdigest()}.json"

    def _read(self, path: Path) -> Optional[dict[str, Any]]:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            raise CacheError(f"Unreadable cache file {path.name}: {exc}") from exc
        return payload if isinstance(payload, dict) else None

    def _get_sync(self, key: str) -> Optional[str]:
        payload = self._read(self._path(key))
        if payload is None or payload.get("key") != key:
            return None
        expires_at = payload.get("expires_at")
        if not isinstance(expires_at, (int, float)) or self._clock() >= expires_at:
            return None
        value = payload.get("value")
        return value if isinstance(value, str) else None

    def _set_sync(self, key: str, value: str, ttl_seconds: int) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        payload = {
            "version": STORE_VERSION,
            "key": key,
            "expires_at": self._clock() + max(int(ttl_seconds), 0),
            "value": value,
        }
        tmp_path = path.with_suffix(f".{os.getpid()}.tmp")
        try:
            tmp_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            raise CacheError(f"Cache write failed for {key}: {exc}") from exc

    def _delete_sync(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise CacheError(f"Cache delete failed for {key}: {exc}") from exc

    def _keys_sync(self, prefix: str) -> list[str]:
        if not self.cache_dir.exists():
            return []
        keys: list[str] = []
        for path in sorted(self.cache_dir.glob("*.json")):
            try:
                payload = self._read(path)
            except CacheError:
                continue
            key = payload.get("key") if payload else None
            if isinstance(key, str) and key.startswith(prefix):
                keys.append(key)
        return keys

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get_sync, key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await asyncio.to_thread(self._set_sync, key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_sync, key)

    async def keys(self, prefix: str) -> list[str]:
        return await asyncio.to_thread(self._keys_sync, prefix)


class RedisCacheStore:
    """Redis-backed store; expiry is delegated to SETEX."""

    def __init__(self, redis_url: str = "redis://localhost:6379/0"):
        self.redis_url = redis_url
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            import redis.asyncio as aioredis

            self._client = aioredis.from_url(self.redis_url, decode_responses=True)
        return self._client

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self._get_client().get(key)
        except Exception as exc:
            raise CacheError(f"Redis get failed for {key}: {exc}") from exc
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._get_client().setex(key, max(int(ttl_seconds), 1), value)
        except Exception as exc:
            raise CacheError(f"Redis set failed for {key}: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._get_client().delete(key)
        except Exception as exc:
            raise CacheError(f"Redis delete failed for {key}: {exc}") from exc

    async def keys(self, prefix: str) -> list[str]:
        try:
            return [key async for key in self._get_client().scan_iter(match=f"{prefix}*")]
        except Exception as exc:
            raise CacheError(f"Redis scan failed for {prefix}*: {exc}") from exc

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def build_durable_store() -> Optional[DurableStore]:
    backend = settings.cache_backend.lower().strip()
    if backend == "none":
        return None
    if backend == "file":
        return FileCacheStore(cache_dir=settings.cache_dir)
    if backend == "redis":
        return RedisCacheStore(redis_url=settings.redis_url)
    raise ValueError(f"Unsupported CACHE_BACKEND: {settings.cache_backend}")
