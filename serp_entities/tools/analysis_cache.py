from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from serp_entities.models.interfaces import DurableStore
from serp_entities.services.logger import log_cache_operation

CACHE_NAMESPACE = "analysis"
DEFAULT_TTL_SECONDS = 24 * 60 * 60


@dataclass(frozen=True, slots=True)
class CacheEntry:
    data: Any
    created_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.created_at < self.ttl

    def to_json(self) -> str:
        return json.dumps(
            {"data": self.data, "created_at": self.created_at, "ttl": self.ttl},
            ensure_ascii=False,
        )

    @classmethod
    def from_json(cls, raw: str) -> Optional["CacheEntry"]:
        try:
            payload = json.loads(raw)
        except ValueError:
            return None
        if not isinstance(payload, dict) or "data" not in payload:
            return None
        created_at = payload.get("created_at")
        ttl = payload.get("ttl")
        if not isinstance(created_at, (int, float)) or not isinstance(ttl, (int, float)):
            return None
        return cls(data=payload["data"], created_at=float(created_at), ttl=float(ttl))


def build_cache_key(
    query: str,
    country: str,
    lang: str,
    device: str,
    *,
    namespace: str = CACHE_NAMESPACE,
) -> str:
    return f"{namespace}:{query}:{country}:{lang}:{device}"


class AnalysisCache:
    """Two-tier cache: a durable store first, then a bounded in-process map.

    Values must be JSON-serializable. Durable-store failures are logged and
    never raised; the memory tier keeps working on its own.
    """

    def __init__(
        self,
        store: Optional[DurableStore] = None,
        *,
        max_memory_entries: int = 100,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        namespace: str = CACHE_NAMESPACE,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.max_memory_entries = max(int(max_memory_entries), 1)
        self.default_ttl = int(default_ttl)
        self.namespace = namespace
        self._clock = clock
        self._memory: dict[str, CacheEntry] = {}

    def key_for(self, query: str, country: str, lang: str, device: str) -> str:
        return build_cache_key(query, country, lang, device, namespace=self.namespace)

    async def get(self, key: str) -> Any | None:
        now = self._clock()

        if self.store is not None:
            try:
                raw = await self.store.get(key)
            except Exception as exc:
                log_cache_operation("get", key, "failed", error=str(exc))
                raw = None
            if raw is not None:
                entry = CacheEntry.from_json(raw)
                if entry is not None and entry.is_valid(now):
                    log_cache_operation("get", key, "durable_hit")
                    return entry.data

        entry = self._memory.get(key)
        if entry is not None and entry.is_valid(now):
            log_cache_operation("get", key, "memory_hit")
            return entry.data

        log_cache_operation("get", key, "miss")
        return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl_seconds = self.default_ttl if ttl is None else int(ttl)
        entry = CacheEntry(data=value, created_at=self._clock(), ttl=float(ttl_seconds))

        if self.store is not None:
            try:
                await self.store.set(key, entry.to_json(), ttl_seconds)
            except Exception as exc:
                log_cache_operation("set", key, "failed", error=str(exc))

        self._memory[key] = entry
        self._evict()

    async def delete(self, key: str) -> None:
        if self.store is not None:
            try:
                await self.store.delete(key)
            except Exception as exc:
                log_cache_operation("delete", key, "failed", error=str(exc))
        self._memory.pop(key, None)

    async def clear(self) -> None:
        prefix = f"{self.namespace}:"
        if self.store is not None:
            try:
                for key in await self.store.keys(prefix):
                    await self.store.delete(key)
            except Exception as exc:
                log_cache_operation("clear", prefix, "failed", error=str(exc))
        for key in [k for k in self._memory if k.startswith(prefix)]:
            del self._memory[key]

    def _evict(self) -> None:
        overflow = len(self._memory) - self.max_memory_entries
        if overflow <= 0:
            return
        oldest = sorted(self._memory.items(), key=lambda item: item[1].created_at)[:overflow]
        for key, _entry in oldest:
            del self._memory[key]

    def memory_keys(self) -> list[str]:
        return list(self._memory)

    def stats(self) -> dict[str, Any]:
        return {
            "memory_entries": len(self._memory),
            "has_durable_store": self.store is not None,
        }
