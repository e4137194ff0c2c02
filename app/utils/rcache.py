# =============================================
# File: app/utils/rcache.py
# Purpose: Strategy-aware TTL cache for raw recommendation results.
#          Backends store bytes; every failure degrades to a miss / no-op.
# =============================================
from __future__ import annotations
import json
import os
import threading
import time
from collections import OrderedDict
from typing import Any, Dict, Optional, Protocol, Tuple

from loguru import logger

# TTLs in seconds, keyed by strategy value
TRENDING_TTL = 15 * 60
CO_PURCHASE_TTL = 30 * 60
PERSONALIZED_TTL = 5 * 60


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[bytes]: ...

    def set_with_ttl(self, key: str, value: bytes, ttl_seconds: int) -> None: ...


def _now() -> float:
    return time.time()


class MemoryBackend:
    """In-process TTL store with LRU eviction (env: CACHE_MAX_ENTRIES)."""

    def __init__(self, max_entries: Optional[int] = None) -> None:
        self._max = max_entries or int(os.getenv("CACHE_MAX_ENTRIES", "5000"))
        # key -> (expires_at, value)
        self._store: "OrderedDict[str, Tuple[float, bytes]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        now = _now()
        with self._lock:
            item = self._store.get(key)
            if not item:
                return None
            exp, val = item
            if exp < now:
                self._store.pop(key, None)
                return None
            # LRU touch: move to end
            self._store.move_to_end(key, last=True)
            return val

    def set_with_ttl(self, key: str, value: bytes, ttl_seconds: int) -> None:
        with self._lock:
            self._store[key] = (_now() + ttl_seconds, value)
            self._store.move_to_end(key, last=True)
            # enforce size
            while len(self._store) > self._max:
                self._store.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


def make_key(
    tenant_id: str,
    strategy: str,
    limit: int,
    user_id: Optional[str] = None,
    product_id: Optional[str] = None,
) -> str:
    """
    trending -> tenant; frequently_bought_together -> tenant + product;
    anything personalized -> tenant + user + strategy. Outside FBT the context
    product is excluded from the ranking, so it is part of the key too. The limit
    is appended because trending's catalog fallback scores depend on it.
    """
    if strategy == "frequently_bought_together":
        return f"rec:{tenant_id}:fbt:{product_id}:{limit}"
    if strategy == "trending":
        base = f"rec:{tenant_id}:trending"
    else:
        base = f"rec:{tenant_id}:{user_id}:{strategy}"
    return f"{base}:x={product_id or '-'}:{limit}"


def ttl_for(strategy: str) -> int:
    if strategy == "trending":
        return TRENDING_TTL
    if strategy == "frequently_bought_together":
        return CO_PURCHASE_TTL
    return PERSONALIZED_TTL


class ResultCache:
    """JSON-over-bytes wrapper; backend errors are logged and swallowed."""

    def __init__(self, backend: Optional[CacheBackend]) -> None:
        self._backend = backend

    @property
    def enabled(self) -> bool:
        return self._backend is not None

    def get(self, key: str) -> Dict[str, Any] | None:
        if self._backend is None:
            return None
        try:
            raw = self._backend.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except Exception as e:
            logger.warning(f"[cache] get failed key={key}: {e}")
            return None

    def set(self, key: str, value: Dict[str, Any], ttl: int) -> None:
        if self._backend is None:
            return
        try:
            self._backend.set_with_ttl(key, json.dumps(value).encode("utf-8"), ttl)
        except Exception as e:
            logger.warning(f"[cache] set failed key={key}: {e}")


_default_backend = MemoryBackend()


def get_cache() -> ResultCache:
    """Process-wide cache; CACHE_ENABLED=0 turns every lookup into a miss."""
    if os.getenv("CACHE_ENABLED", "1") in ("0", "false", "False"):
        return ResultCache(None)
    return ResultCache(_default_backend)


def clear() -> None:
    _default_backend.clear()
