"""
Response cache for upstream game API calls.
"""

import json
from typing import Any, Mapping, Optional, Protocol, TYPE_CHECKING

from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


KEY_PREFIX = "st"

STATIC_TTL = 3600
MARKET_TTL = 60
PERSONAL_TTL = 0
DEFAULT_TTL = 300


class KeyValueStore(Protocol):
    async def setex(self, key: str, seconds: int, value: str) -> None: ...

    async def get(self, key: str) -> Optional[str]: ...


def get_cache_ttl(path: str) -> int:
    """TTL in seconds for a request path; 0 means never cache."""
    if "/systems" in path or "/factions" in path:
        return STATIC_TTL
    if "/markets" in path:
        return MARKET_TTL
    if "/my/" in path:
        return PERSONAL_TTL
    return DEFAULT_TTL


def make_cache_key(method: str, path: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Build ``st:<method>:<path>:<params-json>``; params keep caller order."""
    serialized = json.dumps(dict(params), separators=(",", ":")) if params else ""
    return f"{KEY_PREFIX}:{method.lower()}:{path}:{serialized}"


class ResponseCache:
    """Stores decoded GET payloads under a TTL chosen by URL pattern."""

    def __init__(self, store: KeyValueStore, metrics: Optional["MetricsCollector"] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("proxy.cache")

    async def store_response(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]],
        payload: Any,
    ) -> bool:
        """
        Cache a successful response.

        Returns True when an entry was written. Non-GET requests and paths with
        a zero TTL are skipped. Store failures are logged and reported as False,
        never raised.
        """
        if method.upper() != "GET":
            return False

        ttl = get_cache_ttl(path)
        if ttl <= 0:
            return False

        cache_key = make_cache_key(method, path, params)
        try:
            await self.store.setex(cache_key, ttl, json.dumps(payload))
        except Exception as e:
            self.logger.error("Failed to cache response", cache_key=cache_key, error=str(e))
            self._count_write("error")
            return False

        self.logger.debug("Cached response", cache_key=cache_key, ttl=ttl)
        self._count_write("ok")
        return True

    async def lookup(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Any]:
        """Return the cached payload for a request, or None on miss."""
        cache_key = make_cache_key(method, path, params)
        try:
            cached = await self.store.get(cache_key)
        except Exception as e:
            self.logger.error("Cache fetch error", cache_key=cache_key, error=str(e))
            return None

        if cached is None:
            self._count("cache_misses_total")
            return None

        try:
            payload = json.loads(cached)
        except (TypeError, json.JSONDecodeError):
            self.logger.warning("Failed to deserialize cached payload", cache_key=cache_key)
            return None

        self._count("cache_hits_total")
        return payload

    def _count(self, metric_name: str) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, cache_type="response")

    def _count_write(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_writes_total", result=result)
