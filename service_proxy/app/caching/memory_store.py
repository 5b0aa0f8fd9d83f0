"""
In-process key-value store with per-key expiry.

Mirrors the small slice of the Redis API the response cache needs
(``setex``/``get``/``delete``) so it can stand in for a real backend.
Expired entries are evicted lazily when read; there is no sweeper.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional


@dataclass
class CacheEntry:
    """Stored value plus its absolute expiry (epoch seconds)."""

    value: str
    expires_at: float


class InMemoryStore:
    """Ephemeral store used when no external cache is configured."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    async def setex(self, key: str, seconds: int, value: str) -> None:
        """Store ``value`` under ``key`` for ``seconds`` seconds."""
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + seconds)

    async def get(self, key: str) -> Optional[str]:
        """Return the live value for ``key`` or ``None``."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() > entry.expires_at:
            del self._entries[key]
            return None

        return entry.value

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        # Raw membership; does not check expiry.
        return key in self._entries
