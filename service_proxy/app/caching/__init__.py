"""
Proxy caching package.

Provides the response cache and the key-value stores behind it. Entries
are short-lived and expire lazily; personal data is never written.
"""

from .memory_store import CacheEntry, InMemoryStore
from .redis_store import RedisStore
from .response_cache import ResponseCache, get_cache_ttl, make_cache_key

__all__ = [
    "CacheEntry",
    "InMemoryStore",
    "RedisStore",
    "ResponseCache",
    "get_cache_ttl",
    "make_cache_key",
]
