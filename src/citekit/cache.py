"""Response cache and per-source rate limiting.

Both concerns share one :class:`Cache` port with a TTL contract. The rate
limiter keeps its counters in the cache as minute and hour buckets, so the
buckets expire on their own and no cleanup pass is needed. Use
:class:`DiskCache` for state shared between processes and
:class:`MemoryCache` for tests or single-process use.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import os
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

Clock = Callable[[], float]

DAY = 86400

# ------------- Defaults -------------


@dataclass(frozen=True)
class RateLimit:
    """Request ceilings for one source."""

    per_minute: int
    per_hour: int


DEFAULT_LIMITS: dict[str, RateLimit] = {
    "doi": RateLimit(50, 1000),  # CrossRef polite pool
    "pubmed": RateLimit(30, 600),  # NCBI without API key
    "isbn": RateLimit(100, 2000),  # Google Books
    "url_scraper": RateLimit(30, 500),
}

DEFAULT_TTLS: dict[str, int] = {
    "doi": 7 * DAY,
    "pubmed": 7 * DAY,
    "isbn": 30 * DAY,
    "url_scraper": 1 * DAY,  # web pages change faster
}


def make_cache_key(source: str, url: str, params: dict[str, Any] | None = None) -> str:
    """Build the response cache key for a request to ``source``."""
    payload = url + json.dumps(params or {}, sort_keys=True, default=str)
    return f"{source}:{hashlib.md5(payload.encode('utf-8')).hexdigest()}"


# ------------- Cache Port -------------


class Cache(ABC):
    """Key/value store where every entry carries its own TTL in seconds."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the live value for ``key`` or None if absent or expired."""

    @abstractmethod
    def put(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` for ``ttl`` seconds."""

    @abstractmethod
    def increment(self, key: str, ttl: float) -> int:
        """Add one to an integer counter, creating it with ``ttl`` if absent."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    @abstractmethod
    def clear(self, prefix: str | None = None) -> int:
        """Remove every key (or every key starting with ``prefix``); return the count."""


class MemoryCache(Cache):
    """In-process TTL cache. The clock is injectable for tests."""

    def __init__(self, clock: Clock = time.time) -> None:
        self.clock = clock
        self.lock = threading.Lock()
        self.data: dict[str, tuple[Any, float]] = {}

    def _live(self, key: str) -> Any | None:
        entry = self.data.get(key)
        if entry is None:
            return None
        value, expires = entry
        if self.clock() >= expires:
            del self.data[key]
            return None
        return value

    def get(self, key: str) -> Any | None:
        with self.lock:
            return self._live(key)

    def put(self, key: str, value: Any, ttl: float) -> None:
        with self.lock:
            self.data[key] = (value, self.clock() + ttl)

    def increment(self, key: str, ttl: float) -> int:
        with self.lock:
            current = self._live(key)
            if current is None:
                self.data[key] = (1, self.clock() + ttl)
                return 1
            expires = self.data[key][1]
            self.data[key] = (int(current) + 1, expires)
            return int(current) + 1

    def delete(self, key: str) -> None:
        with self.lock:
            self.data.pop(key, None)

    def clear(self, prefix: str | None = None) -> int:
        with self.lock:
            keys = [k for k in self.data if prefix is None or k.startswith(prefix)]
            for k in keys:
                del self.data[k]
            return len(keys)


class DiskCache(Cache):
    """Thread-safe on-disk JSON cache with per-entry expiry.

    The file is re-read before each operation and rewritten atomically
    (temp file + ``os.replace``), so separate processes pointed at the same
    path observe each other's entries. Expired entries are dropped whenever
    the file is rewritten.
    """

    def __init__(self, path: str, clock: Clock = time.time, logger: logging.Logger | None = None) -> None:
        self.path = path
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self.lock = threading.Lock()
        self.data: dict[str, dict[str, Any]] = {}
        self._load()

    def _load(self) -> None:
        """Load cache from disk."""
        if not os.path.exists(self.path):
            self.data = {}
            return
        try:
            with open(self.path, encoding="utf-8") as f:
                self.data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.warning("Ignoring unreadable cache file %s: %s", self.path, e)
            self.data = {}

    def _save(self) -> None:
        """Save cache to disk atomically, dropping expired entries."""
        now = self.clock()
        self.data = {k: v for k, v in self.data.items() if v.get("expires", 0) > now}
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp = tempfile.NamedTemporaryFile(
            "w", delete=False, encoding="utf-8", suffix=".json", prefix=".tmp_citekit_cache_", dir=directory
        )
        try:
            json.dump(self.data, tmp)
            tmp.flush()
            os.fsync(tmp.fileno())
        finally:
            tmp.close()
        os.replace(tmp.name, self.path)

    def _live(self, key: str) -> Any | None:
        entry = self.data.get(key)
        if entry is None or entry.get("expires", 0) <= self.clock():
            return None
        return entry.get("value")

    def get(self, key: str) -> Any | None:
        with self.lock:
            self._load()
            return self._live(key)

    def put(self, key: str, value: Any, ttl: float) -> None:
        with self.lock:
            self._load()
            self.data[key] = {"value": value, "expires": self.clock() + ttl}
            self._save()

    def increment(self, key: str, ttl: float) -> int:
        with self.lock:
            self._load()
            current = self._live(key)
            if current is None:
                self.data[key] = {"value": 1, "expires": self.clock() + ttl}
                count = 1
            else:
                count = int(current) + 1
                self.data[key]["value"] = count
            self._save()
            return count

    def delete(self, key: str) -> None:
        with self.lock:
            self._load()
            if self.data.pop(key, None) is not None:
                self._save()

    def clear(self, prefix: str | None = None) -> int:
        with self.lock:
            self._load()
            keys = [k for k in self.data if prefix is None or k.startswith(prefix)]
            for k in keys:
                del self.data[k]
            self._save()
            return len(keys)


# ------------- Rate Limiting -------------


class RateLimiter:
    """Per-source request counters over minute and hour buckets.

    ``allow`` only reads the counters and ``record`` only increments them.
    Callers must check ``allow`` before issuing a request and ``record`` it
    once they do. Counts are advisory and eventually consistent across
    processes sharing a :class:`DiskCache`.
    """

    MINUTE = 60
    HOUR = 3600

    def __init__(
        self,
        cache: Cache,
        limits: dict[str, RateLimit] | None = None,
        clock: Clock = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the limiter.

        Args:
            cache: Cache port that stores the bucket counters.
            limits: Optional per-source overrides of DEFAULT_LIMITS.
            clock: Time source, injectable for tests.
            logger: Logger for denial messages.
        """
        self.cache = cache
        self.limits = {**DEFAULT_LIMITS, **(limits or {})}
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def limit_for(self, source: str) -> RateLimit:
        return self.limits.get(source, RateLimit(30, 500))

    def _keys(self, source: str) -> tuple[str, str]:
        now = self.clock()
        minute = f"ratelimit:{source}:minute:{math.floor(now / self.MINUTE)}"
        hour = f"ratelimit:{source}:hour:{math.floor(now / self.HOUR)}"
        return minute, hour

    def usage(self, source: str) -> dict[str, int]:
        """Return the request counts in the current minute and hour buckets."""
        minute_key, hour_key = self._keys(source)
        return {
            "minute": int(self.cache.get(minute_key) or 0),
            "hour": int(self.cache.get(hour_key) or 0),
        }

    def allow(self, source: str) -> bool:
        """Return True iff both the minute and the hour counters are below their ceilings."""
        limit = self.limit_for(source)
        used = self.usage(source)
        allowed = used["minute"] < limit.per_minute and used["hour"] < limit.per_hour
        if not allowed:
            self.logger.debug(
                "Rate limit reached for %s (%d/min, %d/hr)", source, used["minute"], used["hour"]
            )
        return allowed

    def record(self, source: str) -> None:
        """Count one request against the current minute and hour buckets."""
        minute_key, hour_key = self._keys(source)
        self.cache.increment(minute_key, self.MINUTE)
        self.cache.increment(hour_key, self.HOUR)
