"""In-process response cache for generated insights.

Bounded FIFO map keyed by a deterministic request hash, with per-entry TTL
expiry checked lazily on read.
"""

from __future__ import annotations

import hashlib
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass

import orjson
import structlog

from insight_engine.domain.entities import HealthInsight, InsightRequest
from insight_engine.shared.observability.metrics import INSIGHT_CACHE_LOOKUPS

logger = structlog.get_logger(__name__)


def make_cache_key(request: InsightRequest) -> str:
    """Stable key from category, sorted metrics and persona id."""
    payload = {
        "category": request.category.value,
        "metrics": sorted(request.metrics.items()),
        "persona": request.persona.id if request.persona else None,
    }
    digest = hashlib.sha256(orjson.dumps(payload)).hexdigest()
    return f"insight:{request.category.value}:{digest}"


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: str
    value: HealthInsight
    inserted_at: float


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    size: int
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class ResponseCache:
    """Thread-safe bounded insight cache.

    Once ``max_entries`` is exceeded the least-recently-inserted entry is
    evicted. Entries are never mutated; a second ``put`` for the same key
    replaces the value (last writer wins).
    """

    def __init__(self, *, max_entries: int = 1000, ttl_seconds: float = 3600.0) -> None:
        self._max_entries = max_entries
        self._ttl = ttl_seconds
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

        # Monotonic for the process lifetime
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: str) -> HealthInsight | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                INSIGHT_CACHE_LOOKUPS.labels(result="miss").inc()
                return None

            if time.monotonic() - entry.inserted_at >= self._ttl:
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                INSIGHT_CACHE_LOOKUPS.labels(result="expired").inc()
                logger.debug("insight_cache_expired", key=key)
                return None

            self._hits += 1
            INSIGHT_CACHE_LOOKUPS.labels(result="hit").inc()
            return entry.value

    def put(self, key: str, value: HealthInsight) -> None:
        with self._lock:
            # Re-inserting moves the key to the back of the FIFO order
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(key=key, value=value, inserted_at=time.monotonic())
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("insight_cache_evicted", key=evicted)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                size=len(self._entries),
                evictions=self._evictions,
                expirations=self._expirations,
            )

    def clear(self) -> None:
        """Drop every entry; counters are kept."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
