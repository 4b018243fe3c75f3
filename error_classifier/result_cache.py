"""
File: result_cache.py
Purpose: Bounded in-memory TTL cache for classification results.
Dependencies: Standard library + schema models.
Performance: O(1) get/put, <1ms cache hit.

Eviction is oldest-inserted first (not LRU). Expiry is lazy: a stale
entry reads as a miss but stays in place until it is overwritten or
evicted; there is no background sweep.
"""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from error_classifier.schema import Classification, ErrorContext

KEY_MESSAGE_CHARS = 50


@dataclass(frozen=True)
class CacheEntry:
    """One cached classification.

    Attributes:
        key: Cache key.
        result: The cached classification.
        stored_at: Clock reading at insertion.
        sequence: Monotonic insertion counter.
    """
    key: str
    result: Classification
    stored_at: float
    sequence: int


class ResultCache:
    """Short-TTL memoization of classification results.

    Args:
        capacity: Maximum number of entries.
        ttl_seconds: Age at which an entry stops being served.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        capacity: int = 1000,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._capacity = capacity
        self._ttl = ttl_seconds
        self._clock = clock
        self._sequence = itertools.count()
        # dict order == insertion order == sequence order
        self._store: Dict[str, CacheEntry] = {}

    @staticmethod
    def compute_key(context: ErrorContext) -> str:
        """``{status|"unknown"}_{first 50 chars of message}``."""
        status = context.http_status if context.http_status is not None else "unknown"
        message = (context.error_message or "")[:KEY_MESSAGE_CHARS]
        return f"{status}_{message}"

    def get(self, key: str) -> Optional[Classification]:
        """Return the cached result for *key* if present and fresh."""
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self._ttl:
            return None
        return entry.result

    def put(self, key: str, result: Classification) -> None:
        """Store *result*, evicting the oldest entry when full."""
        if key in self._store:
            del self._store[key]
        elif len(self._store) >= self._capacity:
            oldest_key = next(iter(self._store))
            del self._store[oldest_key]
        self._store[key] = CacheEntry(
            key=key,
            result=result,
            stored_at=self._clock(),
            sequence=next(self._sequence),
        )

    def entry(self, key: str) -> Optional[CacheEntry]:
        """Return the raw entry for *key*, stale or not."""
        return self._store.get(key)

    def clear(self) -> None:
        """Clear all entries."""
        self._store.clear()

    @property
    def size(self) -> int:
        """Current number of cached entries (stale ones included)."""
        return len(self._store)

    @property
    def capacity(self) -> int:
        return self._capacity
