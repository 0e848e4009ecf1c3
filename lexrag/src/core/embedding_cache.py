"""
LexRAG - Embedding Cache
=========================
Bounded, thread-safe ``normalized text -> vector`` memo used by the
``EmbeddingGateway`` for query embeddings.

Eviction is strict FIFO by *first* insertion: a hit does not refresh an
entry, and re-putting an existing key overwrites its vector in place
without moving it to the back of the queue.

The cache is an ordinary object.  Construct one per process and pass it
to the gateway; tests build isolated instances.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import NamedTuple

from lexrag.config.settings import settings
from lexrag.src.utils.logger import get_logger
from lexrag.src.utils.text_utils import normalize_cache_key

logger = get_logger(__name__)

Vector = tuple[float, ...]


class CacheStats(NamedTuple):
    """Snapshot of cache occupancy.  ``utilization`` is a percentage."""

    size: int
    capacity: int
    utilization: float
    hits: int
    misses: int


class EmbeddingCache:
    """
    FIFO cache keyed by normalised text.

    Keys are lower-cased, trimmed and whitespace-collapsed before lookup, so
    ``"Foo\\n\\nBar "`` and ``"foo  bar"`` share an entry.  All operations hold a
    single lock; ``size <= capacity`` holds after every call.

    Parameters
    ----------
    capacity
        Maximum number of entries.  Defaults to ``settings.CACHE_MAX_SIZE``.
    """

    __slots__ = ("_capacity", "_entries", "_lock", "_hits", "_misses")

    def __init__(self, capacity: int | None = None) -> None:
        self._capacity = capacity if capacity is not None else settings.CACHE_MAX_SIZE
        if self._capacity < 1:
            raise ValueError(f"Cache capacity must be ≥ 1, got {self._capacity}")
        self._entries: OrderedDict[str, Vector] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0


    @property
    def capacity(self) -> int:
        return self._capacity


    def get(self, text: str) -> Vector | None:
        """Return the cached vector for *text*, or ``None`` on a miss."""
        key = normalize_cache_key(text)
        with self._lock:
            vector = self._entries.get(key)
            if vector is None:
                self._misses += 1
            else:
                self._hits += 1
        return vector


    def put(self, text: str, vector: list[float] | Vector) -> None:
        """
        Store *vector* under the normalised form of *text*.

        A new key inserted into a full cache evicts the oldest-inserted
        entry.  An existing key keeps its original eviction position.
        """
        key = normalize_cache_key(text)
        value = tuple(vector)
        with self._lock:
            if key in self._entries:
                self._entries[key] = value
                return
            if len(self._entries) >= self._capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("[CACHE] Evicted oldest entry '%.40s'.", evicted)
            self._entries[key] = value


    def clear(self) -> None:
        """Drop every entry and reset the hit / miss counters."""
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
            self._hits = 0
            self._misses = 0
        logger.info("[CACHE] Cleared %d entr(ies).", dropped)


    def stats(self) -> CacheStats:
        with self._lock:
            size = len(self._entries)
            return CacheStats(size=size, capacity=self._capacity, utilization=size / self._capacity * 100, hits=self._hits, misses=self._misses)


    def __contains__(self, text: object) -> bool:
        if not isinstance(text, str):
            return False
        key = normalize_cache_key(text)
        with self._lock:
            return key in self._entries


    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


    def __repr__(self) -> str:
        return f"EmbeddingCache(size={len(self)}, capacity={self._capacity})"
