# -*- coding: utf-8 -*-
"""
Permission matrix cache.

Memoizes resolved ``PermissionMatrix`` values per user. One instance is
owned by each ``RBACService`` and handed to every component that mutates
state; each mutation calls ``invalidate_all()`` inside the same critical
section, so a stale matrix is never returned after a committed change.

The cache never raises: a computation that fails degrades to an empty
matrix, which is returned but not stored.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from rolegraph.clock import Clock
from rolegraph.metrics import (
    record_cache_hit,
    record_cache_invalidation,
    record_cache_miss,
    record_resolution_failure,
)
from rolegraph.models import PermissionMatrix

logger = logging.getLogger(__name__)


@dataclass
class _CacheEntry:
    matrix: PermissionMatrix
    stored_at: datetime


class PermissionCache:
    """Per-user permission matrix memo with optional TTL.

    Attributes:
        enabled: When False every read recomputes and nothing is stored.
        ttl_seconds: Entry lifetime; 0 keeps entries until invalidated.
        hits: Number of reads served from the cache.
        misses: Number of reads that had to compute.
        invalidations: Number of invalidate/invalidate_all calls.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        ttl_seconds: int = 0,
        enabled: bool = True,
        lock: Optional[Any] = None,
    ) -> None:
        self.enabled = enabled
        self.ttl_seconds = max(0, ttl_seconds)
        self._clock = clock or Clock()
        self._lock = lock or threading.RLock()
        self._entries: Dict[str, _CacheEntry] = {}
        self.hits = 0
        self.misses = 0
        self.invalidations = 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_or_compute(
        self,
        user_id: str,
        compute: Callable[[str], PermissionMatrix],
    ) -> PermissionMatrix:
        """Return the memoized matrix for ``user_id``, computing it on a miss.

        Args:
            user_id: User whose matrix is requested.
            compute: Resolver callback producing a fresh matrix.

        Returns:
            The cached or freshly computed matrix; an empty matrix if the
            computation failed.
        """
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is not None and not self._is_stale(entry):
                self.hits += 1
                record_cache_hit()
                logger.debug("Matrix cache hit for user %s", user_id)
                return entry.matrix

            self.misses += 1
            record_cache_miss()
            try:
                matrix = compute(user_id)
            except Exception as exc:
                record_resolution_failure()
                logger.warning(
                    "Permission resolution failed for user %s: %s", user_id, exc,
                    exc_info=True,
                )
                return PermissionMatrix(user_id=user_id)

            if self.enabled:
                self._entries[user_id] = _CacheEntry(matrix, self._clock.now())
            logger.debug("Matrix cache miss for user %s (computed)", user_id)
            return matrix

    def _is_stale(self, entry: _CacheEntry) -> bool:
        now = self._clock.now()
        # An assignment behind the matrix has lapsed since it was built.
        if entry.matrix.valid_until is not None and entry.matrix.valid_until <= now:
            return True
        if not self.ttl_seconds:
            return False
        age = now - entry.stored_at
        return age >= timedelta(seconds=self.ttl_seconds)

    def contains(self, user_id: str) -> bool:
        with self._lock:
            entry = self._entries.get(user_id)
            return entry is not None and not self._is_stale(entry)

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate(self, user_id: str) -> None:
        """Drop the entry for one user."""
        with self._lock:
            self._entries.pop(user_id, None)
            self.invalidations += 1
        record_cache_invalidation("user")
        logger.debug("Matrix cache invalidated for user %s", user_id)

    def invalidate_all(self) -> None:
        """Drop every entry."""
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
            self.invalidations += 1
        record_cache_invalidation("all")
        logger.debug("Matrix cache flushed (%d entries)", dropped)

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "hits": self.hits,
                "misses": self.misses,
                "invalidations": self.invalidations,
            }


__all__ = ["PermissionCache"]
