# -*- coding: utf-8 -*-
"""
Engine clock.

Every timestamp the engine stamps or compares (assignment expiry, access
request expiry, audit date ranges) is read from a ``Clock`` owned by the
service, so time can be frozen or advanced in tests and audits.
"""

import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive input is read as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock:
    """A clock that can be frozen and advanced.

    Unlike a process-wide singleton, each service owns its clock so two
    engines in one process never share frozen time.
    """

    def __init__(self, frozen_time: Optional[datetime] = None) -> None:
        self._lock = threading.Lock()
        self._frozen_time: Optional[datetime] = (
            as_utc(frozen_time) if frozen_time is not None else None
        )

    def now(self) -> datetime:
        """Get current UTC time, either real or frozen."""
        with self._lock:
            if self._frozen_time is not None:
                return self._frozen_time
        return datetime.now(timezone.utc)

    def freeze(self, frozen_time: Optional[datetime] = None) -> None:
        """Freeze the clock at ``frozen_time`` (defaults to the current time)."""
        with self._lock:
            self._frozen_time = as_utc(frozen_time or datetime.now(timezone.utc))

    def unfreeze(self) -> None:
        with self._lock:
            self._frozen_time = None

    def advance(self, **delta: float) -> datetime:
        """Move a frozen clock forward by ``timedelta(**delta)``.

        Raises:
            RuntimeError: If the clock is not frozen.
        """
        with self._lock:
            if self._frozen_time is None:
                raise RuntimeError("Clock.advance() requires a frozen clock")
            self._frozen_time = self._frozen_time + timedelta(**delta)
            return self._frozen_time

    @property
    def is_frozen(self) -> bool:
        return self._frozen_time is not None

    @contextmanager
    def frozen(self, frozen_time: Optional[datetime] = None) -> Iterator["Clock"]:
        """
        Context manager for temporarily freezing time.

        On exit the clock returns to its previous state, which may itself
        be frozen.

        Usage:
            with clock.frozen(datetime(2025, 1, 1)):
                ...
        """
        with self._lock:
            previous = self._frozen_time
        self.freeze(frozen_time)
        try:
            yield self
        finally:
            with self._lock:
                self._frozen_time = previous


__all__ = ["Clock", "as_utc"]
