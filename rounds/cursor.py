"""Monotonic cutoff issuance across rounds."""

from __future__ import annotations

import threading
from datetime import datetime

from models.evidence import as_utc


class RoundCursor:
    """Hands out round cutoffs that strictly increase.

    A cutoff is *active* from ``acquire`` until ``release``. A new cutoff is
    refused if it does not advance past the last one issued or if it is
    held by an active round.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: datetime | None = None
        self._active: set[datetime] = set()

    @property
    def last_cutoff(self) -> datetime | None:
        return self._last

    @property
    def active(self) -> frozenset[datetime]:
        return frozenset(self._active)

    def acquire(self, cutoff: datetime) -> datetime:
        """Reserve *cutoff* for a round. Raises ``ValueError`` if refused."""
        cutoff = as_utc(cutoff)
        with self._lock:
            if cutoff in self._active:
                raise ValueError(f"Cutoff {cutoff.isoformat()} is already held by an active round.")
            if self._last is not None and cutoff <= self._last:
                raise ValueError(
                    f"Cutoff {cutoff.isoformat()} does not advance past "
                    f"{self._last.isoformat()}."
                )
            self._last = cutoff
            self._active.add(cutoff)
        return cutoff

    def release(self, cutoff: datetime) -> None:
        with self._lock:
            self._active.discard(as_utc(cutoff))
