"""Pending transfer cache: at most one staged transfer per identity."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable

from baintwallet.errors import PendingExpired, PendingNotFound
from baintwallet.logutil import mask_identity
from baintwallet.storage.models import PendingTransfer, utcnow

logger = logging.getLogger("baintwallet.session.pending")

DEFAULT_TTL = timedelta(minutes=10)
DEFAULT_MAX_ENTRIES = 10000


class PendingTransferCache:
    """In-memory, bounded map of identity -> :class:`PendingTransfer`.

    Entries expire lazily when consumed; :meth:`sweep` drops expired entries
    in bulk and runs automatically when the cache is full.  If the cache is
    still full after a sweep the oldest entry is evicted.

    Parameters
    ----------
    ttl:
        Age after which an entry can no longer be confirmed.
    max_entries:
        Capacity bound.
    clock:
        Returns the current aware UTC time; injectable for tests.
    """

    def __init__(
        self,
        ttl: timedelta = DEFAULT_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, PendingTransfer] = OrderedDict()
        self._lock = threading.Lock()

    def put(self, identity: str, destination: str, amount: Decimal) -> PendingTransfer:
        """Stage a transfer, replacing any existing entry for *identity*."""
        now = self._clock()
        entry = PendingTransfer(
            identity=identity,
            destination=destination,
            amount=amount,
            created_at=now,
        )
        with self._lock:
            self._entries.pop(identity, None)
            if len(self._entries) >= self.max_entries:
                self._sweep_locked(now)
            while len(self._entries) >= self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.warning(f"Pending cache full; evicted {mask_identity(evicted)}")
            self._entries[identity] = entry
        return entry

    def peek(self, identity: str) -> PendingTransfer | None:
        with self._lock:
            return self._entries.get(identity)

    def take_if_fresh(
        self, identity: str, ttl: timedelta | None = None
    ) -> PendingTransfer:
        """Remove and return the entry for *identity* if it is still fresh.

        Raises :class:`PendingNotFound` if there is no entry and
        :class:`PendingExpired` if it is older than *ttl* (the entry is
        removed either way).  Of two concurrent callers, only one can ever
        receive the entry.
        """
        ttl = self.ttl if ttl is None else ttl
        with self._lock:
            entry = self._entries.pop(identity, None)
        if entry is None:
            raise PendingNotFound(f"No pending transfer for {mask_identity(identity)}")
        if self._clock() - entry.created_at > ttl:
            raise PendingExpired(f"Pending transfer for {mask_identity(identity)} expired")
        return entry

    def clear(self, identity: str) -> bool:
        """Drop the entry for *identity*. Returns whether one existed."""
        with self._lock:
            return self._entries.pop(identity, None) is not None

    def sweep(self) -> int:
        """Remove every expired entry and return how many were dropped."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: datetime) -> int:
        expired = [
            identity
            for identity, entry in self._entries.items()
            if now - entry.created_at > self.ttl
        ]
        for identity in expired:
            del self._entries[identity]
        if expired:
            logger.debug(f"Swept {len(expired)} expired pending transfers")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
