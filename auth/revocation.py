"""
auth/revocation.py -- In-memory registry of explicitly revoked (logged out) tokens.

A revoked token is remembered only until its natural expiry. After that the
token verifier rejects it as expired anyway, so keeping the entry would only
grow memory. Entries are dropped two ways:
  - lazily, when is_revoked() finds a stale entry;
  - periodically, by run_revocation_sweeper() calling purge_expired().

Concurrency: FastAPI runs sync route handlers in a thread pool, and the
sweeper runs on the event loop thread. Every read-modify-write on the map
happens under one threading.Lock. Cardinality is bounded by the number of
live logged-out tokens, so a single lock is not a contention point.

Limitation: the registry is process-local and not persisted. A restart
forgets revocations, and in a multi-instance deployment a token revoked on
one instance stays valid on the others until it expires.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger("sensorhub.auth")


class RevocationRegistry:
    """Maps token string -> expiry timestamp (epoch seconds).

    Usage:
        registry = RevocationRegistry()
        registry.revoke(token, claims.expires_at)
        registry.is_revoked(token)        # True until expires_at passes
        registry.purge_expired()          # call periodically
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, float] = {}
        self._lock = threading.Lock()

    def revoke(self, token: str, expires_at: float) -> None:
        """Record token as revoked until expires_at. Revoking twice is a no-op."""
        with self._lock:
            self._entries.setdefault(token, expires_at)

    def is_revoked(self, token: str) -> bool:
        """Return True if token is revoked and not yet past its expiry.

        A stale entry is removed and reported as not revoked.
        """
        with self._lock:
            expires_at = self._entries.get(token)
            if expires_at is None:
                return False
            if self._clock() > expires_at:
                del self._entries[token]
                return False
            return True

    def purge_expired(self) -> int:
        """Evict every entry past its expiry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            stale = [token for token, expires_at in self._entries.items() if now > expires_at]
            for token in stale:
                del self._entries[token]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, token: object) -> bool:
        # Raw membership, no expiry check and no cleanup.
        with self._lock:
            return token in self._entries


async def run_revocation_sweeper(registry: RevocationRegistry, interval_seconds: float) -> None:
    """Purge stale revocations every interval_seconds until cancelled.

    Started as an asyncio task in the application lifespan. CancelledError
    from task.cancel() during shutdown propagates out of asyncio.sleep and
    unwinds the coroutine; there is no persisted state to flush.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        removed = registry.purge_expired()
        if removed:
            logger.info("Revocation sweep removed %d expired entries (%d remaining)", removed, len(registry))
