"""
Per-client lookup limiter.

Counts lookups per client over a sliding one-minute window. A client
that already reached the limit within the window is rejected before any
source is consulted; otherwise its lookups are recorded. A single large
request may push a client past the limit, which only takes effect on the
next request.

Client ids are hashed before they are logged.
"""

import hashlib
import logging
import time
from collections import deque
from collections.abc import Callable
from threading import Lock

from ygoresolve.config import settings
from ygoresolve.models.failure import SearchRateLimitExceededError

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


class SearchLimiter:
    """Thread-safe sliding window of lookup counts per client."""

    def __init__(
        self,
        limit: int | None = None,
        window_seconds: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit if limit is not None else settings.search_limit_per_minute
        self.window_seconds = window_seconds
        self._clock = clock
        self._history: dict[str, deque[tuple[float, int]]] = {}
        self._lock = Lock()

    @staticmethod
    def hash_client(client_id: str) -> str:
        return hashlib.sha256(client_id.encode()).hexdigest()[:12]

    def tracked_clients(self) -> int:
        """Number of clients with lookups inside the window."""
        with self._lock:
            self._sweep(self._clock())
            return len(self._history)

    def _prune(self, client_id: str, now: float) -> deque[tuple[float, int]] | None:
        """Drop a client's expired lookups, forgetting the client once none are left."""
        history = self._history.get(client_id)
        if history is None:
            return None
        while history and now - history[0][0] >= self.window_seconds:
            history.popleft()
        if not history:
            del self._history[client_id]
            return None
        return history

    def _sweep(self, now: float) -> None:
        # Entries are in time order, so a client is idle once its newest one expired
        idle = [
            client_id
            for client_id, history in self._history.items()
            if now - history[-1][0] >= self.window_seconds
        ]
        for client_id in idle:
            del self._history[client_id]

    def current_count(self, client_id: str) -> int:
        """Lookups recorded for a client within the window."""
        with self._lock:
            history = self._prune(client_id, self._clock())
            if history is None:
                return 0
            return sum(count for _, count in history)

    def check(self, client_id: str, lookups: int = 1) -> None:
        """
        Check a client's quota and record its lookups.

        Raises:
            SearchRateLimitExceededError: If the client already reached the limit
        """
        with self._lock:
            now = self._clock()
            self._sweep(now)
            history = self._prune(client_id, now)

            used = sum(count for _, count in history) if history else 0
            if used >= self.limit:
                logger.warning(
                    "Search limit exceeded for client %s (%d lookups, limit %d).",
                    self.hash_client(client_id),
                    used,
                    self.limit,
                )
                raise SearchRateLimitExceededError(self.hash_client(client_id), self.limit)

            self._history.setdefault(client_id, deque()).append((now, lookups))

    def reset(self) -> None:
        with self._lock:
            self._history.clear()


# =============================================================================
# GLOBAL LIMITER INSTANCE
# =============================================================================

_search_limiter: SearchLimiter | None = None


def get_search_limiter() -> SearchLimiter:
    """Get the process-wide search limiter."""
    global _search_limiter
    if _search_limiter is None:
        _search_limiter = SearchLimiter()
    return _search_limiter


def reset_search_limiter() -> None:
    """Reset the process-wide search limiter (for testing)."""
    global _search_limiter
    _search_limiter = None
