"""
Process-wide term cache.

Maps lookup tokens (original and canonical terms) to the entity they
resolved to. Entries are created once a search is fully resolved and
dropped by a periodic sweep once they have not been read for the TTL.
Rulings are never cached here: the YGOrg manifest already keeps them
fresh.

Shared by every query in flight, so all access goes through one lock.
Races resolve as last writer wins.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from threading import Lock

from ygoresolve.config import settings
from ygoresolve.models.card import Card
from ygoresolve.models.ruling import Ruling
from ygoresolve.models.search import Search, Term
from ygoresolve.models.tcgplayer import TCGPlayerSet

logger = logging.getLogger(__name__)

CachedData = Card | TCGPlayerSet


@dataclass
class CacheEntry:
    data: CachedData
    last_access: float


def entity_key(data: object) -> tuple[str, object] | None:
    """Identity used to tell whether two cached values are the same entity."""
    if isinstance(data, Card):
        if data.db_id is not None:
            return ("card", data.db_id)
        if data.passcode is not None:
            return ("passcode", data.passcode)
        return ("name", data.name.get("en"))
    if isinstance(data, TCGPlayerSet):
        return ("set", data.set_id)
    return None


def _cache_key(term: Term) -> Term:
    return term.lower() if isinstance(term, str) else term


class TermCache:
    """TTL-swept token -> entity map."""

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.term_cache_ttl_seconds
        self._clock = clock
        self._entries: dict[Term, CacheEntry] = {}
        self._lock = Lock()
        self.collisions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, term: Term) -> bool:
        with self._lock:
            return _cache_key(term) in self._entries

    def get(self, term: Term) -> CachedData | None:
        """Look up a token, refreshing its last access time on a hit."""
        with self._lock:
            entry = self._entries.get(_cache_key(term))
            if entry is None:
                return None
            entry.last_access = self._clock()
            return entry.data

    def put(self, terms: Iterable[Term], data: CachedData) -> None:
        """
        Map tokens to an entity.

        A token already mapped to a different entity is a collision: it is
        logged and overwritten.
        """
        new_key = entity_key(data)
        now = self._clock()
        with self._lock:
            for term in terms:
                key = _cache_key(term)
                existing = self._entries.get(key)
                if existing is not None and entity_key(existing.data) != new_key:
                    self.collisions += 1
                    logger.warning(
                        "Term cache collision on %r: %s replaced by %s.", term, existing.data, data
                    )
                self._entries[key] = CacheEntry(data=data, last_access=now)

    def apply(self, searches: Iterable[Search]) -> list[Search]:
        """
        Fill searches without data from the cache.

        Each search is looked up by its current term, then by its originals.

        Returns:
            The searches that received cached data
        """
        filled = []
        for search in searches:
            if search.data is not None or search.is_ruling_lookup:
                continue
            for term in [search.term, *sorted(search.originals, key=str)]:
                data = self.get(term)
                if data is not None:
                    search.data = data
                    filled.append(search)
                    break
        return filled

    def consolidate(self, search: Search) -> bool:
        """
        Cache a fully resolved search under all of its tokens.

        Rulings and unresolved searches are skipped.

        Returns:
            True if the search was cached
        """
        data = search.data
        if data is None or isinstance(data, Ruling) or search.is_ruling_lookup:
            return False
        if not search.is_fully_resolved():
            return False

        self.put([search.term, *search.originals], data)
        return True

    def sweep(self) -> int:
        """
        Drop entries not read within the TTL.

        Returns:
            Number of entries removed
        """
        cutoff = self._clock() - self.ttl_seconds
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.last_access < cutoff]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.info("Swept %d stale term cache entries.", len(stale))
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    async def run_sweeper(self, interval_seconds: float | None = None) -> None:
        """Sweep forever at a fixed interval. Cancel the task to stop it."""
        interval = interval_seconds or settings.term_cache_sweep_interval_seconds
        while True:
            await asyncio.sleep(interval)
            self.sweep()


# =============================================================================
# GLOBAL CACHE INSTANCE
# =============================================================================

_term_cache: TermCache | None = None


def get_term_cache() -> TermCache:
    """Get the process-wide term cache."""
    global _term_cache
    if _term_cache is None:
        _term_cache = TermCache()
    return _term_cache


def reset_term_cache() -> None:
    """Reset the process-wide term cache (for testing)."""
    global _term_cache
    _term_cache = None
