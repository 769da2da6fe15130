"""
Source connector contract.

A connector receives the unresolved searches a pipeline step selected,
fills in whatever its source knows, and reports which searches it
touched. Not finding something is not an error: the search is simply
left unresolved for later steps. Per-item request failures are logged
and dropped inside the connector.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from ygoresolve.models.card import Card
from ygoresolve.models.query import Query
from ygoresolve.models.search import Search, Term

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Concurrent requests per step; matches the TCGPlayer request budget
DEFAULT_CONCURRENCY = 6


@dataclass(slots=True)
class ResolveResult:
    """
    Outcome of one connector run.

    Attributes:
        resolved: Searches whose data this connector populated or extended
        unresolved: Searches still missing something after this run
        fetched: Searches carrying newly fetched remote data to persist
        term_updates: Searches whose term was rewritten to a better one
    """

    resolved: list[Search] = field(default_factory=list)
    unresolved: list[Search] = field(default_factory=list)
    fetched: list[Search] = field(default_factory=list)
    term_updates: list[Search] = field(default_factory=list)

    @classmethod
    def from_searches(
        cls,
        searches: Iterable[Search],
        resolved: list[Search],
        query: Query | None = None,
        **kwargs: Any,
    ) -> "ResolveResult":
        """Build a result, deriving unresolved from what is still live and incomplete."""
        live = query.searches if query is not None else None
        unresolved = [
            s
            for s in searches
            if not s.is_fully_resolved() and (live is None or any(s is q for q in live))
        ]
        return cls(resolved=_unique(resolved), unresolved=unresolved, **kwargs)


def _unique(searches: list[Search]) -> list[Search]:
    seen: set[int] = set()
    unique = []
    for search in searches:
        if id(search) not in seen:
            seen.add(id(search))
            unique.append(search)
    return unique


def rewrite_term(query: Query | None, search: Search, new_term: Term | None) -> bool:
    """
    Give a search a better term.

    Returns:
        True if the search was merged into another one and should be
        dropped by the caller
    """
    if new_term is None or new_term == search.term:
        return False
    if query is None:
        search.term = new_term
        return False
    merged = query.update_search_term(search, new_term)
    if merged:
        logger.debug("Search %r merged into the search for %r.", search.originals, new_term)
    return merged


def attach_card(search: Search, card: Card) -> None:
    """Set or extend a search's card. Data already present is never overwritten."""
    if search.data is None:
        search.data = card
    elif isinstance(search.data, Card):
        search.data.merge_from(card)


def search_locales(search: Search) -> list[str]:
    """English first, then every locale the search asks for."""
    return list(dict.fromkeys(["en", *search.locales]))


async def gather_bounded(
    coros: Iterable[Awaitable[T]], limit: int = DEFAULT_CONCURRENCY
) -> list[T | BaseException]:
    """
    Await all coroutines with at most `limit` in flight.

    Results keep input order; failures are returned in place, never raised.
    """
    semaphore = asyncio.Semaphore(limit)

    async def run(coro: Awaitable[T]) -> T:
        async with semaphore:
            return await coro

    return await asyncio.gather(*(run(c) for c in coros), return_exceptions=True)


class SourceConnector(ABC):
    """One backing source of card, ruling or price data."""

    name: str = "source"

    @abstractmethod
    async def resolve(self, searches: list[Search], query: Query | None) -> ResolveResult:
        """
        Fill in data for searches from this source.

        Args:
            searches: Unresolved searches selected for this step
            query: Owning query, or None for standalone searches

        Returns:
            Which searches were resolved, which remain, and what to persist
        """
