"""
Narrow interfaces between the catalog services.

The name index reports response revisions to the manifest invalidator,
and the invalidator evicts locales from the name index. Each side only
sees the protocol it needs.
"""

from collections.abc import Iterable
from typing import Protocol


class RevisionListener(Protocol):
    async def check(self, revision: int | None) -> None:
        """Inspect a revision seen on a catalog response."""
        ...


class IndexEvictor(Protocol):
    async def evict_locales(self, locales: Iterable[str]) -> None:
        """Drop cached name indices so they are re-fetched on next use."""
        ...


class NameIndexLookup(Protocol):
    async def search(
        self, token: str, locales: Iterable[str], max_results: int = 1
    ) -> dict[int, float]:
        """Best-matching card ids for a name, mapped to their score."""
        ...
