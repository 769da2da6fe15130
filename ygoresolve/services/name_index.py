"""
Per-locale card name index.

Maps lowercased card names to YGOrg database ids. Locales are loaded on
first use, from the local cache DB if a copy was persisted, otherwise
from the YGOrg name index endpoint. Manifest eviction drops both copies.
"""

import asyncio
import logging
from collections.abc import Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ygoresolve.clients.ygorg import RevisionedPayload, YGOrgClient
from ygoresolve.db import operations as ops
from ygoresolve.services.fuzzy import CardNameFilter, rank_matches
from ygoresolve.services.interfaces import RevisionListener

logger = logging.getLogger(__name__)

NameIndexEntries = dict[str, list[int]]


def _normalize_entries(data: dict[str, list[int] | int]) -> NameIndexEntries:
    entries: NameIndexEntries = {}
    for name, ids in data.items():
        id_list = ids if isinstance(ids, list) else [ids]
        entries.setdefault(name.lower(), []).extend(int(i) for i in id_list)
    return entries


class NameIndex:
    """Lazily populated name -> ids index shared by every query."""

    def __init__(
        self,
        client: YGOrgClient,
        session_factory: async_sessionmaker[AsyncSession],
        revision_listener: RevisionListener | None = None,
    ) -> None:
        self._client = client
        self._session_factory = session_factory
        self._revision_listener = revision_listener
        self._indices: dict[str, NameIndexEntries] = {}
        self._load_lock = asyncio.Lock()

    def set_revision_listener(self, listener: RevisionListener) -> None:
        self._revision_listener = listener

    @property
    def loaded_locales(self) -> list[str]:
        return sorted(self._indices)

    async def init(self, locales: Iterable[str]) -> None:
        """Load the given locales up front."""
        await self.ensure_loaded(locales)

    def reset(self) -> None:
        """Forget every in-memory index. Persisted copies are kept."""
        self._indices.clear()

    async def evict_locales(self, locales: Iterable[str]) -> None:
        """Drop locales from memory and from the local cache DB."""
        evicted = list(locales)
        if not evicted:
            return
        for locale in evicted:
            self._indices.pop(locale, None)
        async with self._session_factory() as session:
            await ops.delete_name_indices(session, evicted)
            await session.commit()
        logger.info("Evicted locale(s) %s from name index.", ", ".join(evicted))

    async def ensure_loaded(self, locales: Iterable[str]) -> None:
        """Make sure every requested locale is in memory, if it can be."""
        async with self._load_lock:
            missing = [locale for locale in dict.fromkeys(locales) if locale not in self._indices]
            if not missing:
                return

            async with self._session_factory() as session:
                for locale in list(missing):
                    entries = await ops.get_name_index(session, locale)
                    if entries is not None:
                        self._indices[locale] = entries
                        missing.remove(locale)

            if missing:
                await self._fetch(missing)

    async def _fetch(self, locales: list[str]) -> None:
        responses = await asyncio.gather(
            *(self._client.get_name_index(locale) for locale in locales),
            return_exceptions=True,
        )

        # Evict anything stale before storing what was just fetched
        first_good = next((r for r in responses if isinstance(r, RevisionedPayload)), None)
        if first_good is not None and self._revision_listener is not None:
            await self._revision_listener.check(first_good.revision)

        refreshed: list[str] = []
        async with self._session_factory() as session:
            for locale, response in zip(locales, responses, strict=True):
                if isinstance(response, BaseException):
                    logger.warning(
                        "Failed to refresh YGOrg name index for locale %s: %s", locale, response
                    )
                    continue
                if response is None or not isinstance(response.data, dict):
                    logger.warning("YGOrg returned no name index for locale %s.", locale)
                    continue

                entries = _normalize_entries(response.data)
                self._indices[locale] = entries
                await ops.save_name_index(session, locale, entries)
                refreshed.append(locale)
            await session.commit()

        if refreshed:
            logger.info("Refreshed YGOrg name index for locale(s): %s", ", ".join(refreshed))

    async def search(
        self, token: str, locales: Iterable[str], max_results: int = 1
    ) -> dict[int, float]:
        """
        Find the best-matching card ids for a name across locales.

        Each id keeps its best score over all locales. When more than one
        locale contributed, results are re-ranked (score desc, id asc) and
        truncated to max_results.

        Returns:
            Card ids mapped to their score, best first. Empty if nothing matched.
        """
        locale_list = list(dict.fromkeys(locales))
        await self.ensure_loaded(locale_list)

        matches: dict[int, float] = {}
        for locale in locale_list:
            index = self._indices.get(locale)
            if index is None:
                continue
            found = CardNameFilter(index, token).filter_index(max_results)
            for card_id, score in found.items():
                if score > 0:
                    matches[card_id] = max(score, matches.get(card_id, 0.0))

        if len(locale_list) > 1 and len(matches) > 1:
            matches = rank_matches(matches, max_results)
        return matches
