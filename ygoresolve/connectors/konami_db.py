"""Konami reference DB connector."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ygoresolve.config import MIN_MATCH_SCORE
from ygoresolve.connectors.base import (
    ResolveResult,
    SourceConnector,
    attach_card,
    rewrite_term,
    search_locales,
)
from ygoresolve.db.reference import get_reference_card
from ygoresolve.models.query import Query
from ygoresolve.models.search import Search
from ygoresolve.services.interfaces import NameIndexLookup

logger = logging.getLogger(__name__)


class KonamiDBConnector(SourceConnector):
    """
    Resolves cards from the official reference DB.

    Numeric terms are database ids. Names are matched through the name
    index and only a confident match is used. Searches matched by name are
    reported as fetched so their tokens get term rows pointing here.
    """

    name = "konami_db"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        name_index: NameIndexLookup,
    ) -> None:
        self._session_factory = session_factory
        self._name_index = name_index

    async def resolve(self, searches: list[Search], query: Query | None) -> ResolveResult:
        resolved: list[Search] = []
        matched_by_name: list[Search] = []

        async with self._session_factory() as session:
            for search in searches:
                if search.is_ruling_lookup:
                    continue

                if isinstance(search.term, int):
                    card = await get_reference_card(session, search.term)
                    if card is not None:
                        attach_card(search, card)
                        resolved.append(search)
                    continue

                matches = await self._name_index.search(search.term, search_locales(search))
                if not matches:
                    continue
                best_id, score = next(iter(matches.items()))
                if score < MIN_MATCH_SCORE:
                    logger.debug("Ignoring weak name match %.2f for %r.", score, search.term)
                    continue

                card = await get_reference_card(session, best_id)
                if card is None:
                    continue
                if rewrite_term(query, search, card.db_id):
                    continue
                attach_card(search, card)
                resolved.append(search)
                matched_by_name.append(search)

        return ResolveResult.from_searches(
            searches, resolved, query, fetched=matched_by_name, term_updates=matched_by_name
        )
