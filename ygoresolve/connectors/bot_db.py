"""
Local cache DB connector.

Term rows map a token to a card identity and the database holding its
data. A hit rewrites the search term, then loads the cached YGOrg payload
(location "bot") or hands the search to the reference DB connector
(location "konami"). Price searches also pick up cached TCGPlayer sets
and products.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ygoresolve.connectors.base import ResolveResult, SourceConnector, attach_card, rewrite_term
from ygoresolve.connectors.konami_db import KonamiDBConnector
from ygoresolve.db import operations as ops
from ygoresolve.models.card import Card
from ygoresolve.models.db import LOCATION_BOT, LOCATION_KONAMI, TermDB
from ygoresolve.models.query import Query
from ygoresolve.models.search import Facet, Search, Term
from ygoresolve.services.catalog import attach_catalog_data

logger = logging.getLogger(__name__)


def representative_row(rows: list[TermDB], search: Search) -> TermDB:
    """Prefer an English row, then one in a locale the search needs, then any."""
    for row in rows:
        if row.locale == "en":
            return row
    for row in rows:
        if row.locale in search.requirements:
            return row
    return rows[0]


def better_term(row: TermDB) -> Term | None:
    if row.db_id is not None:
        return row.db_id
    if row.passcode is not None:
        return row.passcode
    return row.full_name.lower() if row.full_name else None


class BotDBConnector(SourceConnector):
    """Resolves searches from the local cache DB."""

    name = "bot_db"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        reference: KonamiDBConnector,
    ) -> None:
        self._session_factory = session_factory
        self._reference = reference

    async def resolve(self, searches: list[Search], query: Query | None) -> ResolveResult:
        bot_searches: list[Search] = []
        konami_searches: list[Search] = []
        price_searches: list[Search] = []
        resolved: list[Search] = []
        term_updates: list[Search] = []

        async with self._session_factory() as session:
            for search in searches:
                # Rulings are cached by the YGOrg step
                if search.is_ruling_lookup:
                    continue

                rows = await ops.get_term_rows(session, search.term)
                if rows:
                    row = representative_row(rows, search)
                    if rewrite_term(query, search, better_term(row)):
                        continue
                    if row.location == LOCATION_BOT:
                        bot_searches.append(search)
                    elif row.location == LOCATION_KONAMI:
                        konami_searches.append(search)
                elif isinstance(search.term, int):
                    bot_searches.append(search)

                if search.has_facet(Facet.PRICE):
                    price_searches.append(search)

            for search in bot_searches:
                card = await self._load_card(session, search.term)
                if card is None:
                    continue
                new_term = card.db_id if card.db_id is not None else card.passcode
                if new_term is not None and new_term != search.term:
                    if rewrite_term(query, search, new_term):
                        continue
                    term_updates.append(search)
                attach_card(search, card)
                resolved.append(search)

            if konami_searches:
                reference_result = await self._reference.resolve(konami_searches, query)
                resolved.extend(reference_result.resolved)

            # Cards loaded above can now pick up their products
            live = [s for s in price_searches if query is None or s in query.searches]
            resolved.extend(await attach_catalog_data(session, live))

        return ResolveResult.from_searches(searches, resolved, query, term_updates=term_updates)

    async def _load_card(self, session: AsyncSession, term: Term) -> Card | None:
        row = await ops.find_card_data(session, term)
        if row is None:
            return None

        card = Card.from_payload(row.payload)
        for faq in await ops.get_faq_rows(session, row.db_id):
            card.add_faq_entry(faq.locale, faq.effect_index, faq.line)
        card.sort_faq_blocks()
        return card
