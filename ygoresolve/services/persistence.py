"""
Writing resolved data back into the local cache DB.

Each pipeline step has a callback here that receives the step's result.
Callbacks commit their own session; a failure is raised to the pipeline,
which logs it and carries on with the next step.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ygoresolve.connectors.base import ResolveResult
from ygoresolve.db import operations as ops
from ygoresolve.models.card import Card
from ygoresolve.models.db import LOCATION_BOT, LOCATION_KONAMI
from ygoresolve.models.ruling import Ruling
from ygoresolve.models.search import Search, Term
from ygoresolve.models.tcgplayer import TCGPlayerSet

logger = logging.getLogger(__name__)


def _terms(search: Search) -> list[Term]:
    """Every token that should map to a search's entity."""
    return list(dict.fromkeys([*search.originals, search.term]))


class CachePersister:
    """Pipeline step callbacks backed by the local cache DB."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def after_bot_db(self, result: ResolveResult) -> None:
        """Record rewritten terms of cards loaded from cached payloads."""
        cards = [(s, s.data) for s in result.term_updates if isinstance(s.data, Card)]
        if not cards:
            return
        async with self._session_factory() as session:
            count = 0
            for search, card in cards:
                count += await ops.add_terms(session, _terms(search), card, LOCATION_BOT)
            await session.commit()
        logger.debug("Stored %d bot term row(s).", count)

    async def after_konami_db(self, result: ResolveResult) -> None:
        """Point tokens matched by name at the reference DB."""
        cards = [(s, s.data) for s in result.fetched if isinstance(s.data, Card)]
        if not cards:
            return
        async with self._session_factory() as session:
            count = 0
            for search, card in cards:
                count += await ops.add_terms(session, _terms(search), card, LOCATION_KONAMI)
            await session.commit()
        logger.debug("Stored %d konami term row(s).", count)

    async def after_tcgplayer(self, result: ResolveResult) -> None:
        """Persist fresh prices and link card products to the card's database id."""
        if not result.fetched:
            return
        async with self._session_factory() as session:
            rows = 0
            for search in result.fetched:
                if not isinstance(search.data, (Card, TCGPlayerSet)):
                    continue
                rows += await ops.save_prices(session, search.data.products)
                if isinstance(search.data, Card) and search.data.db_id is not None:
                    await ops.link_products_to_card(
                        session,
                        (p.product_id for p in search.data.products),
                        search.data.db_id,
                    )
            await session.commit()
        logger.info("Cached %d TCGPlayer price row(s).", rows)

    async def after_ygorg(self, result: ResolveResult) -> None:
        """Persist fetched rulings, card payloads, FAQ rows and bot term rows."""
        if not result.fetched:
            return
        async with self._session_factory() as session:
            for search in result.fetched:
                if isinstance(search.data, Ruling):
                    await ops.upsert_ruling(session, search.data)
                elif isinstance(search.data, Card) and search.data.db_id is not None:
                    await ops.upsert_card_data(session, search.data)
                    await ops.replace_faq_data(session, search.data)
                    await ops.add_terms(session, _terms(search), search.data, LOCATION_BOT)
            await session.commit()
        logger.info("Cached %d YGOrg result(s).", len(result.fetched))
