"""
TCGPlayer pricing connector.

Sets and cards take separate paths to their products: a set comes from
the crawled set table, a card from the products linked to its database
id or English name. Products still missing fresh prices are priced in
batches through the API.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ygoresolve.clients.tcgplayer import TCGPlayerClient
from ygoresolve.connectors.base import ResolveResult, SourceConnector
from ygoresolve.models.card import Card
from ygoresolve.models.query import Query
from ygoresolve.models.search import Search
from ygoresolve.models.tcgplayer import TCGPlayerProduct, TCGPlayerSet, products_without_price_data
from ygoresolve.services.catalog import attach_catalog_data

logger = logging.getLogger(__name__)


class TCGPlayerConnector(SourceConnector):
    """Resolves the price facet of cards and sets."""

    name = "tcgplayer"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: TCGPlayerClient,
    ) -> None:
        self._session_factory = session_factory
        self._client = client

    async def resolve(self, searches: list[Search], query: Query | None) -> ResolveResult:
        now = datetime.now(UTC)
        async with self._session_factory() as session:
            await attach_catalog_data(session, searches, now)

        # The same product can sit on several searches; price it once
        by_id: dict[int, list[TCGPlayerProduct]] = {}
        owners: dict[int, list[Search]] = {}
        for search in searches:
            if not isinstance(search.data, (Card, TCGPlayerSet)):
                continue
            for product in products_without_price_data(search.data.products, now):
                by_id.setdefault(product.product_id, []).append(product)
                owners.setdefault(product.product_id, []).append(search)

        if not by_id:
            return ResolveResult.from_searches(searches, [], query)

        logger.info("Querying TCGPlayer prices for %d product(s).", len(by_id))
        priced = await self._client.get_prices([products[0] for products in by_id.values()])

        fetched: list[Search] = []
        for product in priced:
            for twin in by_id[product.product_id][1:]:
                twin.price_data = dict(product.price_data)
                twin.price_cached_at = product.price_cached_at
            for search in owners[product.product_id]:
                if search not in fetched:
                    fetched.append(search)

        return ResolveResult.from_searches(searches, fetched, query, fetched=fetched)
