"""
Loading cached TCGPlayer catalog data onto searches.

Sets and products come from the crawl job's tables; fresh price rows are
attached where present. Stale price rows are treated as absent.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from ygoresolve.db import operations as ops
from ygoresolve.models.card import Card
from ygoresolve.models.db import TCGPlayerProductDB
from ygoresolve.models.search import Facet, Search
from ygoresolve.models.tcgplayer import TCGPlayerProduct, TCGPlayerSet

logger = logging.getLogger(__name__)


async def _to_products(
    session: AsyncSession, rows: list[TCGPlayerProductDB], now: datetime
) -> list[TCGPlayerProduct]:
    prices = await ops.get_fresh_prices(session, [r.product_id for r in rows], now)
    return [ops.product_to_model(r, prices.get(r.product_id)) for r in rows]


async def load_set(
    session: AsyncSession, term: str, now: datetime | None = None
) -> TCGPlayerSet | None:
    """Load a set by code or name with its products. Returns None if unknown."""
    row = await ops.find_set(session, term)
    if row is None:
        return None

    tcg_set = ops.set_to_model(row)
    product_rows = await ops.get_products_for_set(session, row.set_id)
    tcg_set.products = await _to_products(session, product_rows, now or datetime.now(UTC))
    return tcg_set


async def load_card_products(
    session: AsyncSession, card: Card, now: datetime | None = None
) -> list[TCGPlayerProduct]:
    """Load a card's products by database id, or by English name if unlinked."""
    rows = await ops.get_products_for_card(session, card.db_id, card.name.get("en"))
    return await _to_products(session, rows, now or datetime.now(UTC))


async def attach_catalog_data(
    session: AsyncSession, searches: list[Search], now: datetime | None = None
) -> list[Search]:
    """
    Attach cached catalog data to price searches.

    A search with no data and a text term is tried as a set. A card with
    no products yet gets its products loaded. Other searches are left alone.

    Returns:
        The searches that gained a set or products
    """
    now = now or datetime.now(UTC)
    updated = []
    for search in searches:
        if not search.has_facet(Facet.PRICE):
            continue

        if search.data is None:
            if not isinstance(search.term, str):
                continue
            tcg_set = await load_set(session, search.term, now)
            if tcg_set is not None:
                search.data = tcg_set
                updated.append(search)
        elif isinstance(search.data, Card) and not search.data.products:
            products = await load_card_products(session, search.data, now)
            if products:
                search.data.products = products
                updated.append(search)

    if updated:
        logger.debug("Attached cached TCGPlayer data to %d search(es).", len(updated))
    return updated
