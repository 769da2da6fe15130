"""
Scheduled job to crawl the TCGPlayer catalog.

Fetches every Yu-Gi-Oh! set and the products of sets that changed since
the last crawl, so price lookups can map cards and sets to product ids.
Can be run as a standalone script or called from a scheduler.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ygoresolve.clients.tcgplayer import TCGPlayerClient
from ygoresolve.db.database import async_session_factory, init_db
from ygoresolve.db.operations import (
    as_utc,
    get_all_sets,
    get_product_modified_map,
    mark_set_stale,
    upsert_products,
    upsert_sets,
)
from ygoresolve.models.failure import KnownError
from ygoresolve.models.tcgplayer import TCGPlayerSet

logger = logging.getLogger(__name__)

# Sets crawled concurrently; each batch takes at least BATCH_INTERVAL seconds
SETS_PER_BATCH = 3
BATCH_INTERVAL = 1.0


@dataclass
class CrawlStats:
    """
    Outcome of one catalog crawl.

    Attributes:
        sets_seen: Sets returned by the catalog
        sets_updated: Sets that were new or modified
        products_updated: Products that were new or modified
        failed_sets: Ids of sets whose products could not be fetched
    """

    sets_seen: int = 0
    sets_updated: int = 0
    products_updated: int = 0
    failed_sets: list[int] = field(default_factory=list)


def is_newer(modified_on: datetime | None, stored: datetime | None) -> bool:
    """Whether a catalog row changed since it was stored. Unknown times count as changed."""
    if stored is None or modified_on is None:
        return True
    return as_utc(modified_on) > as_utc(stored)


async def update_sets(
    session: AsyncSession, client: TCGPlayerClient, stats: CrawlStats
) -> list[TCGPlayerSet]:
    """
    Store new and modified sets.

    Returns:
        The sets whose products should be re-crawled
    """
    sets = await client.get_sets()
    stats.sets_seen = len(sets)
    stored = await get_all_sets(session)

    changed = [
        s
        for s in sets
        if s.set_id not in stored or is_newer(s.modified_on, stored[s.set_id].modified_on)
    ]
    stats.sets_updated = await upsert_sets(session, changed)
    logger.info("Fetched %d sets, %d new or modified", stats.sets_seen, stats.sets_updated)
    return changed


async def update_products(
    session: AsyncSession,
    client: TCGPlayerClient,
    sets: list[TCGPlayerSet],
    stats: CrawlStats,
    batch_interval: float = BATCH_INTERVAL,
) -> None:
    """Crawl products of the given sets a few sets at a time, storing changed ones."""
    stored = await get_product_modified_map(session)

    for start in range(0, len(sets), SETS_PER_BATCH):
        batch = sets[start : start + SETS_PER_BATCH]
        began = time.monotonic()

        results = await asyncio.gather(
            *(client.get_set_products(s.set_id) for s in batch), return_exceptions=True
        )
        for tcg_set, result in zip(batch, results, strict=True):
            if isinstance(result, BaseException):
                logger.error("Failed to fetch products for set %s: %s", tcg_set.set_code, result)
                stats.failed_sets.append(tcg_set.set_id)
                await mark_set_stale(session, tcg_set.set_id)
                continue
            changed = [
                p
                for p in result
                if p.product_id not in stored or is_newer(p.modified_on, stored[p.product_id])
            ]
            stats.products_updated += await upsert_products(session, changed)

        elapsed = time.monotonic() - began
        if elapsed < batch_interval:
            await asyncio.sleep(batch_interval - elapsed)


async def run_catalog_crawl(
    client: TCGPlayerClient | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    batch_interval: float = BATCH_INTERVAL,
) -> CrawlStats:
    """
    Crawl sets and products into the local cache DB.

    Args:
        client: TCGPlayer client; a new one is created and closed if omitted
        session_factory: Cache DB session factory
        batch_interval: Minimum seconds per batch of sets

    Returns:
        Counts of what was seen and stored
    """
    owns_client = client is None
    client = client or TCGPlayerClient()
    session_factory = session_factory or async_session_factory
    stats = CrawlStats()

    try:
        async with session_factory() as session:
            changed = await update_sets(session, client, stats)
            await session.commit()
            await update_products(session, client, changed, stats, batch_interval)
            await session.commit()
    finally:
        if owns_client:
            await client.close()

    logger.info(
        "Catalog crawl complete. %d set(s), %d product(s) updated, %d set(s) failed",
        stats.sets_updated,
        stats.products_updated,
        len(stats.failed_sets),
    )
    return stats


async def _main() -> None:
    await init_db()
    try:
        await run_catalog_crawl()
    except (httpx.HTTPError, KnownError) as e:
        logger.error("Catalog crawl failed: %s", e)


def main() -> None:
    """CLI entry point for running the catalog crawl."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(_main())


if __name__ == "__main__":
    main()
