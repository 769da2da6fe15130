"""Tests for scheduled jobs."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ygoresolve.db.operations import get_all_sets, get_products_for_set
from ygoresolve.jobs.update_tcgplayer import _main, is_newer, run_catalog_crawl
from ygoresolve.models.failure import FetchError
from ygoresolve.models.tcgplayer import TCGPlayerProduct, TCGPlayerSet

JAN = datetime(2024, 1, 1, tzinfo=UTC)
FEB = datetime(2024, 2, 1, tzinfo=UTC)


def _catalog(set_modified: datetime = JAN, product_modified: datetime = JAN):
    sets = [
        TCGPlayerSet(set_id=1, set_code="LOB", full_name="LOB", modified_on=set_modified),
        TCGPlayerSet(set_id=2, set_code="MRD", full_name="Metal Raiders", modified_on=JAN),
    ]
    products = {
        1: [
            TCGPlayerProduct(product_id=10, set_id=1, full_name="Blue-Eyes", modified_on=JAN),
            TCGPlayerProduct(
                product_id=11, set_id=1, full_name="Dark Magician", modified_on=product_modified
            ),
        ],
        2: [TCGPlayerProduct(product_id=20, set_id=2, full_name="Summoned Skull", modified_on=JAN)],
    }
    return sets, products


def _client(sets, products, failing: set[int] | None = None) -> MagicMock:
    async def get_set_products(set_id: int) -> list[TCGPlayerProduct]:
        if failing and set_id in failing:
            raise FetchError("TCGPlayer returned HTTP 500")
        return products[set_id]

    client = MagicMock()
    client.get_sets = AsyncMock(return_value=sets)
    client.get_set_products = AsyncMock(side_effect=get_set_products)
    client.close = AsyncMock()
    return client


class TestIsNewer:
    def test_unknown_times_count_as_changed(self) -> None:
        """Missing timestamps always trigger an update."""
        assert is_newer(None, JAN)
        assert is_newer(JAN, None)

    def test_naive_stored_time_is_utc(self) -> None:
        """Stored times read back from SQLite without tzinfo compare as UTC."""
        assert not is_newer(JAN, datetime(2024, 1, 1))
        assert is_newer(FEB, datetime(2024, 1, 1))


class TestCatalogCrawl:
    async def test_first_crawl_stores_everything(
        self, session_factory, session: AsyncSession
    ) -> None:
        """An empty cache takes every set and product."""
        sets, products = _catalog()
        client = _client(sets, products)

        stats = await run_catalog_crawl(client, session_factory, batch_interval=0)

        assert stats.sets_seen == 2
        assert stats.sets_updated == 2
        assert stats.products_updated == 3
        assert set(await get_all_sets(session)) == {1, 2}
        assert [p.product_id for p in await get_products_for_set(session, 1)] == [10, 11]
        client.close.assert_not_awaited()

    async def test_unchanged_catalog_skips_products(self, session_factory) -> None:
        """Sets that did not change are not re-crawled."""
        sets, products = _catalog()
        await run_catalog_crawl(_client(sets, products), session_factory, batch_interval=0)
        client = _client(sets, products)

        stats = await run_catalog_crawl(client, session_factory, batch_interval=0)

        assert stats.sets_updated == 0
        assert stats.products_updated == 0
        client.get_set_products.assert_not_awaited()

    async def test_modified_set_updates_changed_products(self, session_factory) -> None:
        """Only modified products of a modified set are rewritten."""
        await run_catalog_crawl(_client(*_catalog()), session_factory, batch_interval=0)
        client = _client(*_catalog(set_modified=FEB, product_modified=FEB))

        stats = await run_catalog_crawl(client, session_factory, batch_interval=0)

        assert stats.sets_updated == 1
        assert stats.products_updated == 1
        client.get_set_products.assert_awaited_once_with(1)

    async def test_failed_set_does_not_stop_crawl(
        self, session_factory, session: AsyncSession
    ) -> None:
        """A set whose products fail is recorded and the rest are stored."""
        sets, products = _catalog()
        client = _client(sets, products, failing={1})

        stats = await run_catalog_crawl(client, session_factory, batch_interval=0)

        assert stats.failed_sets == [1]
        assert stats.products_updated == 1
        assert [p.product_id for p in await get_products_for_set(session, 2)] == [20]

    async def test_failed_set_retried_next_crawl(self, session_factory) -> None:
        """A failed set is crawled again even though its catalog entry is unchanged."""
        sets, products = _catalog()
        failing = _client(sets, products, failing={1})
        await run_catalog_crawl(failing, session_factory, batch_interval=0)
        client = _client(sets, products)

        stats = await run_catalog_crawl(client, session_factory, batch_interval=0)

        client.get_set_products.assert_awaited_once_with(1)
        assert stats.products_updated == 2


class TestMain:
    async def test_main_logs_network_errors(self) -> None:
        """Network failures end the job without raising."""
        with (
            patch("ygoresolve.jobs.update_tcgplayer.init_db", new_callable=AsyncMock),
            patch(
                "ygoresolve.jobs.update_tcgplayer.run_catalog_crawl",
                new_callable=AsyncMock,
                side_effect=httpx.ConnectError("Network error"),
            ) as crawl,
        ):
            await _main()

        crawl.assert_awaited_once()
