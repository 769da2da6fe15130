"""Tests for manifest-driven cache invalidation."""

import asyncio
from unittest.mock import AsyncMock

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ygoresolve.db import operations as ops
from ygoresolve.models.card import Card
from ygoresolve.models.db import LOCATION_BOT, LOCATION_KONAMI, TermDB
from ygoresolve.models.failure import FetchError
from ygoresolve.models.ruling import Ruling
from ygoresolve.services.manifest import ManifestInvalidator


async def _seed(session: AsyncSession) -> None:
    for db_id, name in [(4007, "Blue-Eyes White Dragon"), (4861, "Pot of Greed")]:
        card = Card(db_id=db_id, name={"en": name}, effect={"en": "..."})
        card.add_faq_entry("en", "0", f"About {name}")
        await ops.upsert_card_data(session, card)
        await ops.replace_faq_data(session, card)
        await ops.add_terms(session, [name.lower()], card, LOCATION_BOT)
    # Reference DB terms survive eviction
    await ops.add_terms(
        session, ["bewd"], Card(db_id=4007, name={"en": "Blue-Eyes White Dragon"}), LOCATION_KONAMI
    )
    for qa_id in (10, 11):
        await ops.upsert_ruling(
            session, Ruling(id=qa_id, title={"en": "t"}, question={"en": "q"}, answer={"en": "a"})
        )
    await ops.set_manifest_revision(session, 100)
    await session.commit()


class TestManifestCheck:
    async def test_evicts_exactly_what_changed(self, session_factory, session: AsyncSession) -> None:
        """Only ids named by the manifest are evicted."""
        await _seed(session)
        client = AsyncMock()
        client.get_manifest.return_value = {"card": {"4007": 1}, "qa": {"10": 1}}
        invalidator = ManifestInvalidator(client, session_factory)

        report = await invalidator.check(101)

        client.get_manifest.assert_awaited_once_with(100)
        assert report.card_ids == [4007]
        assert report.qa_ids == [10]

        session.expunge_all()
        assert await ops.get_card_data(session, 4007) is None
        assert await ops.get_card_data(session, 4861) is not None
        assert await ops.get_faq_rows(session, 4007) == []
        assert len(await ops.get_faq_rows(session, 4861)) == 1
        assert await ops.get_ruling_data(session, 10) is None
        assert await ops.get_ruling_data(session, 11) is not None

        terms = (await session.execute(select(TermDB))).scalars().all()
        assert {(t.term, t.location) for t in terms} == {
            ("pot of greed", LOCATION_BOT),
            ("bewd", LOCATION_KONAMI),
        }

    async def test_persists_revision(self, session_factory, session: AsyncSession) -> None:
        """The applied revision is stored."""
        await _seed(session)
        client = AsyncMock()
        client.get_manifest.return_value = {}
        invalidator = ManifestInvalidator(client, session_factory)

        await invalidator.check(105)

        assert invalidator.revision == 105
        session.expunge_all()
        assert await ops.get_manifest_revision(session) == 105

    async def test_old_revision_is_noop(self, session_factory, session: AsyncSession) -> None:
        """Revisions at or below the last seen do nothing."""
        await _seed(session)
        client = AsyncMock()
        invalidator = ManifestInvalidator(client, session_factory)

        assert await invalidator.check(100) is None
        assert await invalidator.check(99) is None
        assert await invalidator.check(None) is None
        client.get_manifest.assert_not_awaited()

    async def test_first_revision_is_baseline(self, session_factory) -> None:
        """With nothing on record the first revision is stored without a manifest fetch."""
        client = AsyncMock()
        invalidator = ManifestInvalidator(client, session_factory)

        assert await invalidator.check(7) is None

        assert invalidator.revision == 7
        client.get_manifest.assert_not_awaited()

    async def test_failed_fetch_does_not_advance(self, session_factory, session: AsyncSession) -> None:
        """A manifest fetch failure leaves the revision for the next check to retry."""
        await _seed(session)
        client = AsyncMock()
        client.get_manifest.side_effect = FetchError("timeout")
        invalidator = ManifestInvalidator(client, session_factory)

        assert await invalidator.check(101) is None
        assert invalidator.revision == 100

        client.get_manifest.side_effect = None
        client.get_manifest.return_value = {"card": {"4007": 1}}
        report = await invalidator.check(101)

        assert report is not None
        assert report.card_ids == [4007]

    async def test_overlapping_checks_only_move_forward(
        self, session_factory, session: AsyncSession
    ) -> None:
        """Concurrent checks apply the newest revision once and never persist an older one."""
        await _seed(session)
        calls = []

        async def get_manifest(since: int) -> dict:
            calls.append(since)
            await asyncio.sleep(0.01)
            return {"card": {"4007": 1}}

        client = AsyncMock()
        client.get_manifest.side_effect = get_manifest
        invalidator = ManifestInvalidator(client, session_factory)

        newer, older = await asyncio.gather(invalidator.check(102), invalidator.check(101))

        assert calls == [100]
        assert newer.revision == 102
        assert older is None
        assert invalidator.revision == 102
        session.expunge_all()
        assert await ops.get_manifest_revision(session) == 102

        assert await invalidator.check(102) is None
        assert calls == [100]

    async def test_name_index_locales_evicted(self, session_factory, session: AsyncSession) -> None:
        """Changed name index locales go to the evictor."""
        await _seed(session)
        client = AsyncMock()
        client.get_manifest.return_value = {"idx": {"name": {"en": 1, "ja": 1}}}
        evictor = AsyncMock()
        invalidator = ManifestInvalidator(client, session_factory, evictor=evictor)

        report = await invalidator.check(101)

        assert report.locales == ["en", "ja"]
        evictor.evict_locales.assert_awaited_once_with(["en", "ja"])

    async def test_apply_is_idempotent(self, session_factory, session: AsyncSession) -> None:
        """Applying the same manifest twice is harmless."""
        await _seed(session)
        invalidator = ManifestInvalidator(AsyncMock(), session_factory)
        changes = {"card": {"4007": 1}}

        first = await invalidator.apply(101, changes)
        second = await invalidator.apply(101, changes)

        assert first.rows_deleted > 0
        assert second.rows_deleted == 0
