"""
Manifest-driven cache invalidation.

Every YGOrg DB response carries the catalog's current revision. When it
moves past the last revision this process saw, the manifest of changes
since then is fetched once and everything it names is evicted:

- card ids: cached card payloads, FAQ rows and bot term rows
- ruling ids: cached ruling payloads and their card references
- name index locales: the in-memory and persisted index

Eviction is lazy; nothing is re-fetched here. Data from the reference DB
is never touched since it is maintained by a separate process.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ygoresolve.clients.ygorg import YGOrgClient
from ygoresolve.db import operations as ops
from ygoresolve.models.failure import FetchError
from ygoresolve.services.interfaces import IndexEvictor

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EvictionReport:
    """
    What one manifest revision evicted.

    Attributes:
        revision: The revision that was applied
        card_ids: Card ids whose cached data was evicted
        qa_ids: Ruling ids whose cached data was evicted
        locales: Name index locales that were evicted
        rows_deleted: Cache DB rows removed for cards and rulings
    """

    revision: int
    card_ids: list[int] = field(default_factory=list)
    qa_ids: list[int] = field(default_factory=list)
    locales: list[str] = field(default_factory=list)
    rows_deleted: int = 0


def _int_keys(section: Any) -> list[int]:
    if not isinstance(section, dict):
        return []
    keys = []
    for key in section:
        try:
            keys.append(int(key))
        except (TypeError, ValueError):
            logger.debug("Ignoring non-numeric manifest key %r", key)
    return sorted(keys)


def _changed_locales(changes: dict[str, Any]) -> list[str]:
    idx = changes.get("idx")
    if not isinstance(idx, dict) or not isinstance(idx.get("name"), dict):
        return []
    return sorted(idx["name"])


class ManifestInvalidator:
    """Tracks the last seen catalog revision and evicts what changed since."""

    def __init__(
        self,
        client: YGOrgClient,
        session_factory: async_sessionmaker[AsyncSession],
        evictor: IndexEvictor | None = None,
    ) -> None:
        self._client = client
        self._session_factory = session_factory
        self._evictor = evictor
        self.revision: int | None = None
        self._initialized = False
        self._lock = asyncio.Lock()

    def set_evictor(self, evictor: IndexEvictor) -> None:
        self._evictor = evictor

    async def init(self) -> None:
        """Load the persisted revision."""
        async with self._session_factory() as session:
            self.revision = await ops.get_manifest_revision(session)
        self._initialized = True
        if self.revision is not None:
            logger.info("Loaded YGOrg manifest revision %d.", self.revision)

    def reset(self) -> None:
        """Forget the in-memory revision; the next check reloads it."""
        self.revision = None
        self._initialized = False

    async def check(self, revision: int | None) -> EvictionReport | None:
        """
        Apply a revision seen on a catalog response.

        A revision at or below the last seen one is a no-op. With no
        revision on record the new one becomes the baseline. A failed
        manifest fetch is logged and the revision is not advanced, so the
        next response retries. Checks run one at a time so the revision
        only ever moves forward and each manifest is applied once.

        Returns:
            What was evicted, or None if nothing was applied
        """
        if revision is None:
            return None
        if self._initialized and self.revision is not None and self.revision >= revision:
            return None

        async with self._lock:
            if not self._initialized:
                await self.init()

            if self.revision is None:
                await self._persist(revision)
                logger.info("Recorded YGOrg manifest revision %d as baseline.", revision)
                return None
            if self.revision >= revision:
                return None

            try:
                changes = await self._client.get_manifest(self.revision)
            except FetchError as e:
                logger.warning(
                    "Failed processing YGOrg manifest since revision %d: %s", self.revision, e
                )
                return None

            logger.info("Processing YGOrg manifest revision %d...", revision)
            report = await self.apply(revision, changes)
            await self._persist(revision)
            return report

    async def apply(self, revision: int, changes: dict[str, Any]) -> EvictionReport:
        """Evict everything a manifest names. Safe to apply more than once."""
        report = EvictionReport(
            revision=revision,
            card_ids=_int_keys(changes.get("card")),
            qa_ids=_int_keys(changes.get("qa")),
            locales=_changed_locales(changes),
        )

        async with self._session_factory() as session:
            report.rows_deleted += await ops.evict_cards(session, report.card_ids)
            report.rows_deleted += await ops.evict_rulings(session, report.qa_ids)
            await session.commit()

        if report.card_ids:
            logger.info(
                "Evicted FAQ and cached bot data for %d database id(s).", len(report.card_ids)
            )
        if report.qa_ids:
            logger.info("Evicted QA data for %d QA id(s).", len(report.qa_ids))
        if report.locales and self._evictor is not None:
            await self._evictor.evict_locales(report.locales)

        return report

    async def _persist(self, revision: int) -> None:
        async with self._session_factory() as session:
            await ops.set_manifest_revision(session, revision)
            await session.commit()
        self.revision = revision
