"""
Card artwork lookup against the YGOrg artwork repository.

The repository manifest maps card id -> art id -> best available file.
It is cached for a day; only URLs are attached to cards.
"""

import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

from ygoresolve.clients.ygorg import YGOrgClient
from ygoresolve.config import settings
from ygoresolve.models.card import Card
from ygoresolve.models.failure import FetchError

logger = logging.getLogger(__name__)


class ArtworkRepository:
    """Resolves artwork URLs for cards from the repository manifest."""

    def __init__(
        self,
        client: YGOrgClient,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.artwork_manifest_ttl_seconds
        self._clock = clock
        self._manifest: dict[str, Any] | None = None
        self._fetched_at = 0.0

    def reset(self) -> None:
        self._manifest = None

    async def get_manifest(self) -> dict[str, Any] | None:
        """Return the cached manifest, re-fetching it once it expires."""
        if self._manifest is not None and self._clock() - self._fetched_at < self._ttl:
            return self._manifest

        if self._manifest is not None:
            logger.info("Evicted cached artwork manifest.")
            self._manifest = None

        try:
            manifest = await self._client.get_artwork_manifest()
        except FetchError as e:
            logger.warning("Failed processing artwork repo manifest: %s", e)
            return None

        self._manifest = manifest
        self._fetched_at = self._clock()
        logger.info("Cached new artwork manifest.")
        return manifest

    async def art_urls(self, db_id: int) -> dict[int, str]:
        """Art id -> best artwork URL for one card. Empty if none are known."""
        manifest = await self.get_manifest()
        if not manifest or "cards" not in manifest:
            return {}

        arts = manifest["cards"].get(str(db_id)) or {}
        urls: dict[int, str] = {}
        for art_id, art in arts.items():
            best = art.get("bestArt") if isinstance(art, dict) else None
            if best and str(art_id).isdigit():
                urls[int(art_id)] = self._client.artwork_file_url(best)
        return dict(sorted(urls.items()))

    async def add_artwork(self, cards: Iterable[Card]) -> int:
        """
        Attach artwork URLs to cards that have a database id.

        Returns:
            Number of cards that gained artwork
        """
        updated = 0
        for card in cards:
            if card.db_id is None:
                continue
            urls = await self.art_urls(card.db_id)
            for art_id, url in urls.items():
                card.add_image(art_id, url)
            if urls:
                updated += 1
        return updated
