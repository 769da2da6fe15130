"""
Localized property metadata.

YGOrg card payloads refer to monster types and other properties by their
index into a metadata array; each entry maps locale -> name. The array is
loaded once and kept until reset.
"""

import asyncio
import logging

from ygoresolve.clients.ygorg import YGOrgClient
from ygoresolve.models.failure import FetchError

logger = logging.getLogger(__name__)


class PropertyMetadata:
    """Lazily loaded property index -> localized name table."""

    def __init__(self, client: YGOrgClient) -> None:
        self._client = client
        self._array: list[dict[str, str] | None] = []
        self._loaded = False
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def init(self) -> None:
        """
        Fetch the metadata if it is not loaded yet.

        A failed fetch is logged and leaves the table empty; the next call
        tries again.
        """
        async with self._lock:
            if self._loaded:
                return
            try:
                array = await self._client.get_property_metadata()
            except FetchError as e:
                logger.warning("Failed getting YGOrg property metadata: %s", e)
                return
            self.load(array)
            logger.info("Cached YGOrg property metadata (%d entries).", len(self._array))

    def load(self, array: list[dict[str, str] | None]) -> None:
        self._array = list(array)
        self._loaded = True

    def reset(self) -> None:
        self._array = []
        self._loaded = False

    def name_at(self, index: int, locale: str = "en") -> str | None:
        """Name of the property at an array index, or None if unknown."""
        if not 0 <= index < len(self._array):
            return None
        prop = self._array[index]
        return prop.get(locale) if prop else None
