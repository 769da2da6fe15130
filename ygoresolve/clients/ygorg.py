"""YGOrg DB and artwork repository client.

Every YGOrg DB response carries the current cache revision in the
x-cache-revision header; callers feed it to the manifest invalidator
before using the payload.
"""

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin

import httpx

from ygoresolve.config import REVISION_HEADER, settings
from ygoresolve.models.failure import FetchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RevisionedPayload:
    """
    A YGOrg DB response body with the revision it was served at.

    Attributes:
        data: Decoded JSON body
        revision: Value of the cache revision header, if present
    """

    data: Any
    revision: int | None


def _parse_revision(response: httpx.Response) -> int | None:
    value = response.headers.get(REVISION_HEADER)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring malformed %s header: %s", REVISION_HEADER, value)
        return None


class YGOrgClient:
    """Client for db.ygoresources.com and its artwork repository."""

    def __init__(
        self,
        http: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        artwork_url: str | None = None,
    ) -> None:
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=settings.api_timeout)
        self.base_url = (base_url or settings.ygorg_db_url).rstrip("/")
        self.artwork_url = (artwork_url or settings.ygorg_artwork_url).rstrip("/")

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _get(self, url: str, not_found_ok: bool = False) -> httpx.Response | None:
        """GET a URL. A 404 returns None when not_found_ok, otherwise raises FetchError."""
        try:
            response = await self._http.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if not_found_ok and e.response.status_code == 404:
                return None
            raise FetchError(
                f"YGOrg request to {url} failed: HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise FetchError(f"YGOrg request to {url} failed: {e}") from e
        return response

    async def _get_revisioned(self, path: str) -> RevisionedPayload | None:
        response = await self._get(f"{self.base_url}/{path}", not_found_ok=True)
        if response is None:
            return None
        return RevisionedPayload(data=response.json(), revision=_parse_revision(response))

    async def get_card(self, db_id: int) -> RevisionedPayload | None:
        """Fetch card data by database id. Returns None if the id is unknown."""
        return await self._get_revisioned(f"data/card/{db_id}")

    async def get_qa(self, qa_id: int) -> RevisionedPayload | None:
        """Fetch a ruling by QA id. Returns None if the id is unknown."""
        return await self._get_revisioned(f"data/qa/{qa_id}")

    async def get_name_index(self, locale: str) -> RevisionedPayload | None:
        """Fetch the name -> ids index for one locale."""
        return await self._get_revisioned(f"data/idx/card/name/{locale}")

    async def get_manifest(self, since_revision: int) -> dict[str, Any]:
        """
        Fetch the entities changed since a revision.

        Returns:
            The manifest's "data" object: {"card": {...}, "qa": {...}, "idx": {...}}
        """
        response = await self._get(f"{self.base_url}/manifest/{since_revision}")
        if response is None:
            return {}
        body = response.json()
        return body.get("data") or {}

    async def get_property_metadata(self) -> list[dict[str, str] | None]:
        """Fetch localized property names, indexed by property id."""
        response = await self._get(f"{self.base_url}/data/meta/auto")
        if response is None:
            return []
        return response.json()

    async def get_artwork_manifest(self) -> dict[str, Any]:
        """Fetch the artwork repository manifest."""
        response = await self._get(f"{self.artwork_url}/manifest.json")
        if response is None:
            return {}
        return response.json()

    def artwork_file_url(self, path: str) -> str:
        """Resolve a manifest art path against the repository root."""
        return urljoin(f"{self.artwork_url}/", path)
