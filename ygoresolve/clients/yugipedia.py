"""Yugipedia (MediaWiki) search client."""

import logging
from typing import Any

import httpx

from ygoresolve.config import settings
from ygoresolve.models.failure import FetchError

logger = logging.getLogger(__name__)

# Title search with page content, categories and the original page image
SEARCH_PARAMS: dict[str, str | int] = {
    "action": "query",
    "format": "json",
    "formatversion": 2,
    "redirects": "true",
    "prop": "revisions|categories|pageimages",
    "rvprop": "content",
    "cllimit": 50,
    "piprop": "original",
    "generator": "search",
    "gsrlimit": 10,
    "gsrwhat": "title",
}


class YugipediaClient:
    """Keyword search over Yugipedia pages."""

    def __init__(self, http: httpx.AsyncClient | None = None, api_url: str | None = None) -> None:
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=settings.api_timeout,
            headers={"User-Agent": settings.app_name},
        )
        self.api_url = api_url or settings.yugipedia_api_url

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def search(self, term: str) -> list[dict[str, Any]]:
        """
        Search page titles for a term.

        Returns:
            Matching pages, best match first. Empty if nothing matched.

        Raises:
            FetchError: If the request fails
        """
        params = {**SEARCH_PARAMS, "gsrsearch": term}
        try:
            response = await self._http.get(self.api_url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"Yugipedia search for {term!r} failed: HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise FetchError(f"Yugipedia search for {term!r} failed: {e}") from e

        pages = (response.json().get("query") or {}).get("pages") or []
        return sorted(pages, key=lambda p: p.get("index", 0))
