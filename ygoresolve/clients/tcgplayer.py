"""TCGPlayer API client.

Every request passes through one shared rate limiter (TCGPlayer allows
300 requests/min). Authenticated calls carry a bearer token acquired with
client credentials and cached until it expires.
"""

import logging
import math
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from ygoresolve.clients.rate_limiter import RateLimiter
from ygoresolve.config import MAX_PRICE_BATCH_SIZE, PAGE_SIZE, settings
from ygoresolve.models.failure import AuthenticationError, FetchError, PaginationIntegrityError
from ygoresolve.models.tcgplayer import Prices, TCGPlayerProduct, TCGPlayerSet

logger = logging.getLogger(__name__)

# TCGPlayer reports an empty search as an error with this message
NO_PRODUCTS_FOUND = "No products were found."

YUGIOH_CATEGORY_NAME = "YuGiOh"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a TCGPlayer ISO timestamp, assuming UTC when no offset is given."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _parse_token_expiry(data: dict[str, Any]) -> datetime:
    expires = data.get(".expires")
    if expires:
        try:
            return parsedate_to_datetime(expires)
        except (TypeError, ValueError):
            logger.warning("Unparseable TCGPlayer token expiry: %s", expires)
    return datetime.now(UTC) + timedelta(seconds=int(data.get("expires_in", 0)))


def _chunks(items: list[Any], size: int) -> Iterable[list[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class TCGPlayerClient:
    """Rate-limited, authenticated, paginating TCGPlayer client."""

    def __init__(
        self,
        http: httpx.AsyncClient | None = None,
        limiter: RateLimiter | None = None,
        public_key: str | None = None,
        private_key: str | None = None,
        base_url: str | None = None,
        api_version: str | None = None,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=settings.api_timeout)
        self._limiter = limiter or RateLimiter(
            "tcgplayer", capacity=settings.tcgplayer_requests_per_second, period=1.0
        )
        self.public_key = public_key if public_key is not None else settings.tcgplayer_public_key
        self._private_key = private_key if private_key is not None else settings.tcgplayer_private_key
        self.base_url = (base_url or settings.tcgplayer_api_url).rstrip("/")
        self.api_version = api_version or settings.tcgplayer_api_version
        self.page_size = page_size

        self._authorization: str | None = None
        self._token_expires: datetime | None = None
        self._category_id: int | None = None

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    @property
    def _headers(self) -> dict[str, str]:
        return {"accept": "application/json", "User-Agent": settings.tcgplayer_app_name}

    def has_valid_token(self, now: datetime | None = None) -> bool:
        if self._authorization is None or self._token_expires is None:
            return False
        return self._token_expires > (now or datetime.now(UTC))

    async def ensure_token(self) -> str:
        """
        Return a valid Authorization header value, acquiring a token if needed.

        Raises:
            AuthenticationError: If no token could be acquired, or the token
                was issued to a different application
        """
        if self._authorization is not None and self.has_valid_token():
            return self._authorization

        if not self.public_key or not self._private_key:
            raise AuthenticationError("TCGPlayer API credentials are not configured.")

        form = {
            "grant_type": "client_credentials",
            "client_id": self.public_key,
            "client_secret": self._private_key,
        }
        try:
            async with self._limiter:
                response = await self._http.post(
                    f"{self.base_url}/token", data=form, headers=self._headers
                )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise AuthenticationError(
                "Failed to get bearer token for TCGPlayer API.",
                detail=f"HTTP {e.response.status_code}",
            ) from e
        except httpx.RequestError as e:
            raise AuthenticationError(
                "Failed to get bearer token for TCGPlayer API.", detail=str(e)
            ) from e

        if data.get("userName") != self.public_key:
            logger.error("Received TCGPlayer bearer token for another application, ignoring it.")
            raise AuthenticationError(
                "Received bearer token for another application.",
                detail=f"userName={data.get('userName')}",
            )
        if not data.get("access_token"):
            raise AuthenticationError("Did not receive bearer token from TCGPlayer API.")

        self._authorization = f"{data.get('token_type', 'bearer')} {data['access_token']}"
        self._token_expires = _parse_token_expiry(data)
        logger.info("Cached new bearer token for TCGPlayer API, expires %s.", self._token_expires)
        return self._authorization

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Send an authenticated GET and return its JSON body.

        A "no products found" error is returned as an empty result.

        Raises:
            AuthenticationError: If no token is available
            FetchError: On any other HTTP or network failure
        """
        headers = {**self._headers, "Authorization": await self.ensure_token()}
        url = f"{self.base_url}/{path}"
        try:
            async with self._limiter:
                response = await self._http.get(url, params=params, headers=headers)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            if _is_no_products_found(e.response):
                return {"success": True, "totalItems": 0, "results": []}
            raise FetchError(
                f"TCGPlayer request to {path} failed: HTTP {e.response.status_code}",
                detail=e.response.text,
            ) from e
        except httpx.RequestError as e:
            raise FetchError(f"TCGPlayer request to {path} failed: {e}") from e

    async def get_paged(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """
        Fetch every page of a paged endpoint.

        The first page declares totalItems. Later pages advance an offset
        cursor and never exceed ceil(totalItems / page_size) requests in
        total, so a moving or miscounted total cannot loop forever.

        Raises:
            PaginationIntegrityError: If the item count disagrees with totalItems
            FetchError: If any page request fails
        """
        page_params: dict[str, Any] = {**(params or {}), "limit": self.page_size, "offset": 0}
        first = await self._get(path, page_params)
        results: list[dict[str, Any]] = list(first.get("results") or [])
        if "totalItems" not in first:
            return results

        total = int(first["totalItems"])
        expected_requests = math.ceil(total / self.page_size)
        requests_sent = 1
        while len(results) < total and requests_sent < expected_requests:
            page_params["offset"] = len(results)
            page = await self._get(path, page_params)
            requests_sent += 1
            page_results = page.get("results") or []
            if not page_results:
                break
            results.extend(page_results)

        if len(results) != total:
            logger.error(
                "Paged TCGPlayer result for %s returned %d of %d items in %d requests.",
                path,
                len(results),
                total,
                requests_sent,
            )
            raise PaginationIntegrityError(total, len(results), requests_sent)
        return results

    async def get_category_id(self) -> int:
        """Find and cache the id of the Yu-Gi-Oh! catalog category."""
        if self._category_id is not None:
            return self._category_id

        categories = await self.get_paged(
            f"{self.api_version}/catalog/categories", {"sortOrder": "categoryId"}
        )
        for category in categories:
            if category.get("name") == YUGIOH_CATEGORY_NAME:
                self._category_id = int(category["categoryId"])
                logger.info("Cached TCGPlayer category id for Yu-Gi-Oh as %d.", self._category_id)
                return self._category_id

        raise FetchError("Could not find TCGPlayer category id for Yu-Gi-Oh.")

    async def get_prices(self, products: list[TCGPlayerProduct]) -> list[TCGPlayerProduct]:
        """
        Fetch price data for products, updating them in place.

        Ids are sent in chunks of MAX_PRICE_BATCH_SIZE. A failing chunk is
        logged and skipped; the rest still resolve. Sub-types with any
        missing price (e.g. a print that never had a 1st Edition) are skipped.

        Returns:
            The products that received price data
        """
        by_id = {p.product_id: p for p in products}
        priced: dict[int, TCGPlayerProduct] = {}
        now = datetime.now(UTC)

        for chunk in _chunks(list(by_id), MAX_PRICE_BATCH_SIZE):
            ids = ",".join(str(i) for i in chunk)
            try:
                data = await self._get(f"{self.api_version}/pricing/product/{ids}")
            except FetchError as e:
                logger.warning("TCGPlayer price query failed for %d products: %s", len(chunk), e)
                continue

            for result in data.get("results") or []:
                product = by_id.get(result.get("productId"))
                if product is None:
                    continue
                values = [result.get(k) for k in ("lowPrice", "midPrice", "highPrice", "marketPrice")]
                if any(v is None for v in values):
                    continue
                low, mid, high, market = (float(v) for v in values)
                product.set_prices(
                    result.get("subTypeName") or "Unlimited",
                    Prices(low=low, mid=mid, high=high, market=market),
                    cached_at=now,
                )
                priced[product.product_id] = product

        return list(priced.values())

    async def get_sets(self) -> list[TCGPlayerSet]:
        """Fetch every Yu-Gi-Oh! group (set) in the catalog."""
        category_id = await self.get_category_id()
        groups = await self.get_paged(
            f"{self.api_version}/catalog/groups", {"categoryId": category_id}
        )
        return [
            TCGPlayerSet(
                set_id=int(g["groupId"]),
                set_code=g.get("abbreviation"),
                full_name=g.get("name"),
                modified_on=parse_timestamp(g.get("modifiedOn")),
            )
            for g in groups
        ]

    async def get_set_products(self, set_id: int) -> list[TCGPlayerProduct]:
        """Fetch every product in a set with its print code and rarity."""
        results = await self.get_paged(
            f"{self.api_version}/catalog/products",
            {"groupId": set_id, "getExtendedFields": "true"},
        )
        products = []
        for p in results:
            product = TCGPlayerProduct(
                product_id=int(p["productId"]),
                full_name=p.get("name"),
                set_id=int(p.get("groupId") or set_id),
                modified_on=parse_timestamp(p.get("modifiedOn")),
            )
            # Print code is stored as "Number"
            for extended in p.get("extendedData") or []:
                if extended.get("name") == "Number":
                    product.print_code = extended.get("value")
                elif extended.get("name") == "Rarity":
                    product.rarity = extended.get("value")
            products.append(product)
        return products


def _is_no_products_found(response: httpx.Response) -> bool:
    try:
        data = response.json()
    except ValueError:
        return False
    errors = data.get("errors") if isinstance(data, dict) else None
    return bool(errors) and errors[0] == NO_PRODUCTS_FOUND
