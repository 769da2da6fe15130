"""
TCGPlayer catalog models.

A product is one print of a card (one rarity in one set). Price data is
keyed by print sub-type (Unlimited, 1st Edition, ...). A card or set
counts as priced once enough of its products carry fresh price data;
some print variants never receive pricing, so full coverage is not
required.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from ygoresolve.config import PRICE_RESOLUTION_THRESHOLD, settings
from ygoresolve.models.search import Facet


@dataclass(frozen=True, slots=True)
class Prices:
    """
    Price points for one print sub-type.

    Attributes:
        low: Lowest listed price
        mid: Median listed price
        high: Highest listed price
        market: Market price from recent sales
    """

    low: float
    mid: float
    high: float
    market: float


@dataclass(slots=True)
class TCGPlayerProduct:
    """
    One TCGPlayer product.

    Attributes:
        product_id: TCGPlayer product id, unique per print
        full_name: Product name as listed on TCGPlayer
        set_id: Id of the group (set) the product belongs to
        rarity: Rarity the card was printed in
        print_code: Print code, e.g. "LOB-001"
        price_data: Print sub-type -> prices
        price_cached_at: When price_data was fetched
        modified_on: Last catalog modification time reported by TCGPlayer
    """

    product_id: int
    full_name: str | None = None
    set_id: int | None = None
    rarity: str | None = None
    print_code: str | None = None
    price_data: dict[str, Prices] = field(default_factory=dict)
    price_cached_at: datetime | None = None
    modified_on: datetime | None = None

    def has_price_data(self, now: datetime | None = None) -> bool:
        """Whether this product carries price data that is not stale."""
        if not self.price_data or self.price_cached_at is None:
            return False
        now = now or datetime.now(UTC)
        return now - self.price_cached_at < timedelta(seconds=settings.price_staleness_seconds)

    def set_prices(self, sub_type: str, prices: Prices, cached_at: datetime | None = None) -> None:
        self.price_data[sub_type] = prices
        self.price_cached_at = cached_at or datetime.now(UTC)


@dataclass(slots=True)
class TCGPlayerSet:
    """
    One TCGPlayer group (set).

    Attributes:
        set_id: TCGPlayer group id
        set_code: Abbreviated set code, e.g. "LOB"
        full_name: Full set name
        products: Products in this set
        modified_on: Last catalog modification time reported by TCGPlayer
    """

    set_id: int
    set_code: str | None = None
    full_name: str | None = None
    products: list[TCGPlayerProduct] = field(default_factory=list)
    modified_on: datetime | None = None

    def satisfies(self, facet: Facet, locale: str) -> bool:
        """Sets only ever answer price lookups."""
        return facet == Facet.PRICE and price_data_resolved(self.products)

    def __str__(self) -> str:
        return f"{self.full_name} ({self.set_code})"


def products_without_price_data(
    products: list[TCGPlayerProduct], now: datetime | None = None
) -> list[TCGPlayerProduct]:
    """Return products missing fresh price data."""
    now = now or datetime.now(UTC)
    return [p for p in products if not p.has_price_data(now)]


def price_data_resolved(products: list[TCGPlayerProduct], now: datetime | None = None) -> bool:
    """
    Check whether a product list is priced well enough.

    An empty product list is never resolved: nothing is known about it yet.

    Args:
        products: Products of a card or set
        now: Reference time for staleness checks

    Returns:
        True if at least PRICE_RESOLUTION_THRESHOLD of products have price data
    """
    if not products:
        return False
    missing = len(products_without_price_data(products, now))
    return (len(products) - missing) / len(products) >= PRICE_RESOLUTION_THRESHOLD
