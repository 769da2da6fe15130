from ygoresolve.models.card import Card, FaqBlock
from ygoresolve.models.query import Query, QueryOptions
from ygoresolve.models.ruling import Ruling
from ygoresolve.models.search import Facet, Search, normalize_token
from ygoresolve.models.tcgplayer import Prices, TCGPlayerProduct, TCGPlayerSet

__all__ = [
    "Card",
    "FaqBlock",
    "Facet",
    "Prices",
    "Query",
    "QueryOptions",
    "Ruling",
    "Search",
    "TCGPlayerProduct",
    "TCGPlayerSet",
    "normalize_token",
]
