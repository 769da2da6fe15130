"""
Search: a single resolution unit.

A Search tracks every raw token that mapped onto it, the best-known
canonical term, the (locale, facet) pairs still wanted, and the entity
that resolved it. Sources may rewrite the term mid-pipeline; the owning
Query merges searches that converge on the same term.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ygoresolve.models.card import Card
    from ygoresolve.models.ruling import Ruling
    from ygoresolve.models.tcgplayer import TCGPlayerSet

    SearchData = Card | Ruling | TCGPlayerSet

Term = str | int


class Facet(str, Enum):
    """Category of requested data."""

    INFO = "i"
    RULING = "r"
    ART = "a"
    DATE = "d"
    PRICE = "$"
    FAQ = "f"
    QA = "q"


# Numeric tokens that are also card names and must stay strings
AMBIGUOUS_NUMERIC_NAMES = frozenset({"7"})


def normalize_token(token: Term, facet: Facet | None = None) -> Term:
    """
    Normalize a raw lookup token into a search term.

    Text is stripped and lowercased. Purely numeric text is coerced to an
    integer id, except for names that happen to be numbers. QA lookups
    are always ids, so they are coerced regardless.

    Args:
        token: Raw token from the caller
        facet: Facet the token was requested with

    Returns:
        An int id or a lowercased name
    """
    if isinstance(token, int):
        return token

    cleaned = token.strip().lower()
    if cleaned.isdigit():
        if facet == Facet.QA or cleaned not in AMBIGUOUS_NUMERIC_NAMES:
            return int(cleaned)
    return cleaned


class Search:
    """
    One lookup being resolved.

    Attributes:
        originals: Raw tokens that map to this search (grows via merges)
        term: Current best-known lookup key
        requirements: Locale -> facets wanted for that locale
        data: Resolved entity, None until a source populates it
        raw_data: Unprocessed source payload, cleared once normalized
    """

    def __init__(
        self,
        term: Term,
        facet: Facet | None = None,
        locale: str | None = None,
    ) -> None:
        self.originals: set[Term] = {term}
        self.term: Term = term
        self.requirements: dict[str, set[Facet]] = {}
        self.data: SearchData | None = None
        self.raw_data: Any = None

        if facet is not None and locale is not None:
            self.add_requirement(locale, facet)

    def add_requirement(self, locale: str, facet: Facet) -> None:
        """Add a (locale, facet) pair. Idempotent."""
        self.requirements.setdefault(locale, set()).add(facet)

    def has_facet(self, facet: Facet) -> bool:
        """Whether any locale requests the given facet."""
        return any(facet in facets for facets in self.requirements.values())

    @property
    def locales(self) -> list[str]:
        return list(self.requirements)

    @property
    def facets(self) -> set[Facet]:
        result: set[Facet] = set()
        for facets in self.requirements.values():
            result |= facets
        return result

    @property
    def is_ruling_lookup(self) -> bool:
        return self.has_facet(Facet.QA)

    def unresolved_requirements(self) -> set[tuple[str, Facet]]:
        """Return exactly the (locale, facet) pairs not yet satisfied by data."""
        unresolved: set[tuple[str, Facet]] = set()
        for locale, facets in self.requirements.items():
            for facet in facets:
                if self.data is None or not self.data.satisfies(facet, locale):
                    unresolved.add((locale, facet))
        return unresolved

    def unresolved_facets(self) -> set[Facet]:
        return {facet for _, facet in self.unresolved_requirements()}

    def is_fully_resolved(self) -> bool:
        return self.data is not None and not self.unresolved_requirements()

    def merge_with(self, other: Search) -> None:
        """
        Absorb another search.

        Originals and requirements are unioned. Data is adopted only if
        this search has none yet; existing data is never overwritten.
        """
        self.originals |= other.originals
        for locale, facets in other.requirements.items():
            self.requirements.setdefault(locale, set()).update(facets)
        if self.data is None and other.data is not None:
            self.data = other.data

    def __repr__(self) -> str:
        reqs = {locale: sorted(f.value for f in facets) for locale, facets in self.requirements.items()}
        return f"<Search(term={self.term!r}, originals={sorted(map(str, self.originals))}, requirements={reqs})>"
