"""
Query: every search derived from one user request.

Invariant: no two searches share an original token. When a source
rewrites a term onto one already held by another search, the search
holding that term absorbs the rewritten one.
"""

from dataclasses import dataclass

from ygoresolve.models.search import Facet, Search, Term, normalize_token


@dataclass(frozen=True, slots=True)
class QueryOptions:
    """
    Request-level context for a Query.

    Attributes:
        locale: Default locale for lookups that do not name one
        official: Only consult official sources (Konami DB, TCGPlayer)
        rulings: Rulings mode; lookups default to the ruling facet
    """

    locale: str = "en"
    official: bool = False
    rulings: bool = False

    @property
    def default_facet(self) -> Facet:
        return Facet.RULING if self.rulings else Facet.INFO


class Query:
    """Ordered collection of searches plus request context."""

    def __init__(self, options: QueryOptions | None = None) -> None:
        self.options = options or QueryOptions()
        self.searches: list[Search] = []

    @property
    def official(self) -> bool:
        return self.options.official

    def add_lookup(
        self,
        token: Term,
        facet: Facet | None = None,
        locale: str | None = None,
    ) -> Search:
        """
        Add a raw lookup token to this query.

        Duplicate tokens fold into the existing search, gaining any new
        (locale, facet) pair.

        Args:
            token: Raw token (name, id, set code)
            facet: Requested facet; defaults from the query options
            locale: Requested locale; defaults to the query locale

        Returns:
            The search that now tracks the token
        """
        facet = facet or self.options.default_facet
        locale = locale or self.options.locale
        term = normalize_token(token, facet)

        existing = self.find_search(term)
        if existing is not None:
            existing.originals.add(term)
            existing.add_requirement(locale, facet)
            return existing

        search = Search(term, facet, locale)
        self.searches.append(search)
        return search

    def find_search(self, term: Term) -> Search | None:
        """Find the search tracking a token, by original or current term."""
        for search in self.searches:
            if term in search.originals or search.term == term:
                return search
        return None

    def find_unresolved_searches(self) -> list[Search]:
        return [s for s in self.searches if not s.is_fully_resolved()]

    def update_search_term(self, search: Search, new_term: Term) -> bool:
        """
        Rewrite a search's term, merging if another search already holds it.

        Args:
            search: Search whose term was improved by a source
            new_term: The better term

        Returns:
            True if the search was merged into another and removed
        """
        if search.term == new_term:
            return False

        holder = next(
            (s for s in self.searches if s is not search and s.term == new_term),
            None,
        )
        if holder is None:
            search.term = new_term
            return False

        holder.merge_with(search)
        self.searches = [s for s in self.searches if s is not search]
        return True

    def report(self) -> str:
        """Plain-text summary of what resolved, partially resolved or failed."""
        lines: list[str] = []
        for search in self.searches:
            originals = ", ".join(sorted(f"'{o}'" for o in map(str, search.originals)))
            if search.data is None:
                lines.append(f"No data found for {originals}.")
                continue

            missing = search.unresolved_requirements()
            if not missing:
                lines.append(f"Resolved {originals} to {search.data}.")
            else:
                pairs = ", ".join(f"{locale}/{facet.value}" for locale, facet in sorted(missing))
                lines.append(f"Partially resolved {originals} to {search.data} (missing {pairs}).")
        return "\n".join(lines)
