"""Tests for the Search/Query state model."""

from ygoresolve.models.card import Card
from ygoresolve.models.query import Query, QueryOptions
from ygoresolve.models.ruling import Ruling
from ygoresolve.models.search import Facet, Search, normalize_token


class TestNormalizeToken:
    def test_lowercases_and_strips(self) -> None:
        """Names are stripped and lowercased."""
        assert normalize_token("  Blue-Eyes White Dragon ") == "blue-eyes white dragon"

    def test_numeric_becomes_int(self) -> None:
        """Numeric tokens are coerced to ids."""
        assert normalize_token("4007") == 4007

    def test_seven_stays_a_name(self) -> None:
        """The card named "7" is not treated as an id."""
        assert normalize_token("7") == "7"

    def test_seven_is_an_id_for_qa(self) -> None:
        """QA lookups always use ids."""
        assert normalize_token("7", Facet.QA) == 7


class TestSearch:
    def test_add_requirement_is_idempotent(self) -> None:
        """Adding the same pair twice changes nothing."""
        search = Search("pot of greed", Facet.INFO, "en")
        search.add_requirement("en", Facet.INFO)

        assert search.requirements == {"en": {Facet.INFO}}

    def test_unresolved_without_data(self) -> None:
        """Every pair is unresolved before data arrives."""
        search = Search("pot of greed", Facet.INFO, "en")
        search.add_requirement("de", Facet.ART)

        assert search.unresolved_requirements() == {("en", Facet.INFO), ("de", Facet.ART)}
        assert not search.is_fully_resolved()

    def test_unresolved_lists_exactly_missing_pairs(self, blue_eyes: Card) -> None:
        """Only pairs the data cannot satisfy remain."""
        search = Search(4007, Facet.INFO, "en")
        search.add_requirement("en", Facet.FAQ)
        search.add_requirement("de", Facet.INFO)
        search.data = blue_eyes

        assert search.unresolved_requirements() == {("en", Facet.FAQ), ("de", Facet.INFO)}

    def test_missing_name_leaves_locale_unresolved(self, blue_eyes: Card) -> None:
        """Art is locale independent, but not without a name in the locale."""
        search = Search(4007, Facet.ART, "ja")
        search.data = blue_eyes

        assert search.unresolved_requirements() == {("ja", Facet.ART)}

    def test_merge_unions_and_keeps_data(self, blue_eyes: Card) -> None:
        """Merging unions originals and requirements; existing data wins."""
        first = Search(4007, Facet.INFO, "en")
        first.data = blue_eyes
        second = Search("blue-eyes", Facet.ART, "de")
        second.data = Card(db_id=1)

        first.merge_with(second)

        assert first.originals == {4007, "blue-eyes"}
        assert first.requirements == {"en": {Facet.INFO}, "de": {Facet.ART}}
        assert first.data is blue_eyes

    def test_merge_adopts_data_when_empty(self, blue_eyes: Card) -> None:
        """A search without data takes the absorbed search's data."""
        first = Search(4007, Facet.INFO, "en")
        second = Search("bewd", Facet.INFO, "en")
        second.data = blue_eyes

        first.merge_with(second)

        assert first.data is blue_eyes

    def test_ruling_satisfies_translated_locale(self) -> None:
        """A ruling answers any facet for a fully translated locale."""
        search = Search(42, Facet.QA, "en")
        search.data = Ruling(id=42, title={"en": "t"}, question={"en": "q"}, answer={"en": "a"})

        assert search.is_fully_resolved()
        assert search.is_ruling_lookup


class TestQuery:
    def test_duplicate_tokens_fold(self) -> None:
        """The same token twice yields one search with both requirements."""
        query = Query()
        query.add_lookup("Pot of Greed", Facet.INFO)
        query.add_lookup("pot of greed", Facet.ART, "de")

        assert len(query.searches) == 1
        assert query.searches[0].requirements == {"en": {Facet.INFO}, "de": {Facet.ART}}

    def test_defaults_from_options(self) -> None:
        """Rulings mode defaults to the ruling facet and the query locale."""
        query = Query(QueryOptions(locale="fr", rulings=True))
        search = query.add_lookup("pot of greed")

        assert search.requirements == {"fr": {Facet.RULING}}

    def test_update_term_without_holder(self) -> None:
        """A rewrite to an unused term just changes the term."""
        query = Query()
        search = query.add_lookup("bewd")

        merged = query.update_search_term(search, 4007)

        assert merged is False
        assert search.term == 4007
        assert query.find_search("bewd") is search

    def test_update_term_merges_into_holder(self) -> None:
        """Converging terms leave one search holding both originals."""
        query = Query()
        holder = query.add_lookup("4007")
        other = query.add_lookup("blue-eyes white dragon", Facet.ART)

        merged = query.update_search_term(other, 4007)

        assert merged is True
        assert query.searches == [holder]
        assert holder.originals == {4007, "blue-eyes white dragon"}
        assert holder.has_facet(Facet.ART)

    def test_no_shared_originals_after_merges(self) -> None:
        """No two searches ever share an original token."""
        query = Query()
        for token in ["4007", "bewd", "blue-eyes", "pot of greed"]:
            query.add_lookup(token)
        query.update_search_term(query.find_search("bewd"), 4007)
        query.update_search_term(query.find_search("blue-eyes"), 4007)

        seen: set = set()
        for search in query.searches:
            assert not (search.originals & seen)
            seen |= search.originals
        assert len(query.searches) == 2

    def test_report(self, blue_eyes: Card) -> None:
        """The report names resolved, partial and missing searches."""
        query = Query()
        resolved = query.add_lookup("4007")
        resolved.data = blue_eyes
        partial = query.add_lookup("bewd", Facet.FAQ)
        partial.data = blue_eyes
        query.add_lookup("no such card")

        lines = query.report().splitlines()

        assert lines[0] == "Resolved '4007' to Blue-Eyes White Dragon (4007)."
        assert lines[1] == "Partially resolved 'bewd' to Blue-Eyes White Dragon (4007) (missing en/f)."
        assert lines[2] == "No data found for 'no such card'."
