"""Tests for the resolution pipeline, cache persistence and the resolver."""

from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.ext.asyncio import AsyncSession

from ygoresolve.clients.ygorg import RevisionedPayload
from ygoresolve.connectors.base import ResolveResult, SourceConnector, attach_card, rewrite_term
from ygoresolve.db import operations as ops
from ygoresolve.models.card import Card
from ygoresolve.models.db import LOCATION_BOT, LOCATION_KONAMI
from ygoresolve.models.query import Query, QueryOptions
from ygoresolve.models.ruling import Ruling
from ygoresolve.models.search import Facet, Search, Term
from ygoresolve.models.tcgplayer import Prices, TCGPlayerProduct
from ygoresolve.services.persistence import CachePersister
from ygoresolve.services.pipeline import (
    ALL_CARD_FACETS,
    PipelineStep,
    ResolutionPipeline,
    build_default_steps,
)
from ygoresolve.services.resolver import Resolver, get_resolver, reset_resolver
from ygoresolve.services.term_cache import TermCache


class FakeConnector(SourceConnector):
    """Connector answering from a fixed term -> entity map."""

    def __init__(
        self, known: dict[Term, Card | Ruling] | None = None, error: Exception | None = None
    ) -> None:
        self.known = known or {}
        self.error = error
        self.calls: list[list[Term]] = []

    async def resolve(self, searches: list[Search], query: Query | None) -> ResolveResult:
        self.calls.append([s.term for s in searches])
        if self.error is not None:
            raise self.error

        resolved = []
        for search in searches:
            data = self.known.get(search.term)
            if isinstance(data, Card):
                attach_card(search, data)
                resolved.append(search)
            elif data is not None:
                search.data = data
                resolved.append(search)
        return ResolveResult.from_searches(searches, resolved, query, fetched=resolved)


class RenamingConnector(SourceConnector):
    """Connector that only rewrites terms, like a name index match."""

    def __init__(self, renames: dict[Term, Term]) -> None:
        self.renames = renames

    async def resolve(self, searches: list[Search], query: Query | None) -> ResolveResult:
        for search in searches:
            rewrite_term(query, search, self.renames.get(search.term))
        return ResolveResult.from_searches(searches, [], query)


def _step(name: str, connector: SourceConnector, official: bool = False, callback=None):
    return PipelineStep(name, connector, ALL_CARD_FACETS | {Facet.QA}, official, callback)


def _ruling() -> Ruling:
    return Ruling(id=42, title={"en": "t"}, question={"en": "q"}, answer={"en": "a"})


class TestResolutionPipeline:
    async def test_steps_run_in_order_until_resolved(self, blue_eyes: Card) -> None:
        """Later steps only see what earlier steps left unresolved."""
        first, second, third = FakeConnector(), FakeConnector({4007: blue_eyes}), FakeConnector()
        pipeline = ResolutionPipeline(
            [_step("first", first), _step("second", second), _step("third", third)], TermCache()
        )
        query = Query()
        query.add_lookup("4007")

        run = await pipeline.process_query(query)

        assert run.steps_run == ["first", "second"]
        assert first.calls == [[4007]]
        assert third.calls == []
        assert query.searches[0].data is blue_eyes

    async def test_official_skips_unofficial_steps(self, blue_eyes: Card) -> None:
        """Official-only queries never reach community sources."""
        community, official = FakeConnector({4007: blue_eyes}), FakeConnector({4007: blue_eyes})
        pipeline = ResolutionPipeline(
            [_step("community", community), _step("official", official, official=True)], TermCache()
        )
        query = Query(QueryOptions(official=True))
        query.add_lookup(4007)

        run = await pipeline.process_query(query)

        assert run.steps_run == ["official"]
        assert community.calls == []

    async def test_failing_step_does_not_stop_later_steps(self, blue_eyes: Card) -> None:
        """A raising connector is logged and the next source still runs."""
        broken = FakeConnector(error=RuntimeError("source down"))
        working = FakeConnector({4007: blue_eyes})
        steps = [_step("broken", broken), _step("working", working)]
        pipeline = ResolutionPipeline(steps, TermCache())
        query = Query()
        search = query.add_lookup(4007)

        run = await pipeline.process_query(query)

        assert run.failed_steps == ["broken"]
        assert run.steps_run == ["broken", "working"]
        assert search.is_fully_resolved()

    async def test_failing_callback_keeps_data(self, blue_eyes: Card) -> None:
        """A persistence failure is recorded but the resolved data stays."""
        callback = AsyncMock(side_effect=RuntimeError("disk full"))
        pipeline = ResolutionPipeline(
            [_step("source", FakeConnector({4007: blue_eyes}), callback=callback)], TermCache()
        )
        query = Query()
        search = query.add_lookup(4007)

        run = await pipeline.process_query(query)

        assert run.failed_steps == ["source"]
        assert search.data is blue_eyes
        callback.assert_awaited_once()

    async def test_steps_only_get_searches_they_can_help(self) -> None:
        """A step is skipped when no unresolved search wants one of its facets."""
        info_only = FakeConnector()
        prices = FakeConnector()
        pipeline = ResolutionPipeline(
            [
                PipelineStep("info", info_only, frozenset({Facet.INFO})),
                PipelineStep("prices", prices, frozenset({Facet.PRICE})),
            ],
            TermCache(),
        )
        query = Query()
        query.add_lookup("lob", Facet.PRICE)

        run = await pipeline.process_query(query)

        assert run.steps_run == ["prices"]
        assert info_only.calls == []

    async def test_term_cache_short_circuits_repeat_lookups(self, blue_eyes: Card) -> None:
        """A resolved token is served from the term cache the next time."""
        source = FakeConnector({4007: blue_eyes})
        cache = TermCache()
        pipeline = ResolutionPipeline([_step("source", source)], cache)

        first = Query()
        first.add_lookup(4007)
        await pipeline.process_query(first)

        second = Query()
        search = second.add_lookup(4007)
        run = await pipeline.process_query(second)

        assert run.steps_run == []
        assert run.cache_hits == 1
        assert search.data is blue_eyes
        assert len(source.calls) == 1

    async def test_rulings_are_not_term_cached(self) -> None:
        """Ruling lookups go back to the source every time."""
        source = FakeConnector({42: _ruling()})
        pipeline = ResolutionPipeline([_step("source", source)], TermCache())

        for _ in range(2):
            query = Query()
            query.add_lookup("42", Facet.QA)
            await pipeline.process_query(query)

        assert source.calls == [[42], [42]]

    async def test_unresolved_search_reported(self) -> None:
        """Searches no source knows stay in the query without data."""
        pipeline = ResolutionPipeline([_step("source", FakeConnector())], TermCache())
        query = Query()
        query.add_lookup("no such card")

        await pipeline.process_query(query)

        assert query.searches[0].data is None
        assert query.report() == "No data found for 'no such card'."

    async def test_standalone_searches(self, blue_eyes: Card) -> None:
        """Searches without a query run through every step."""
        source = FakeConnector({4007: blue_eyes})
        pipeline = ResolutionPipeline([_step("source", source, official=False)], TermCache())
        search = Search(4007, Facet.INFO, "en")

        run = await pipeline.process_searches([search])

        assert run.steps_run == ["source"]
        assert search.data is blue_eyes

    def test_default_step_order(self) -> None:
        """The standard order and facet coverage of every source."""
        steps = build_default_steps(*(FakeConnector() for _ in range(5)))

        assert [s.name for s in steps] == ["bot_db", "konami_db", "tcgplayer", "ygorg", "yugipedia"]
        assert [s.official for s in steps] == [False, True, True, False, False]
        assert steps[2].facets == frozenset({Facet.PRICE})
        assert Facet.QA in steps[3].facets
        assert Facet.PRICE not in steps[4].facets


    async def test_resolved_search_cached_before_later_merge(self, blue_eyes: Card) -> None:
        """A search is cached as soon as it resolves, even if a later merge adds requirements."""
        cache = TermCache()
        pipeline = ResolutionPipeline(
            [
                _step("cards", FakeConnector({4007: blue_eyes})),
                _step("names", RenamingConnector({"bewd": 4007})),
            ],
            cache,
        )
        query = Query()
        query.add_lookup(4007)
        query.add_lookup("bewd", Facet.PRICE)

        await pipeline.process_query(query)

        assert len(query.searches) == 1
        assert not query.searches[0].is_fully_resolved()
        assert cache.get(4007) is blue_eyes
        assert "bewd" not in cache

    async def test_merged_tokens_cached_when_still_resolved(self, blue_eyes: Card) -> None:
        """Tokens absorbed by an already cached search are cached too."""
        cache = TermCache()
        pipeline = ResolutionPipeline(
            [
                _step("cards", FakeConnector({4007: blue_eyes})),
                _step("names", RenamingConnector({"bewd": 4007})),
            ],
            cache,
        )
        query = Query()
        query.add_lookup(4007)
        query.add_lookup("bewd", Facet.DATE)

        await pipeline.process_query(query)

        assert query.searches[0].is_fully_resolved()
        assert cache.get("bewd") is blue_eyes

class TestCachePersister:
    async def test_ygorg_results_cached(
        self, session_factory, session: AsyncSession, blue_eyes: Card
    ) -> None:
        """Fetched cards land in the cache DB with bot term rows for every token."""
        blue_eyes.add_faq_entry("en", "0", "It is a Normal Monster.")
        search = Search("bewd", Facet.INFO, "en")
        search.term = 4007
        search.data = blue_eyes
        ruling = Search(42, Facet.QA, "en")
        ruling.data = _ruling()

        await CachePersister(session_factory).after_ygorg(
            ResolveResult(resolved=[search, ruling], fetched=[search, ruling])
        )

        assert await ops.get_card_data(session, 4007) is not None
        assert len(await ops.get_faq_rows(session, 4007)) == 1
        assert await ops.get_ruling_data(session, 42) is not None
        rows = await ops.get_term_rows(session, "bewd")
        assert [(r.db_id, r.location) for r in rows] == [(4007, LOCATION_BOT)]
        assert len(await ops.get_term_rows(session, 4007)) == 1

    async def test_konami_matches_point_at_reference(
        self, session_factory, session: AsyncSession, blue_eyes: Card
    ) -> None:
        """Name matches from the reference DB get konami term rows."""
        search = Search("blue eyes", Facet.INFO, "en")
        search.term = 4007
        search.data = blue_eyes

        await CachePersister(session_factory).after_konami_db(ResolveResult(fetched=[search]))

        rows = await ops.get_term_rows(session, "blue eyes")
        assert [r.location for r in rows] == [LOCATION_KONAMI]

    async def test_tcgplayer_prices_saved_and_linked(
        self, session_factory, session: AsyncSession, blue_eyes: Card
    ) -> None:
        """Fresh prices are stored and the card's products linked to its id."""
        product = TCGPlayerProduct(product_id=7, full_name="Blue-Eyes White Dragon")
        await ops.upsert_products(session, [product])
        await session.commit()
        product.set_prices("Unlimited", Prices(1.0, 2.0, 3.0, 2.5))
        blue_eyes.products = [product]
        search = Search(4007, Facet.PRICE, "en")
        search.data = blue_eyes

        await CachePersister(session_factory).after_tcgplayer(ResolveResult(fetched=[search]))

        session.expunge_all()
        assert list(await ops.get_fresh_prices(session, [7])) == [7]
        rows = await ops.get_products_for_card(session, 4007, None)
        assert [r.product_id for r in rows] == [7]

    async def test_nothing_to_persist(self, session_factory) -> None:
        """Empty results do not open a session."""
        sessions = MagicMock(wraps=session_factory)
        persister = CachePersister(sessions)

        await persister.after_ygorg(ResolveResult())
        await persister.after_bot_db(ResolveResult())

        sessions.assert_not_called()


def _ygorg_client() -> AsyncMock:
    client = AsyncMock()

    async def get_name_index(locale: str) -> RevisionedPayload | None:
        if locale != "en":
            return None
        return RevisionedPayload(data={"Pot of Greed": [4861]}, revision=None)

    client.get_name_index.side_effect = get_name_index
    return client


class TestResolver:
    def _resolver(self, session_factory, reference_sessions, cache: TermCache) -> Resolver:
        return Resolver(
            cache_sessions=session_factory,
            reference_sessions=reference_sessions,
            ygorg=_ygorg_client(),
            yugipedia=AsyncMock(),
            tcgplayer=AsyncMock(),
            term_cache=cache,
        )

    async def test_database_id_from_reference(self, session_factory, reference_sessions) -> None:
        """Database ids resolve from the reference DB without remote calls."""
        resolver = self._resolver(session_factory, reference_sessions, TermCache())
        query = Query()
        search = query.add_lookup("4007", locale="de")

        run = await resolver.resolve(query)

        assert run.steps_run == ["bot_db", "konami_db"]
        assert search.data.name["de"] == "Blauäugiger w. Drache"
        resolver.yugipedia_client.search.assert_not_awaited()

    async def test_name_match_persisted_for_next_lookup(
        self, session_factory, reference_sessions
    ) -> None:
        """A name matched once is found through its term row afterwards."""
        first = self._resolver(session_factory, reference_sessions, TermCache())
        query = Query()
        query.add_lookup("Pot of Greed")
        await first.resolve(query)

        second = self._resolver(session_factory, reference_sessions, TermCache())
        query = Query()
        search = query.add_lookup("pot of greed")
        run = await second.resolve(query)

        assert run.steps_run == ["bot_db"]
        assert search.term == 4861
        assert search.data.name["en"] == "Pot of Greed"
        second.ygorg_client.get_name_index.assert_not_awaited()

    async def test_duplicate_tokens_collapse(self, session_factory, reference_sessions) -> None:
        """A name and the id it resolves to end up as one search."""
        resolver = self._resolver(session_factory, reference_sessions, TermCache())
        query = Query()
        query.add_lookup("4861")
        query.add_lookup("pot of greed")

        await resolver.resolve(query)

        assert len(query.searches) == 1
        assert query.searches[0].originals == {4861, "pot of greed"}

    async def test_reset_and_close(self, session_factory, reference_sessions) -> None:
        """Reset drops in-memory state and close shuts every client."""
        resolver = self._resolver(session_factory, reference_sessions, TermCache())
        await resolver.name_index.init(["en"])

        resolver.reset()
        await resolver.close()

        assert resolver.name_index.loaded_locales == []
        resolver.ygorg_client.close.assert_awaited_once()
        resolver.tcgplayer_client.close.assert_awaited_once()

    def test_global_instance(self) -> None:
        """The process-wide resolver is created once until reset."""
        first = get_resolver()

        assert get_resolver() is first
        reset_resolver()
        assert get_resolver() is not first
