"""Tests for the lookup endpoint."""

import pytest
from httpx import ASGITransport, AsyncClient

from ygoresolve.main import app
from ygoresolve.models.card import Card
from ygoresolve.models.query import Query
from ygoresolve.models.ruling import Ruling
from ygoresolve.models.search import Facet
from ygoresolve.services.pipeline import PipelineRun
from ygoresolve.services.resolver import get_resolver
from ygoresolve.services.search_limiter import SearchLimiter, get_search_limiter


class FakeResolver:
    """Resolves database id 4007 and QA 42; records the queries it saw."""

    def __init__(self, card: Card) -> None:
        self.card = card
        self.queries: list[Query] = []

    async def resolve(self, query: Query) -> PipelineRun:
        self.queries.append(query)
        for search in query.searches:
            if search.term == 4007:
                search.data = self.card
            elif search.term == 42 and search.has_facet(Facet.QA):
                search.data = Ruling(
                    id=42, title={"en": "t"}, question={"en": "q"}, answer={"en": "a"}
                )
        return PipelineRun(steps_run=["bot_db", "konami_db"], failed_steps=[])


@pytest.fixture
def resolver(blue_eyes: Card) -> FakeResolver:
    return FakeResolver(blue_eyes)


@pytest.fixture
async def client(resolver: FakeResolver):
    """Provide an async test client with a fake resolver and a small search limit."""
    limiter = SearchLimiter(limit=3)
    app.dependency_overrides[get_resolver] = lambda: resolver
    app.dependency_overrides[get_search_limiter] = lambda: limiter

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


class TestLookupEndpoint:
    async def test_resolves_tokens(self, client: AsyncClient) -> None:
        """Resolved searches carry their data; unknown ones are reported."""
        response = await client.post(
            "/lookup", json={"tokens": [{"token": "4007"}, {"token": "Nothing Like It"}]}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["steps_run"] == ["bot_db", "konami_db"]

        card, missing = data["results"]
        assert card["resolved"] is True
        assert card["kind"] == "card"
        assert card["term"] == "4007"
        assert card["data"]["name"] == {"en": "Blue-Eyes White Dragon"}
        assert missing["resolved"] is False
        assert missing["data"] is None
        assert missing["missing"] == ["en/i"]
        assert "No data found for 'nothing like it'." in data["report"]

    async def test_duplicate_tokens_fold(self, client: AsyncClient, resolver: FakeResolver) -> None:
        """The same token twice is one search with both requirements."""
        response = await client.post(
            "/lookup",
            json={
                "tokens": [
                    {"token": "4007"},
                    {"token": "4007", "facet": "d", "locale": "en"},
                ]
            },
        )

        assert len(response.json()["results"]) == 1
        assert resolver.queries[0].searches[0].facets == {Facet.INFO, Facet.DATE}

    async def test_query_options(self, client: AsyncClient, resolver: FakeResolver) -> None:
        """Rulings mode and official-only are passed to the query."""
        await client.post(
            "/lookup",
            json={"tokens": [{"token": "4007"}], "official": True, "rulings": True, "locale": "de"},
        )

        query = resolver.queries[0]
        assert query.official is True
        assert query.searches[0].requirements == {"de": {Facet.RULING}}

    async def test_ruling_lookup(self, client: AsyncClient) -> None:
        """QA lookups come back as rulings."""
        response = await client.post("/lookup", json={"tokens": [{"token": "42", "facet": "q"}]})

        result = response.json()["results"][0]
        assert result["kind"] == "ruling"
        assert result["resolved"] is True

    async def test_unsupported_locale(self, client: AsyncClient) -> None:
        """Unknown locales are rejected before any lookup."""
        response = await client.post(
            "/lookup", json={"tokens": [{"token": "4007", "locale": "xx"}]}
        )

        assert response.status_code == 400
        assert "xx" in response.json()["detail"]

    async def test_empty_request(self, client: AsyncClient) -> None:
        """At least one token is required."""
        response = await client.post("/lookup", json={"tokens": []})

        assert response.status_code == 422

    async def test_search_limit(self, client: AsyncClient, resolver: FakeResolver) -> None:
        """A client over its per-minute limit gets 429 without a lookup."""
        body = {"tokens": [{"token": "4007"}] * 3, "client_id": "user-1"}
        assert (await client.post("/lookup", json=body)).status_code == 200

        response = await client.post("/lookup", json=body)

        assert response.status_code == 429
        assert len(resolver.queries) == 1

    async def test_anonymous_requests_not_limited(self, client: AsyncClient) -> None:
        """Requests without a client id are not counted."""
        body = {"tokens": [{"token": "4007"}] * 3}

        for _ in range(3):
            assert (await client.post("/lookup", json=body)).status_code == 200
