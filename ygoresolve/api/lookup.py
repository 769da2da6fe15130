"""
Lookup API endpoint.

Resolves raw lookup tokens (card names, database ids, QA ids, set codes)
through the resolution pipeline.
"""

from dataclasses import asdict
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ygoresolve.config import LOCALES
from ygoresolve.models.card import Card
from ygoresolve.models.failure import SearchRateLimitExceededError
from ygoresolve.models.query import Query, QueryOptions
from ygoresolve.models.ruling import Ruling
from ygoresolve.models.search import Facet, Search
from ygoresolve.models.tcgplayer import TCGPlayerSet
from ygoresolve.services.resolver import Resolver, get_resolver
from ygoresolve.services.search_limiter import SearchLimiter, get_search_limiter

router = APIRouter(prefix="/lookup", tags=["lookup"])


class LookupToken(BaseModel):
    """One raw token with optional facet and locale."""

    token: str = Field(..., min_length=1, max_length=200)
    facet: Facet | None = None
    locale: str | None = None


class LookupRequest(BaseModel):
    """Request model for a lookup."""

    tokens: list[LookupToken] = Field(..., min_length=1)
    locale: str = "en"
    official: bool = False
    rulings: bool = False
    client_id: str | None = Field(
        default=None,
        description="Caller identity for the per-client search limit",
    )


class SearchResult(BaseModel):
    """Resolution state of one search."""

    originals: list[str]
    term: str
    resolved: bool
    missing: list[str] = Field(default_factory=list)
    kind: str | None = None
    data: dict[str, Any] | None = None


class LookupResponse(BaseModel):
    """Response model for a lookup."""

    results: list[SearchResult]
    report: str
    steps_run: list[str] = Field(default_factory=list)


def _entity_kind(data: object) -> str | None:
    if isinstance(data, Card):
        return "card"
    if isinstance(data, Ruling):
        return "ruling"
    if isinstance(data, TCGPlayerSet):
        return "set"
    return None


def search_to_result(search: Search) -> SearchResult:
    missing = sorted(f"{locale}/{facet.value}" for locale, facet in search.unresolved_requirements())
    return SearchResult(
        originals=sorted(str(o) for o in search.originals),
        term=str(search.term),
        resolved=search.is_fully_resolved(),
        missing=missing,
        kind=_entity_kind(search.data),
        data=asdict(search.data) if search.data is not None else None,
    )


@router.post("", response_model=LookupResponse)
async def lookup(
    request: LookupRequest,
    resolver: Annotated[Resolver, Depends(get_resolver)],
    limiter: Annotated[SearchLimiter, Depends(get_search_limiter)],
) -> LookupResponse:
    """
    Resolve lookup tokens.

    Tokens are grouped into one query; duplicates and tokens that turn
    out to name the same card are merged. Returns each search's data and
    a plain-text report of what resolved.
    """
    for item in [request.locale, *(t.locale for t in request.tokens if t.locale)]:
        if item not in LOCALES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unsupported locale '{item}'",
            )

    if request.client_id:
        try:
            limiter.check(request.client_id, len(request.tokens))
        except SearchRateLimitExceededError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message) from e

    query = Query(
        QueryOptions(locale=request.locale, official=request.official, rulings=request.rulings)
    )
    for item in request.tokens:
        query.add_lookup(item.token, item.facet, item.locale)

    run = await resolver.resolve(query)

    return LookupResponse(
        results=[search_to_result(s) for s in query.searches],
        report=query.report(),
        steps_run=run.steps_run,
    )
