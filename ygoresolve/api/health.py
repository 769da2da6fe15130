"""
Health check endpoints.

Provides liveness and readiness probes with cache DB connectivity checks.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ygoresolve.db.database import get_session
from ygoresolve.services.search_limiter import SearchLimiter, get_search_limiter
from ygoresolve.services.term_cache import TermCache, get_term_cache

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str | None = None
    term_cache_entries: int | None = None
    active_search_clients: int | None = None


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """
    Liveness probe.

    Returns healthy if the service is running.
    Does not check dependencies.
    """
    return HealthResponse(status="healthy")


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
)
async def ready(
    response: Response,
    session: Annotated[AsyncSession, Depends(get_session)],
    term_cache: Annotated[TermCache, Depends(get_term_cache)],
    search_limiter: Annotated[SearchLimiter, Depends(get_search_limiter)],
) -> HealthResponse:
    """
    Readiness probe.

    Checks cache DB connectivity. Returns 503 if the database is unavailable.
    """
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not ready", database="disconnected")
    return HealthResponse(
        status="ready",
        database="connected",
        term_cache_entries=len(term_cache),
        active_search_clients=search_limiter.tracked_clients(),
    )
