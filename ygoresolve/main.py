import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ygoresolve.api import health_router, lookup_router
from ygoresolve.config import settings
from ygoresolve.db.database import init_db
from ygoresolve.services.resolver import get_resolver, reset_resolver
from ygoresolve.services.term_cache import get_term_cache


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    await init_db()
    sweeper = asyncio.create_task(get_term_cache().run_sweeper())
    yield
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    await get_resolver().close()
    reset_resolver()


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("ygoresolve"),
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(lookup_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
