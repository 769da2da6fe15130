"""
Resolver: wires clients, shared services and connectors into a pipeline.

One Resolver per process. The name index and the manifest invalidator
reference each other through narrow protocols, so they are connected
after construction.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ygoresolve.clients.tcgplayer import TCGPlayerClient
from ygoresolve.clients.ygorg import YGOrgClient
from ygoresolve.clients.yugipedia import YugipediaClient
from ygoresolve.connectors import (
    BotDBConnector,
    KonamiDBConnector,
    TCGPlayerConnector,
    YGOrgConnector,
    YugipediaConnector,
)
from ygoresolve.db.database import async_session_factory, reference_session_factory
from ygoresolve.models.query import Query
from ygoresolve.models.search import Search
from ygoresolve.services.artwork import ArtworkRepository
from ygoresolve.services.manifest import ManifestInvalidator
from ygoresolve.services.name_index import NameIndex
from ygoresolve.services.persistence import CachePersister
from ygoresolve.services.pipeline import PipelineRun, ResolutionPipeline, build_default_steps
from ygoresolve.services.properties import PropertyMetadata
from ygoresolve.services.term_cache import TermCache, get_term_cache

logger = logging.getLogger(__name__)


class Resolver:
    """Owns every long-lived collaborator of the resolution pipeline."""

    def __init__(
        self,
        cache_sessions: async_sessionmaker[AsyncSession] | None = None,
        reference_sessions: async_sessionmaker[AsyncSession] | None = None,
        ygorg: YGOrgClient | None = None,
        yugipedia: YugipediaClient | None = None,
        tcgplayer: TCGPlayerClient | None = None,
        term_cache: TermCache | None = None,
    ) -> None:
        cache_sessions = cache_sessions or async_session_factory
        reference_sessions = reference_sessions or reference_session_factory

        self.ygorg_client = ygorg or YGOrgClient()
        self.yugipedia_client = yugipedia or YugipediaClient()
        self.tcgplayer_client = tcgplayer or TCGPlayerClient()

        self.name_index = NameIndex(self.ygorg_client, cache_sessions)
        self.manifest = ManifestInvalidator(self.ygorg_client, cache_sessions, evictor=self.name_index)
        self.name_index.set_revision_listener(self.manifest)
        self.properties = PropertyMetadata(self.ygorg_client)
        self.artwork = ArtworkRepository(self.ygorg_client)
        self.persister = CachePersister(cache_sessions)

        konami_db = KonamiDBConnector(reference_sessions, self.name_index)
        steps = build_default_steps(
            bot_db=BotDBConnector(cache_sessions, konami_db),
            konami_db=konami_db,
            tcgplayer=TCGPlayerConnector(cache_sessions, self.tcgplayer_client),
            ygorg=YGOrgConnector(
                cache_sessions,
                self.ygorg_client,
                self.name_index,
                self.manifest,
                self.properties,
                self.artwork,
            ),
            yugipedia=YugipediaConnector(self.yugipedia_client, konami_db),
            callbacks={
                "bot_db": self.persister.after_bot_db,
                "konami_db": self.persister.after_konami_db,
                "tcgplayer": self.persister.after_tcgplayer,
                "ygorg": self.persister.after_ygorg,
            },
        )
        self.pipeline = ResolutionPipeline(steps, term_cache or get_term_cache())

    async def resolve(self, query: Query) -> PipelineRun:
        return await self.pipeline.process_query(query)

    async def resolve_searches(self, searches: list[Search]) -> PipelineRun:
        return await self.pipeline.process_searches(searches)

    def reset(self) -> None:
        """Drop in-memory service state; everything reloads on next use."""
        self.name_index.reset()
        self.manifest.reset()
        self.properties.reset()
        self.artwork.reset()

    async def close(self) -> None:
        await self.ygorg_client.close()
        await self.yugipedia_client.close()
        await self.tcgplayer_client.close()


# =============================================================================
# GLOBAL RESOLVER INSTANCE
# =============================================================================

_resolver: Resolver | None = None


def get_resolver() -> Resolver:
    """Get the process-wide resolver."""
    global _resolver
    if _resolver is None:
        _resolver = Resolver()
    return _resolver


def reset_resolver() -> None:
    """Reset the process-wide resolver (for testing)."""
    global _resolver
    _resolver = None
