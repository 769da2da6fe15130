"""
Resolution pipeline.

Runs the searches of a query through an ordered list of steps, each
backed by one source connector. A step only sees searches that are
still unresolved and that want at least one facet the step can supply.
The term cache is consulted before the first step and after every step,
and fully resolved searches are added to it as they appear.

Step failures are logged and never stop later steps; whatever was
resolved is returned.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from ygoresolve.connectors.base import ResolveResult, SourceConnector
from ygoresolve.models.query import Query
from ygoresolve.models.search import Facet, Search, Term
from ygoresolve.services.term_cache import TermCache

logger = logging.getLogger(__name__)

StepCallback = Callable[[ResolveResult], Awaitable[None]]

ALL_CARD_FACETS = frozenset({Facet.INFO, Facet.RULING, Facet.ART, Facet.DATE, Facet.PRICE, Facet.FAQ})


@dataclass(frozen=True, slots=True)
class PipelineStep:
    """
    One source in the resolution order.

    Attributes:
        name: Step name used in logs
        connector: Source connector run by this step
        facets: Facets this source can supply
        official: Whether the step runs for official-only queries
        callback: Post-processing run on the step's result, e.g. persistence
    """

    name: str
    connector: SourceConnector
    facets: frozenset[Facet]
    official: bool = False
    callback: StepCallback | None = None

    def accepts(self, search: Search) -> bool:
        return bool(search.unresolved_facets() & self.facets)


@dataclass(slots=True)
class PipelineRun:
    """
    Summary of one pipeline run.

    Attributes:
        steps_run: Names of steps whose connector was invoked, in order
        failed_steps: Names of steps whose connector or callback raised
        cache_hits: Searches answered by the term cache
    """

    steps_run: list[str]
    failed_steps: list[str]
    cache_hits: int = 0


class ResolutionPipeline:
    """Ordered step runner shared by every query."""

    def __init__(self, steps: Sequence[PipelineStep], term_cache: TermCache) -> None:
        self.steps = list(steps)
        self.term_cache = term_cache

    async def process_query(self, query: Query) -> PipelineRun:
        """
        Resolve every search of a query in place.

        Official-only queries skip non-official steps. Searches merged away
        by a term rewrite drop out of the query; their tokens live on in
        the search that absorbed them.

        Args:
            query: Query to resolve

        Returns:
            Which steps ran and which failed
        """
        return await self._run(query.searches, query)

    async def process_searches(self, searches: list[Search]) -> PipelineRun:
        """
        Resolve standalone searches, e.g. follow-up lookups from a result.

        There is no owning query, so terms are rewritten without merging
        and every step runs.
        """
        return await self._run(searches, None)

    async def _run(self, searches: list[Search], query: Query | None) -> PipelineRun:
        run = PipelineRun(steps_run=[], failed_steps=[])
        run.cache_hits = len(self.term_cache.apply(self._live(searches, query)))
        # Search id -> the tokens it was cached under
        cached = {
            id(s): frozenset(s.originals)
            for s in self._live(searches, query)
            if s.is_fully_resolved()
        }

        for step in self.steps:
            if query is not None and query.official and not step.official:
                continue

            unresolved = [s for s in self._live(searches, query) if not s.is_fully_resolved()]
            if not unresolved:
                break

            selected = [s for s in unresolved if step.accepts(s)]
            if not selected:
                continue

            logger.debug("Step %s: %d search(es).", step.name, len(selected))
            run.steps_run.append(step.name)
            try:
                result = await step.connector.resolve(selected, query)
                if step.callback is not None:
                    await step.callback(result)
            except Exception:
                logger.exception("Step %s failed; continuing with the next source.", step.name)
                run.failed_steps.append(step.name)

            run.cache_hits += len(self.term_cache.apply(self._live(searches, query)))
            self._consolidate(self._live(searches, query), cached)

        return run

    def _consolidate(self, searches: list[Search], cached: dict[int, frozenset[Term]]) -> None:
        """Cache searches that became fully resolved, or gained tokens through a merge."""
        for search in searches:
            originals = frozenset(search.originals)
            if cached.get(id(search)) == originals:
                continue
            if self.term_cache.consolidate(search):
                cached[id(search)] = originals
                logger.info("Resolved %s to %s.", sorted(map(str, originals)), search.data)

    @staticmethod
    def _live(searches: list[Search], query: Query | None) -> list[Search]:
        # Merges replace the query's list, so always read it fresh
        return query.searches if query is not None else searches


def build_default_steps(
    bot_db: SourceConnector,
    konami_db: SourceConnector,
    tcgplayer: SourceConnector,
    ygorg: SourceConnector,
    yugipedia: SourceConnector,
    callbacks: dict[str, StepCallback] | None = None,
) -> list[PipelineStep]:
    """Build the standard step order: cache DB, reference DB, TCGPlayer, YGOrg, Yugipedia."""
    callbacks = callbacks or {}
    return [
        PipelineStep("bot_db", bot_db, ALL_CARD_FACETS, False, callbacks.get("bot_db")),
        PipelineStep("konami_db", konami_db, ALL_CARD_FACETS, True, callbacks.get("konami_db")),
        PipelineStep("tcgplayer", tcgplayer, frozenset({Facet.PRICE}), True, callbacks.get("tcgplayer")),
        PipelineStep(
            "ygorg",
            ygorg,
            frozenset({Facet.INFO, Facet.RULING, Facet.ART, Facet.DATE, Facet.FAQ, Facet.QA}),
            False,
            callbacks.get("ygorg"),
        ),
        PipelineStep(
            "yugipedia",
            yugipedia,
            frozenset({Facet.INFO, Facet.RULING, Facet.ART, Facet.DATE}),
            False,
            callbacks.get("yugipedia"),
        ),
    ]
