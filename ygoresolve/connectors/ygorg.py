"""
YGOrg DB connector.

Rulings come from the local cache DB when cached, otherwise from the QA
API. Cards are always fetched from the card API by database id; names
are turned into ids through the name index first. FAQ-only searches are
served from cached FAQ rows when those complete them.

Before any fetched payload is used, the revision it was served at goes
through the manifest invalidator so stale cached data is evicted first.
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ygoresolve.clients.ygorg import RevisionedPayload, YGOrgClient
from ygoresolve.config import MIN_MATCH_SCORE
from ygoresolve.connectors.base import (
    DEFAULT_CONCURRENCY,
    ResolveResult,
    SourceConnector,
    attach_card,
    gather_bounded,
    rewrite_term,
    search_locales,
)
from ygoresolve.db import operations as ops
from ygoresolve.models.card import PENDULUM_FAQ_OFFSET, Card
from ygoresolve.models.query import Query
from ygoresolve.models.ruling import Ruling
from ygoresolve.models.search import Facet, Search
from ygoresolve.services.artwork import ArtworkRepository
from ygoresolve.services.interfaces import NameIndexLookup, RevisionListener
from ygoresolve.services.properties import PropertyMetadata

logger = logging.getLogger(__name__)


def card_from_ygorg(data: dict[str, Any], properties: PropertyMetadata) -> Card:
    """
    Normalize a YGOrg card payload.

    Locale-independent stats repeat in every locale; the first value seen
    is kept. Monster types arrive as property indices and are translated
    to English names. Pendulum FAQ blocks are offset so they sort after
    the regular effect blocks.
    """
    card = Card(db_id=data.get("cardId"))

    for locale, values in (data.get("cardData") or {}).items():
        if "name" in values:
            card.name.setdefault(locale, values["name"])
        if "effectText" in values:
            card.effect.setdefault(locale, values["effectText"])
        if "pendulumEffectText" in values:
            card.pend_effect.setdefault(locale, values["pendulumEffectText"])
        if "prints" in values:
            prints = card.print_data.setdefault(locale, {})
            for p in values["prints"]:
                prints[p["code"]] = p.get("date")

        if card.card_type is None:
            card.card_type = values.get("cardType")

        if card.card_type == "monster":
            if card.attribute is None:
                card.attribute = values.get("attribute")
            if card.level_rank is None and not card.link_markers:
                if "level" in values:
                    card.level_rank = values["level"]
                elif "rank" in values:
                    card.level_rank = values["rank"]
                elif "linkArrows" in values:
                    card.link_markers = [int(c) for c in values["linkArrows"]]
            if not card.types and "properties" in values:
                names = (properties.name_at(i, "en") for i in values["properties"])
                card.types = [n for n in names if n]
            if card.attack is None:
                card.attack = values.get("atk")
            if card.defense is None:
                card.defense = values.get("def")
            if card.pend_scale is None:
                card.pend_scale = values.get("pendulumScale")
        elif card.card_property is None:
            card.card_property = values.get("property")

    faq = data.get("faqData") or {}
    for effect, entries in (faq.get("entries") or {}).items():
        for entry in entries:
            for locale, line in entry.items():
                card.add_faq_entry(locale, str(effect), line)
    for effect, entries in (faq.get("pendEntries") or {}).items():
        offset = float(effect) + PENDULUM_FAQ_OFFSET
        index = str(int(offset)) if offset.is_integer() else str(offset)
        for entry in entries:
            for locale, line in entry.items():
                card.add_faq_entry(locale, index, line)
    card.sort_faq_blocks()

    return card


def ruling_from_ygorg(data: dict[str, Any]) -> Ruling:
    """Normalize a YGOrg QA payload, skipping outdated translations."""
    ruling = Ruling()
    for locale, values in (data.get("qaData") or {}).items():
        if values.get("translationStatus") == "outdated":
            continue
        # Every locale carries the same id
        if ruling.id is None:
            ruling.id = values.get("id")
        ruling.title[locale] = values.get("title")
        ruling.question[locale] = values.get("question")
        ruling.answer[locale] = values.get("answer")
        source = values.get("thisSrc") or {}
        if source.get("date"):
            ruling.date[locale] = source["date"]

    ruling.cards = list(data.get("cards") or [])
    ruling.tags = list(data.get("tags") or [])
    return ruling


class YGOrgConnector(SourceConnector):
    """Resolves cards, FAQs and rulings from the YGOrg DB."""

    name = "ygorg"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: YGOrgClient,
        name_index: NameIndexLookup,
        revision_listener: RevisionListener,
        properties: PropertyMetadata,
        artwork: ArtworkRepository,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        self._session_factory = session_factory
        self._client = client
        self._name_index = name_index
        self._revision_listener = revision_listener
        self._properties = properties
        self._artwork = artwork
        self._concurrency = concurrency

    async def resolve(self, searches: list[Search], query: Query | None) -> ResolveResult:
        resolved: list[Search] = []
        qa_api: list[Search] = []
        card_api: list[Search] = []

        async with self._session_factory() as session:
            for search in searches:
                if search.is_ruling_lookup:
                    if not isinstance(search.term, int):
                        continue
                    row = await ops.get_ruling_data(session, search.term)
                    if row is not None:
                        search.data = Ruling.from_payload(row.payload)
                        resolved.append(search)
                    else:
                        qa_api.append(search)
                    continue

                if not isinstance(search.term, int):
                    matches = await self._name_index.search(search.term, search_locales(search))
                    if not matches:
                        continue
                    best_id, score = next(iter(matches.items()))
                    # The least bad match is not good enough
                    if score < MIN_MATCH_SCORE:
                        continue
                    if rewrite_term(query, search, best_id):
                        continue

                if search.has_facet(Facet.FAQ) and isinstance(search.data, Card):
                    if await self._load_faq(session, search):
                        resolved.append(search)
                        if search.is_fully_resolved():
                            continue

                card_api.append(search)

        fetched: list[Search] = []
        fetched += await self._fetch_rulings(qa_api)
        fetched += await self._fetch_cards(card_api)
        resolved.extend(fetched)

        return ResolveResult.from_searches(searches, resolved, query, fetched=fetched)

    async def _load_faq(self, session: AsyncSession, search: Search) -> bool:
        card = search.data
        if not isinstance(card, Card) or not isinstance(search.term, int):
            return False
        rows = await ops.get_faq_rows(session, search.term)
        if not rows:
            return False
        cached = Card()
        for row in rows:
            cached.add_faq_entry(row.locale, row.effect_index, row.line)
        cached.sort_faq_blocks()
        for locale, blocks in cached.faq_data.items():
            card.faq_data.setdefault(locale, blocks)
        return True

    async def _settle(
        self, searches: list[Search], responses: list[Any], kind: str
    ) -> list[Search]:
        """
        Stage each good response payload on its search as raw_data.

        The manifest check runs on the first good response, before any
        payload is normalized, so stale cached rows are gone by then.
        """
        first_good = next((r for r in responses if isinstance(r, RevisionedPayload)), None)
        if first_good is not None:
            await self._revision_listener.check(first_good.revision)

        staged = []
        for search, response in zip(searches, responses, strict=True):
            if isinstance(response, BaseException):
                logger.warning("YGOrg %s query for %r failed: %s", kind, search.term, response)
                continue
            if response is None or not response.data:
                logger.info("YGOrg %s query for %r returned nothing.", kind, search.term)
                continue
            search.raw_data = response.data
            staged.append(search)
        return staged

    async def _fetch_rulings(self, searches: list[Search]) -> list[Search]:
        if not searches:
            return []
        responses = await gather_bounded(
            (self._client.get_qa(int(s.term)) for s in searches), self._concurrency
        )
        fetched = []
        for search in await self._settle(searches, responses, "QA"):
            ruling = ruling_from_ygorg(search.raw_data)
            search.raw_data = None
            if ruling.id is None:
                continue
            search.data = ruling
            fetched.append(search)
        return fetched

    async def _fetch_cards(self, searches: list[Search]) -> list[Search]:
        if not searches:
            return []
        responses = await gather_bounded(
            (self._client.get_card(int(s.term)) for s in searches), self._concurrency
        )
        staged = await self._settle(searches, responses, "card")
        if staged:
            await self._properties.init()

        fetched = []
        without_art = []
        for search in staged:
            card = card_from_ygorg(search.raw_data, self._properties)
            search.raw_data = None
            attach_card(search, card)
            if not isinstance(search.data, Card):
                continue
            fetched.append(search)
            if not search.data.image_data:
                without_art.append(search.data)

        if without_art:
            await self._artwork.add_artwork(without_art)
        return fetched
