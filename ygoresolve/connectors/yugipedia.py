"""
Yugipedia connector.

Last resort for names nothing else recognized. The best non-anime page
of a title search is parsed from its card table infobox. Cards that turn
out to have a database id are completed from the reference DB.
"""

import logging
import re
from typing import Any

from ygoresolve.clients.yugipedia import YugipediaClient
from ygoresolve.config import LOCALES
from ygoresolve.connectors.base import (
    DEFAULT_CONCURRENCY,
    ResolveResult,
    SourceConnector,
    attach_card,
    gather_bounded,
    rewrite_term,
)
from ygoresolve.connectors.konami_db import KonamiDBConnector
from ygoresolve.models.card import Card
from ygoresolve.models.query import Query
from ygoresolve.models.search import Search, Term

logger = logging.getLogger(__name__)

INFOBOX_FIELD = re.compile(r"^\|\s*([\w ]+?)\s*=\s*(.*?)\s*$", re.MULTILINE)
TITLE_SUFFIX = re.compile(r"\s*\((card|anime|manga)\)$", re.IGNORECASE)
WIKI_MARKUP = re.compile(r"\[\[(?:[^|\]]*\|)?([^\]]*)\]\]|'{2,}|<br\s*/?>")

# Link arrow names in numpad positions (1 = bottom left)
LINK_ARROW_POSITIONS = {
    "bottom-left": 1,
    "bottom-center": 2,
    "bottom": 2,
    "bottom-right": 3,
    "middle-left": 4,
    "left": 4,
    "middle-right": 6,
    "right": 6,
    "top-left": 7,
    "top-center": 8,
    "top": 8,
    "top-right": 9,
}


def _clean(value: str) -> str:
    def replace(match: re.Match[str]) -> str:
        if match.group(0).lower().startswith("<br"):
            return "\n"
        return match.group(1) or ""

    return WIKI_MARKUP.sub(replace, value).strip()


def _to_int(value: str | None) -> int | None:
    if not value:
        return None
    digits = value.strip().lstrip("0") or "0"
    return int(digits) if digits.isdigit() else None


def parse_infobox(wikitext: str) -> dict[str, str]:
    """Read `| key = value` lines of a card table. Later duplicates are ignored."""
    fields: dict[str, str] = {}
    for key, value in INFOBOX_FIELD.findall(wikitext):
        fields.setdefault(key.strip().lower(), value)
    return fields


def is_anime_page(page: dict[str, Any]) -> bool:
    if "(anime)" in page.get("title", ""):
        return True
    categories = page.get("categories") or []
    return any("anime" in (c.get("title") or "").lower() for c in categories)


def choose_page(pages: list[dict[str, Any]], term: Term) -> dict[str, Any] | None:
    """First page that is not anime-only, unless the search itself mentions anime."""
    wants_anime = "anime" in str(term).lower()
    for page in pages:
        if wants_anime or not is_anime_page(page):
            return page
    return None


def card_from_page(page: dict[str, Any]) -> Card | None:
    """Build a card from a page's card table. Returns None for non-card pages."""
    revisions = page.get("revisions") or []
    if not revisions:
        return None
    wikitext = revisions[0].get("content") or ""
    if "{{CardTable" not in wikitext:
        return None

    fields = parse_infobox(wikitext)
    card = Card(
        db_id=_to_int(fields.get("database_id")),
        passcode=_to_int(fields.get("password")),
    )

    card.name["en"] = TITLE_SUFFIX.sub("", page.get("title", "")).strip()
    if fields.get("lore"):
        card.effect["en"] = _clean(fields["lore"])
    if fields.get("pendulum_effect"):
        card.pend_effect["en"] = _clean(fields["pendulum_effect"])
    for locale in LOCALES:
        if locale == "en":
            continue
        if fields.get(f"{locale}_name"):
            card.name[locale] = _clean(fields[f"{locale}_name"])
        if fields.get(f"{locale}_lore"):
            card.effect[locale] = _clean(fields[f"{locale}_lore"])

    card_type = (fields.get("card_type") or "monster").strip().lower()
    card.card_type = card_type
    if card_type == "monster":
        card.attribute = fields.get("attribute") or None
        card.types = [t.strip() for t in (fields.get("types") or "").split("/") if t.strip()]
        card.level_rank = _to_int(fields.get("level")) or _to_int(fields.get("rank"))
        card.attack = _to_int(fields.get("atk"))
        card.defense = _to_int(fields.get("def"))
        card.pend_scale = _to_int(fields.get("pendulum_scale"))
        arrows = (fields.get("link_arrows") or "").split(",")
        card.link_markers = [
            LINK_ARROW_POSITIONS[a.strip().lower()]
            for a in arrows
            if a.strip().lower() in LINK_ARROW_POSITIONS
        ]
    else:
        card.card_property = fields.get("property") or None

    image = (page.get("original") or {}).get("source")
    if image:
        card.add_image(1, image)

    return card


def better_term(card: Card) -> Term | None:
    if card.db_id is not None:
        return card.db_id
    if card.passcode is not None:
        return card.passcode
    name = card.name.get("en")
    return name.lower() if name else None


class YugipediaConnector(SourceConnector):
    """Resolves cards from Yugipedia page content."""

    name = "yugipedia"

    def __init__(
        self,
        client: YugipediaClient,
        reference: KonamiDBConnector,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        self._client = client
        self._reference = reference
        self._concurrency = concurrency

    async def resolve(self, searches: list[Search], query: Query | None) -> ResolveResult:
        candidates = [s for s in searches if not s.is_ruling_lookup]
        responses = await gather_bounded(
            (self._client.search(str(s.term)) for s in candidates), self._concurrency
        )

        resolved: list[Search] = []
        for search, pages in zip(candidates, responses, strict=True):
            if isinstance(pages, BaseException):
                logger.warning("Yugipedia query for %r failed: %s", search.term, pages)
                continue
            if not pages:
                logger.info("Yugipedia query for %r found nothing.", search.term)
                continue

            page = choose_page(pages, search.term)
            card = card_from_page(page) if page is not None else None
            if card is None:
                continue

            attach_card(search, card)
            if rewrite_term(query, search, better_term(card)):
                continue
            resolved.append(search)

        # Prints and banlist status come from the reference DB
        with_db_id = [s for s in resolved if isinstance(s.data, Card) and s.data.db_id is not None]
        if with_db_id:
            await self._reference.resolve(with_db_id, query)

        return ResolveResult.from_searches(searches, resolved, query, fetched=resolved)
