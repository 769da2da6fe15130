"""Card entity shared by every source connector."""

from dataclasses import dataclass, field, fields
from typing import Any

from ygoresolve.models.search import Facet
from ygoresolve.models.tcgplayer import TCGPlayerProduct, price_data_resolved

# Pendulum FAQ entries are offset so they sort after regular effect blocks
PENDULUM_FAQ_OFFSET = 100


@dataclass(slots=True)
class FaqBlock:
    """
    FAQ lines attached to one effect of a card.

    Attributes:
        index: Effect index the block belongs to; may be fractional ("0.5")
        lines: FAQ lines, with any label line first
    """

    index: str
    lines: list[str] = field(default_factory=list)


def _is_faq_label(locale: str, entry: str) -> bool:
    if locale == "en":
        return entry.startswith("About ")
    if locale == "ja":
        return (entry.startswith("【") and entry.endswith("】")) or (
            entry.startswith("【『") and "』】" in entry
        )
    return False


@dataclass(slots=True)
class Card:
    """
    A resolved card.

    Locale-keyed maps hold translated text. Sources fill fields in
    pipeline order and later sources never overwrite what an earlier
    source set (see merge_from).

    Attributes:
        db_id: Konami database id
        passcode: Passcode printed on the card
        name: Locale -> card name
        effect: Locale -> effect text
        pend_effect: Locale -> pendulum effect text
        card_type: "monster", "spell", "trap" or "skill"
        card_property: Spell/trap property (e.g. "Quick-Play")
        types: Monster types (e.g. ["Dragon", "Effect"])
        attribute: Monster attribute
        level_rank: Level or rank
        attack: ATK
        defense: DEF
        pend_scale: Pendulum scale
        link_markers: Link arrow positions
        tcg_list: TCG banlist copies allowed
        ocg_list: OCG banlist copies allowed
        md_list: Master Duel banlist copies allowed
        not_in_cg: True for cards never printed in the TCG/OCG
        print_data: Locale -> print code -> release date
        image_data: Art id -> image URL
        faq_data: Locale -> FAQ blocks sorted by effect index
        products: TCGPlayer products for this card
    """

    db_id: int | None = None
    passcode: int | None = None
    name: dict[str, str] = field(default_factory=dict)
    effect: dict[str, str] = field(default_factory=dict)
    pend_effect: dict[str, str] = field(default_factory=dict)
    card_type: str | None = None
    card_property: str | None = None
    types: list[str] = field(default_factory=list)
    attribute: str | None = None
    level_rank: int | None = None
    attack: int | None = None
    defense: int | None = None
    pend_scale: int | None = None
    link_markers: list[int] = field(default_factory=list)
    tcg_list: int | None = None
    ocg_list: int | None = None
    md_list: int | None = None
    not_in_cg: bool | None = None
    print_data: dict[str, dict[str, str]] = field(default_factory=dict)
    image_data: dict[int, str] = field(default_factory=dict)
    faq_data: dict[str, list[FaqBlock]] = field(default_factory=dict)
    products: list[TCGPlayerProduct] = field(default_factory=list)

    def satisfies(self, facet: Facet, locale: str) -> bool:
        """Whether this card carries the data a facet needs in a locale."""
        # Without a name in the locale nothing about it can be shown
        if locale not in self.name:
            return False
        if facet in (Facet.INFO, Facet.RULING):
            return locale in self.effect
        if facet == Facet.ART:
            return bool(self.image_data)
        if facet == Facet.DATE:
            return bool(self.print_data.get(locale))
        if facet == Facet.PRICE:
            return price_data_resolved(self.products)
        if facet == Facet.FAQ:
            return bool(self.faq_data.get(locale))
        return False

    def merge_from(self, other: "Card") -> None:
        """
        Fill fields this card lacks from another card.

        First non-null wins per field: scalars are taken only when unset,
        maps gain only missing keys, lists are taken only when empty.
        """
        for f in fields(self):
            mine = getattr(self, f.name)
            theirs = getattr(other, f.name)
            if theirs is None:
                continue
            if mine is None:
                setattr(self, f.name, theirs)
            elif isinstance(mine, dict):
                for key, value in theirs.items():
                    mine.setdefault(key, value)
            elif isinstance(mine, list) and not mine:
                mine.extend(theirs)

    def add_faq_entry(self, locale: str, index: str, entry: str) -> None:
        """
        Add a FAQ line to the block for an effect index.

        Label lines ("About ..." in English, 【...】 in Japanese) go to the
        front of their block.
        """
        blocks = self.faq_data.setdefault(locale, [])
        block = next((b for b in blocks if b.index == index), None)
        if block is None:
            blocks.append(FaqBlock(index=index, lines=[entry]))
        elif _is_faq_label(locale, entry):
            block.lines.insert(0, entry)
        else:
            block.lines.append(entry)

    def sort_faq_blocks(self) -> None:
        """Sort each locale's blocks numerically by effect index."""
        for blocks in self.faq_data.values():
            blocks.sort(key=lambda b: float(b.index))

    def add_image(self, art_id: int, url: str) -> None:
        self.image_data.setdefault(art_id, url)

    def to_payload(self) -> dict[str, Any]:
        """
        Serialize for the local cache DB.

        Products are excluded: they live in the TCGPlayer tables and are
        attached at load time.
        """
        return {
            "db_id": self.db_id,
            "passcode": self.passcode,
            "name": self.name,
            "effect": self.effect,
            "pend_effect": self.pend_effect,
            "card_type": self.card_type,
            "card_property": self.card_property,
            "types": self.types,
            "attribute": self.attribute,
            "level_rank": self.level_rank,
            "attack": self.attack,
            "defense": self.defense,
            "pend_scale": self.pend_scale,
            "link_markers": self.link_markers,
            "tcg_list": self.tcg_list,
            "ocg_list": self.ocg_list,
            "md_list": self.md_list,
            "not_in_cg": self.not_in_cg,
            "print_data": self.print_data,
            # JSON object keys are strings
            "image_data": {str(k): v for k, v in self.image_data.items()},
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Card":
        """Rebuild a card from to_payload() output."""
        data = dict(payload)
        data["image_data"] = {int(k): v for k, v in data.get("image_data", {}).items()}
        known = {f.name for f in fields(cls)} - {"faq_data", "products"}
        return cls(**{k: v for k, v in data.items() if k in known})

    def __str__(self) -> str:
        name = self.name.get("en") or next(iter(self.name.values()), None)
        return f"{name} ({self.db_id})" if name else f"Card({self.db_id})"
