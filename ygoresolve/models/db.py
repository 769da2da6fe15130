"""
SQLAlchemy ORM models for persistent storage.

Two databases are mapped here:

- the local cache DB (Base): term rows, cached YGOrg payloads, FAQ rows,
  name indices, the manifest revision and TCGPlayer catalog/price rows.
  Owned and written by this process.
- the Konami reference DB (ReferenceBase): official card data maintained
  by a separate process. Read-only from here.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for local cache DB models."""

    pass


class ReferenceBase(DeclarativeBase):
    """Base class for Konami reference DB models."""

    pass


# =============================================================================
# LOCAL CACHE DB
# =============================================================================

# Which database holds the data a term row points at
LOCATION_BOT = "bot"
LOCATION_KONAMI = "konami"


class TermDB(Base):
    """
    Persistent term row.

    Maps a lookup token to a card identity and the database that holds
    its data. One row per (term, locale) so every translated name of a
    card is recorded.
    """

    __tablename__ = "term_cache"

    term: Mapped[str] = mapped_column(String(255), primary_key=True)
    locale: Mapped[str] = mapped_column(String(8), primary_key=True)
    db_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    passcode: Mapped[int | None] = mapped_column(Integer, nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location: Mapped[str] = mapped_column(String(16), index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<TermDB(term={self.term}, db_id={self.db_id}, location={self.location})>"


class CardDataDB(Base):
    """Card payload fetched from the YGOrg DB, keyed by database id."""

    __tablename__ = "card_data"

    db_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    passcode: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    en_name: Mapped[str | None] = mapped_column(String(255), index=True, nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
    cached_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<CardDataDB(db_id={self.db_id}, name={self.en_name})>"


class FaqDataDB(Base):
    """One FAQ line for one effect of a card in one locale."""

    __tablename__ = "faq_data"
    __table_args__ = (
        UniqueConstraint("card_id", "locale", "effect_index", "position", name="uq_faq_line"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    card_id: Mapped[int] = mapped_column(Integer, index=True)
    locale: Mapped[str] = mapped_column(String(8))
    effect_index: Mapped[str] = mapped_column(String(16))
    position: Mapped[int] = mapped_column(Integer)
    line: Mapped[str] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<FaqDataDB(card_id={self.card_id}, locale={self.locale}, index={self.effect_index})>"


class RulingDataDB(Base):
    """Ruling payload fetched from the YGOrg QA API, keyed by QA id."""

    __tablename__ = "qa_data"

    qa_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
    cached_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<RulingDataDB(qa_id={self.qa_id})>"


class RulingCardDB(Base):
    """Junction between a ruling and the cards it references."""

    __tablename__ = "qa_cards"

    qa_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    card_id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)


class NameIndexDB(Base):
    """Persisted YGOrg name -> ids index for one locale."""

    __tablename__ = "name_index"

    locale: Mapped[str] = mapped_column(String(8), primary_key=True)
    entries: Mapped[dict[str, list[int]]] = mapped_column(JSON)
    cached_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<NameIndexDB(locale={self.locale}, names={len(self.entries)})>"


class ManifestDB(Base):
    """Single row holding the last YGOrg manifest revision processed."""

    __tablename__ = "manifest"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    revision: Mapped[int] = mapped_column(Integer)


class TCGPlayerSetDB(Base):
    """TCGPlayer group (set)."""

    __tablename__ = "tcgplayer_sets"

    set_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    set_code: Mapped[str | None] = mapped_column(String(32), index=True, nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    modified_on: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<TCGPlayerSetDB(set_id={self.set_id}, code={self.set_code})>"


class TCGPlayerProductDB(Base):
    """TCGPlayer product (one print of a card)."""

    __tablename__ = "tcgplayer_products"

    product_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    set_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("tcgplayer_sets.set_id", ondelete="CASCADE"), index=True, nullable=True
    )
    db_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(255), index=True, nullable=True)
    print_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    rarity: Mapped[str | None] = mapped_column(String(64), nullable=True)
    modified_on: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<TCGPlayerProductDB(product_id={self.product_id}, name={self.full_name})>"


class TCGPlayerPriceDB(Base):
    """Prices for one sub-type of one product."""

    __tablename__ = "tcgplayer_prices"

    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tcgplayer_products.product_id", ondelete="CASCADE"), primary_key=True
    )
    sub_type: Mapped[str] = mapped_column(String(64), primary_key=True)
    low_price: Mapped[float] = mapped_column(Float)
    mid_price: Mapped[float] = mapped_column(Float)
    high_price: Mapped[float] = mapped_column(Float)
    market_price: Mapped[float] = mapped_column(Float)
    cached_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<TCGPlayerPriceDB(product_id={self.product_id}, sub_type={self.sub_type})>"


# =============================================================================
# KONAMI REFERENCE DB
# =============================================================================


class ReferenceCardDB(ReferenceBase):
    """Official card data, one row per locale."""

    __tablename__ = "card_data"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    locale: Mapped[str] = mapped_column(String(8), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    effect_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    pendulum_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    card_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    en_property: Mapped[str | None] = mapped_column(String(32), nullable=True)
    en_attribute: Mapped[str | None] = mapped_column(String(16), nullable=True)
    level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    atk: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # "def" is reserved in Python
    defense: Mapped[int | None] = mapped_column("def", Integer, nullable=True)
    pendulum_scale: Mapped[int | None] = mapped_column(Integer, nullable=True)
    link_arrows: Mapped[str | None] = mapped_column(String(8), nullable=True)

    def __repr__(self) -> str:
        return f"<ReferenceCardDB(id={self.id}, locale={self.locale}, name={self.name})>"


class ReferencePropertyDB(ReferenceBase):
    """Monster type/property of a card, ordered by position."""

    __tablename__ = "card_properties"

    card_id: Mapped[int] = mapped_column("cardId", Integer, primary_key=True)
    locale: Mapped[str] = mapped_column(String(8), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    property: Mapped[str] = mapped_column(String(32))


class ReferencePrintDB(ReferenceBase):
    """Print of a card in a locale."""

    __tablename__ = "card_prints"

    card_id: Mapped[int] = mapped_column("cardId", Integer, primary_key=True)
    print_code: Mapped[str] = mapped_column("printCode", String(32), primary_key=True)
    locale: Mapped[str] = mapped_column(String(8), primary_key=True)
    print_date: Mapped[str | None] = mapped_column("printDate", String(16), nullable=True)


class ReferenceBanlistDB(ReferenceBase):
    """Banlist status of a card in one game (tcg, ocg, md)."""

    __tablename__ = "banlist"

    card_id: Mapped[int] = mapped_column("cardId", Integer, primary_key=True)
    cg: Mapped[str] = mapped_column(String(8), primary_key=True)
    copies: Mapped[int] = mapped_column(Integer)
