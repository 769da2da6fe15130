"""
Database CRUD operations for the local cache DB.

Provides async functions for term rows, cached YGOrg payloads, FAQ rows,
name indices, the manifest revision and TCGPlayer catalog/price rows.
Callers own the session and commit.
"""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ygoresolve.config import settings
from ygoresolve.models.card import Card
from ygoresolve.models.db import (
    LOCATION_BOT,
    CardDataDB,
    FaqDataDB,
    ManifestDB,
    NameIndexDB,
    RulingCardDB,
    RulingDataDB,
    TCGPlayerPriceDB,
    TCGPlayerProductDB,
    TCGPlayerSetDB,
    TermDB,
)
from ygoresolve.models.ruling import Ruling
from ygoresolve.models.search import Term
from ygoresolve.models.tcgplayer import Prices, TCGPlayerProduct, TCGPlayerSet

_MANIFEST_ROW_ID = 1


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; stored timestamps are always UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


# --- Term Operations ---


async def get_term_rows(session: AsyncSession, term: Term) -> list[TermDB]:
    """Get every term row recorded for a token."""
    result = await session.execute(select(TermDB).where(TermDB.term == str(term)))
    return list(result.scalars().all())


async def add_terms(
    session: AsyncSession,
    terms: Iterable[Term],
    card: Card,
    location: str,
) -> int:
    """
    Record tokens that resolved to a card.

    Writes one row per (token, locale the card is named in), replacing
    any existing row for that pair.

    Returns the number of rows written.
    """
    count = 0
    for term in terms:
        for locale, name in card.name.items():
            await session.merge(
                TermDB(
                    term=str(term),
                    locale=locale,
                    db_id=card.db_id,
                    passcode=card.passcode,
                    full_name=name,
                    location=location,
                )
            )
            count += 1
    await session.flush()
    return count


# --- Card Data Operations ---


async def get_card_data(session: AsyncSession, db_id: int) -> CardDataDB | None:
    """Get a cached card payload by database id. Returns None if absent."""
    return await session.get(CardDataDB, db_id)


async def find_card_data(session: AsyncSession, term: Term) -> CardDataDB | None:
    """
    Find a cached card payload by database id, passcode or English name.

    Numeric terms are tried as a database id first, then as a passcode.
    """
    if isinstance(term, int):
        row = await get_card_data(session, term)
        if row is not None:
            return row
        result = await session.execute(select(CardDataDB).where(CardDataDB.passcode == term))
        return result.scalars().first()

    result = await session.execute(
        select(CardDataDB).where(func.lower(CardDataDB.en_name) == term.lower())
    )
    return result.scalars().first()


async def upsert_card_data(session: AsyncSession, card: Card) -> CardDataDB:
    """Insert or replace a card payload. The card must have a database id."""
    if card.db_id is None:
        raise ValueError("Cannot cache a card without a database id")

    row = await session.merge(
        CardDataDB(
            db_id=card.db_id,
            passcode=card.passcode,
            en_name=card.name.get("en"),
            payload=card.to_payload(),
            cached_at=datetime.now(UTC),
        )
    )
    await session.flush()
    return row


# --- FAQ Operations ---


async def get_faq_rows(session: AsyncSession, card_id: int) -> list[FaqDataDB]:
    """Get FAQ rows for a card in insertion order."""
    result = await session.execute(
        select(FaqDataDB)
        .where(FaqDataDB.card_id == card_id)
        .order_by(FaqDataDB.locale, FaqDataDB.effect_index, FaqDataDB.position)
    )
    return list(result.scalars().all())


async def replace_faq_data(session: AsyncSession, card: Card) -> int:
    """
    Replace all FAQ rows for a card with its current FAQ blocks.

    Returns the number of lines written.
    """
    if card.db_id is None:
        return 0

    await session.execute(delete(FaqDataDB).where(FaqDataDB.card_id == card.db_id))
    count = 0
    for locale, blocks in card.faq_data.items():
        for block in blocks:
            for position, line in enumerate(block.lines):
                session.add(
                    FaqDataDB(
                        card_id=card.db_id,
                        locale=locale,
                        effect_index=block.index,
                        position=position,
                        line=line,
                    )
                )
                count += 1
    await session.flush()
    return count


# --- Ruling Operations ---


async def get_ruling_data(session: AsyncSession, qa_id: int) -> RulingDataDB | None:
    """Get a cached ruling payload. Returns None if absent."""
    return await session.get(RulingDataDB, qa_id)


async def upsert_ruling(session: AsyncSession, ruling: Ruling) -> RulingDataDB:
    """Insert or replace a ruling payload and its card references."""
    if ruling.id is None:
        raise ValueError("Cannot cache a ruling without an id")

    row = await session.merge(
        RulingDataDB(qa_id=ruling.id, payload=ruling.to_payload(), cached_at=datetime.now(UTC))
    )
    await session.execute(delete(RulingCardDB).where(RulingCardDB.qa_id == ruling.id))
    for card_id in dict.fromkeys(ruling.cards):
        session.add(RulingCardDB(qa_id=ruling.id, card_id=card_id))
    await session.flush()
    return row


# --- Name Index Operations ---


async def get_name_index(session: AsyncSession, locale: str) -> dict[str, list[int]] | None:
    """Get the persisted name index for a locale. Returns None if absent."""
    row = await session.get(NameIndexDB, locale)
    return row.entries if row is not None else None


async def save_name_index(
    session: AsyncSession, locale: str, entries: dict[str, list[int]]
) -> NameIndexDB:
    row = await session.merge(NameIndexDB(locale=locale, entries=entries, cached_at=datetime.now(UTC)))
    await session.flush()
    return row


async def delete_name_indices(session: AsyncSession, locales: Iterable[str]) -> int:
    """Delete persisted name indices. Returns the number deleted."""
    result = await session.execute(delete(NameIndexDB).where(NameIndexDB.locale.in_(list(locales))))
    return int(result.rowcount)  # type: ignore[attr-defined]


# --- Manifest Operations ---


async def get_manifest_revision(session: AsyncSession) -> int | None:
    """Get the last processed manifest revision. Returns None if never set."""
    row = await session.get(ManifestDB, _MANIFEST_ROW_ID)
    return row.revision if row is not None else None


async def set_manifest_revision(session: AsyncSession, revision: int) -> None:
    await session.merge(ManifestDB(id=_MANIFEST_ROW_ID, revision=revision))
    await session.flush()


# --- Eviction Operations ---


async def evict_cards(session: AsyncSession, card_ids: Iterable[int]) -> int:
    """
    Evict remotely sourced data for changed cards.

    Deletes card payloads, FAQ rows and bot term rows. Term rows pointing
    at the reference DB are left alone: that data is maintained separately.

    Returns the number of rows deleted.
    """
    ids = list(card_ids)
    if not ids:
        return 0

    deleted = 0
    for stmt in (
        delete(CardDataDB).where(CardDataDB.db_id.in_(ids)),
        delete(FaqDataDB).where(FaqDataDB.card_id.in_(ids)),
        delete(TermDB).where(TermDB.db_id.in_(ids), TermDB.location == LOCATION_BOT),
    ):
        result = await session.execute(stmt)
        deleted += int(result.rowcount)  # type: ignore[attr-defined]
    return deleted


async def evict_rulings(session: AsyncSession, qa_ids: Iterable[int]) -> int:
    """Evict cached ruling payloads and their card references."""
    ids = list(qa_ids)
    if not ids:
        return 0

    deleted = 0
    for stmt in (
        delete(RulingDataDB).where(RulingDataDB.qa_id.in_(ids)),
        delete(RulingCardDB).where(RulingCardDB.qa_id.in_(ids)),
    ):
        result = await session.execute(stmt)
        deleted += int(result.rowcount)  # type: ignore[attr-defined]
    return deleted


# --- TCGPlayer Operations ---


async def find_set(session: AsyncSession, term: str) -> TCGPlayerSetDB | None:
    """Find a set by code, then by full name. Both are case-insensitive."""
    for column in (TCGPlayerSetDB.set_code, TCGPlayerSetDB.full_name):
        result = await session.execute(
            select(TCGPlayerSetDB).where(func.lower(column) == term.lower())
        )
        row = result.scalars().first()
        if row is not None:
            return row
    return None


async def get_all_sets(session: AsyncSession) -> dict[int, TCGPlayerSetDB]:
    result = await session.execute(select(TCGPlayerSetDB))
    return {row.set_id: row for row in result.scalars().all()}


async def get_products_for_set(session: AsyncSession, set_id: int) -> list[TCGPlayerProductDB]:
    result = await session.execute(
        select(TCGPlayerProductDB)
        .where(TCGPlayerProductDB.set_id == set_id)
        .order_by(TCGPlayerProductDB.product_id)
    )
    return list(result.scalars().all())


async def get_products_for_card(
    session: AsyncSession, db_id: int | None, en_name: str | None
) -> list[TCGPlayerProductDB]:
    """
    Get products for a card by database id, falling back to English name.

    Crawled products carry no database id until a price lookup links them,
    so the name is the usual match for a card seen the first time.
    """
    if db_id is not None:
        result = await session.execute(
            select(TCGPlayerProductDB)
            .where(TCGPlayerProductDB.db_id == db_id)
            .order_by(TCGPlayerProductDB.product_id)
        )
        rows = list(result.scalars().all())
        if rows:
            return rows

    if not en_name:
        return []

    result = await session.execute(
        select(TCGPlayerProductDB)
        .where(func.lower(TCGPlayerProductDB.full_name) == en_name.lower())
        .order_by(TCGPlayerProductDB.product_id)
    )
    return list(result.scalars().all())


async def get_product_modified_map(session: AsyncSession) -> dict[int, datetime | None]:
    """Map every cached product id to its catalog modification time."""
    result = await session.execute(
        select(TCGPlayerProductDB.product_id, TCGPlayerProductDB.modified_on)
    )
    return {product_id: as_utc(modified) for product_id, modified in result.all()}


async def get_fresh_prices(
    session: AsyncSession,
    product_ids: Iterable[int],
    now: datetime | None = None,
) -> dict[int, list[TCGPlayerPriceDB]]:
    """
    Get price rows newer than the staleness window.

    Stale rows are treated as absent, not as stale-but-usable.
    """
    ids = list(product_ids)
    if not ids:
        return {}

    now = now or datetime.now(UTC)
    cutoff = now - timedelta(seconds=settings.price_staleness_seconds)
    result = await session.execute(
        select(TCGPlayerPriceDB).where(TCGPlayerPriceDB.product_id.in_(ids))
    )

    prices: dict[int, list[TCGPlayerPriceDB]] = {}
    for row in result.scalars().all():
        cached_at = as_utc(row.cached_at)
        if cached_at is not None and cached_at > cutoff:
            prices.setdefault(row.product_id, []).append(row)
    return prices


async def save_prices(session: AsyncSession, products: Iterable[TCGPlayerProduct]) -> int:
    """
    Persist price data for products that have any.

    Returns the number of price rows written.
    """
    count = 0
    for product in products:
        if not product.price_data or product.price_cached_at is None:
            continue
        for sub_type, prices in product.price_data.items():
            await session.merge(
                TCGPlayerPriceDB(
                    product_id=product.product_id,
                    sub_type=sub_type,
                    low_price=prices.low,
                    mid_price=prices.mid,
                    high_price=prices.high,
                    market_price=prices.market,
                    cached_at=product.price_cached_at,
                )
            )
            count += 1
    await session.flush()
    return count


async def link_products_to_card(
    session: AsyncSession, product_ids: Iterable[int], db_id: int
) -> None:
    ids = list(product_ids)
    if ids:
        await session.execute(
            update(TCGPlayerProductDB)
            .where(TCGPlayerProductDB.product_id.in_(ids))
            .values(db_id=db_id)
        )


async def upsert_sets(session: AsyncSession, sets: Iterable[TCGPlayerSet]) -> int:
    count = 0
    for tcg_set in sets:
        await session.merge(
            TCGPlayerSetDB(
                set_id=tcg_set.set_id,
                set_code=tcg_set.set_code,
                full_name=tcg_set.full_name,
                modified_on=tcg_set.modified_on,
            )
        )
        count += 1
    await session.flush()
    return count


async def mark_set_stale(session: AsyncSession, set_id: int) -> None:
    """Forget a set's modification time so the next crawl fetches its products again."""
    await session.execute(
        update(TCGPlayerSetDB).where(TCGPlayerSetDB.set_id == set_id).values(modified_on=None)
    )


async def upsert_products(session: AsyncSession, products: Iterable[TCGPlayerProduct]) -> int:
    """Insert or update catalog products, keeping any card link already made."""
    count = 0
    for product in products:
        existing = await session.get(TCGPlayerProductDB, product.product_id)
        if existing is not None:
            existing.set_id = product.set_id
            existing.full_name = product.full_name
            existing.print_code = product.print_code
            existing.rarity = product.rarity
            existing.modified_on = product.modified_on
        else:
            session.add(
                TCGPlayerProductDB(
                    product_id=product.product_id,
                    set_id=product.set_id,
                    full_name=product.full_name,
                    print_code=product.print_code,
                    rarity=product.rarity,
                    modified_on=product.modified_on,
                )
            )
        count += 1
    await session.flush()
    return count


def product_to_model(
    row: TCGPlayerProductDB, price_rows: list[TCGPlayerPriceDB] | None = None
) -> TCGPlayerProduct:
    """Convert a database product (and its fresh price rows) to a domain model."""
    product = TCGPlayerProduct(
        product_id=row.product_id,
        full_name=row.full_name,
        set_id=row.set_id,
        rarity=row.rarity,
        print_code=row.print_code,
        modified_on=as_utc(row.modified_on),
    )
    for price in price_rows or []:
        product.set_prices(
            price.sub_type,
            Prices(
                low=price.low_price,
                mid=price.mid_price,
                high=price.high_price,
                market=price.market_price,
            ),
            cached_at=as_utc(price.cached_at),
        )
    return product


def set_to_model(row: TCGPlayerSetDB) -> TCGPlayerSet:
    """Convert a database set to a domain model, without products."""
    return TCGPlayerSet(
        set_id=row.set_id,
        set_code=row.set_code,
        full_name=row.full_name,
        modified_on=as_utc(row.modified_on),
    )
