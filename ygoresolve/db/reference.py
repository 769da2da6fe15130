"""
Read operations for the Konami reference DB.

The reference DB is maintained by a separate process; nothing here writes
to it and manifest eviction never touches it.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ygoresolve.models.card import Card
from ygoresolve.models.db import (
    ReferenceBanlistDB,
    ReferenceCardDB,
    ReferencePrintDB,
    ReferencePropertyDB,
)

_BANLIST_FIELDS = {"tcg": "tcg_list", "ocg": "ocg_list", "md": "md_list"}


async def get_reference_card(session: AsyncSession, db_id: int) -> Card | None:
    """
    Build a card from the reference DB.

    Returns None if the database id is unknown.
    """
    result = await session.execute(select(ReferenceCardDB).where(ReferenceCardDB.id == db_id))
    rows = list(result.scalars().all())
    if not rows:
        return None

    card = Card(db_id=db_id)
    for row in rows:
        card.name[row.locale] = row.name
        if row.effect_text is not None:
            card.effect[row.locale] = row.effect_text
        if row.pendulum_text:
            card.pend_effect[row.locale] = row.pendulum_text

    # Locale-independent stats repeat on every row
    rep = rows[0]
    card.card_type = rep.card_type
    card.card_property = rep.en_property
    card.attribute = rep.en_attribute
    card.level_rank = rep.level if rep.level is not None else rep.rank
    card.attack = rep.atk
    card.defense = rep.defense
    card.pend_scale = rep.pendulum_scale
    # One digit per arrow, numbered from the bottom left
    if rep.link_arrows:
        card.link_markers = [int(c) for c in rep.link_arrows]

    if card.card_type == "monster":
        result = await session.execute(
            select(ReferencePropertyDB.property)
            .where(ReferencePropertyDB.card_id == db_id, ReferencePropertyDB.locale == "en")
            .order_by(ReferencePropertyDB.position)
        )
        card.types = list(result.scalars().all())

    result = await session.execute(
        select(ReferencePrintDB)
        .where(ReferencePrintDB.card_id == db_id)
        .order_by(ReferencePrintDB.print_date)
    )
    for p in result.scalars().all():
        card.print_data.setdefault(p.locale, {})[p.print_code] = p.print_date

    result = await session.execute(
        select(ReferenceBanlistDB).where(ReferenceBanlistDB.card_id == db_id)
    )
    for ban in result.scalars().all():
        field_name = _BANLIST_FIELDS.get(ban.cg)
        if field_name is not None:
            setattr(card, field_name, ban.copies)

    return card
