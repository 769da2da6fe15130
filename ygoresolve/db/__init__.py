from ygoresolve.db.database import (
    async_session_factory,
    engine,
    get_session,
    init_db,
    reference_engine,
    reference_session_factory,
)
from ygoresolve.db.operations import (
    add_terms,
    evict_cards,
    evict_rulings,
    find_card_data,
    find_set,
    get_card_data,
    get_faq_rows,
    get_fresh_prices,
    get_manifest_revision,
    get_name_index,
    get_products_for_card,
    get_products_for_set,
    get_ruling_data,
    get_term_rows,
    replace_faq_data,
    save_name_index,
    save_prices,
    set_manifest_revision,
    upsert_card_data,
    upsert_products,
    upsert_ruling,
    upsert_sets,
)
from ygoresolve.db.reference import get_reference_card

__all__ = [
    "add_terms",
    "async_session_factory",
    "engine",
    "evict_cards",
    "evict_rulings",
    "find_card_data",
    "find_set",
    "get_card_data",
    "get_faq_rows",
    "get_fresh_prices",
    "get_manifest_revision",
    "get_name_index",
    "get_products_for_card",
    "get_products_for_set",
    "get_reference_card",
    "get_ruling_data",
    "get_session",
    "get_term_rows",
    "init_db",
    "reference_engine",
    "reference_session_factory",
    "replace_faq_data",
    "save_name_index",
    "save_prices",
    "set_manifest_revision",
    "upsert_card_data",
    "upsert_products",
    "upsert_ruling",
    "upsert_sets",
]
