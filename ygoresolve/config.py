from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "ygoresolve"
    debug: bool = False

    # Local cache DB (read/write) and the externally maintained reference DB
    cache_database_url: str = "sqlite+aiosqlite:///./bot.db"
    reference_database_url: str = "sqlite+aiosqlite:///./carddata.db"

    # Per-request timeout for every outbound call, in seconds
    api_timeout: float = 3.0

    ygorg_db_url: str = "https://db.ygoresources.com"
    ygorg_artwork_url: str = "https://artworks.ygoresources.com"
    yugipedia_api_url: str = "https://yugipedia.com/api.php"

    tcgplayer_api_url: str = "https://api.tcgplayer.com"
    tcgplayer_api_version: str = "v1.39.0"
    tcgplayer_public_key: str = ""
    tcgplayer_private_key: str = ""
    tcgplayer_app_name: str = "ygoresolve"
    # TCGPlayer allows 300 requests/min
    tcgplayer_requests_per_second: int = 6

    term_cache_ttl_seconds: int = 6 * 60 * 60
    term_cache_sweep_interval_seconds: int = 60 * 60
    price_staleness_seconds: int = 8 * 60 * 60
    artwork_manifest_ttl_seconds: int = 24 * 60 * 60

    # Per-client lookups allowed in a sliding one-minute window
    search_limit_per_minute: int = 15


settings = Settings()


# =============================================================================
# RESOLUTION CONSTANTS
# =============================================================================

# Fuzzy name matches below this score never rewrite a search term
MIN_MATCH_SCORE = 0.5

# Share of a card's products that need price data for the price facet
PRICE_RESOLUTION_THRESHOLD = 0.9

# TCGPlayer caps ids per pricing request and items per page
MAX_PRICE_BATCH_SIZE = 100
PAGE_SIZE = 100

# Response header carrying the YGOrg DB cache revision
REVISION_HEADER = "x-cache-revision"

# Locales supported by the catalog sources
LOCALES = ("de", "en", "es", "fr", "it", "ja", "ko", "pt")
