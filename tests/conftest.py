import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ygoresolve.models.card import Card
from ygoresolve.models.db import Base, ReferenceBase, ReferenceCardDB
from ygoresolve.services.resolver import reset_resolver
from ygoresolve.services.search_limiter import reset_search_limiter
from ygoresolve.services.term_cache import reset_term_cache


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset process-wide services between tests."""
    reset_term_cache()
    reset_search_limiter()
    reset_resolver()
    yield
    reset_term_cache()
    reset_search_limiter()
    reset_resolver()


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite cache DB engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test cache DB."""
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    """Provide a cache DB session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def reference_engine():
    """Create an in-memory SQLite reference DB engine seeded with two cards."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(ReferenceBase.metadata.create_all)

    sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with sessions() as session:
        session.add_all(
            [
                ReferenceCardDB(
                    id=4007,
                    locale="en",
                    name="Blue-Eyes White Dragon",
                    effect_text="This legendary dragon is a powerful engine of destruction.",
                    card_type="monster",
                    en_attribute="LIGHT",
                    level=8,
                    atk=3000,
                    defense=2500,
                ),
                ReferenceCardDB(
                    id=4007,
                    locale="de",
                    name="Blauäugiger w. Drache",
                    effect_text="Dieser legendäre Drache ist eine mächtige Zerstörungsmaschine.",
                    card_type="monster",
                    en_attribute="LIGHT",
                    level=8,
                    atk=3000,
                    defense=2500,
                ),
                ReferenceCardDB(
                    id=4861,
                    locale="en",
                    name="Pot of Greed",
                    effect_text="Draw 2 cards.",
                    card_type="spell",
                    en_property="Normal",
                ),
            ]
        )
        await session.commit()

    yield engine
    await engine.dispose()


@pytest.fixture
def reference_sessions(reference_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test reference DB."""
    return async_sessionmaker(reference_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def blue_eyes() -> Card:
    """A fully described English card."""
    return Card(
        db_id=4007,
        passcode=89631139,
        name={"en": "Blue-Eyes White Dragon"},
        effect={"en": "This legendary dragon is a powerful engine of destruction."},
        card_type="monster",
        attribute="LIGHT",
        types=["Dragon", "Normal"],
        level_rank=8,
        attack=3000,
        defense=2500,
        print_data={"en": {"LOB-001": "2002-03-08"}},
        image_data={1: "https://artworks.example/4007/1.png"},
    )
