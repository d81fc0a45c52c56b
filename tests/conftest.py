import random
from collections.abc import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel.ext.asyncio.session import AsyncSession

from lyceum.core.db import create_tables, get_db, make_sessionmaker
from lyceum.core.enums import RarityTier
from lyceum.core.security import create_access_token
from lyceum.main import app
from lyceum.models.reward_pool import RewardPool
from lyceum.services.gacha import GachaService
from lyceum.services.outbox import ProgressionOutbox, get_outbox
from lyceum.utils.seed import seed_catalog

COMMONS_POOL_ID = "commons"


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine]:
    # A file database so concurrent sessions really contend for the same rows
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'lyceum-test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_sessionmaker(engine)


@pytest_asyncio.fixture
async def seeded(sessions: async_sessionmaker[AsyncSession]) -> None:
    async with sessions() as db:
        await seed_catalog(db)


@pytest_asyncio.fixture
async def db(sessions: async_sessionmaker[AsyncSession], seeded: None) -> AsyncGenerator[AsyncSession]:
    async with sessions() as session:
        yield session


@pytest_asyncio.fixture
async def commons_pool(db: AsyncSession) -> RewardPool:
    """A pool that only ever draws commons unless pity forces the floor."""
    pool = RewardPool(
        id=COMMONS_POOL_ID,
        name="Commons Only",
        cost=1,
        multi_pull_cost=9,
        rates={
            RarityTier.COMMON: 1.0,
            RarityTier.RARE: 0.0,
            RarityTier.EPIC: 0.0,
            RarityTier.LEGENDARY: 0.0,
        },
        pity_threshold=10,
    )
    db.add(pool)
    await db.commit()
    return pool


@pytest.fixture
def gacha(db: AsyncSession) -> GachaService:
    service = GachaService(db)
    service.rng = random.Random(1234)
    return service


@pytest.fixture
def outbox(sessions: async_sessionmaker[AsyncSession]) -> ProgressionOutbox:
    return ProgressionOutbox(sessions, max_users=2, interval=0.01)


@pytest_asyncio.fixture
async def client(
    sessions: async_sessionmaker[AsyncSession], seeded: None, outbox: ProgressionOutbox
) -> AsyncGenerator[AsyncClient]:
    async def override_get_db() -> AsyncGenerator[AsyncSession]:
        async with sessions() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_outbox] = lambda: outbox
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    def make(user_id: str, *, is_admin: bool = False) -> dict[str, str]:
        token = create_access_token(sub=user_id, is_admin=is_admin)
        return {"Authorization": f"Bearer {token}"}

    return make
