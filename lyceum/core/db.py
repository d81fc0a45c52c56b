from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from lyceum.core.config import settings

engine = create_async_engine(settings.db_url)


def make_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind, class_=AsyncSession, autocommit=False, autoflush=False, expire_on_commit=False
    )


session_factory = make_sessionmaker(engine)


async def get_db() -> AsyncGenerator[AsyncSession]:
    async with session_factory() as session:
        yield session


async def create_tables(bind: AsyncEngine) -> None:
    # Import side effect registers every table on SQLModel.metadata
    import lyceum.models  # noqa: F401, PLC0415

    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
