from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from arena.core.config import settings

engine = create_async_engine(settings.db_url)


async def init_db() -> None:
    """Create missing tables."""
    # Register every table on the metadata
    import arena.models.battle_history
    import arena.models.battle_session
    import arena.models.event_log
    import arena.models.player
    import arena.models.player_card  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession]:
    async with AsyncSession(
        engine, autocommit=False, autoflush=False, expire_on_commit=False
    ) as session:
        yield session
