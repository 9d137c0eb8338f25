from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from .models import Base
import config


def get_engine(db_url: str = None) -> AsyncEngine:
    """Create engine with appropriate settings for the database type"""
    db_url = db_url or config.DATABASE_URL

    # PostgreSQL - use NullPool for serverless/external connections
    if db_url.startswith("postgresql"):
        return create_async_engine(
            db_url,
            echo=False,
            poolclass=NullPool,  # better for external DB connections
        )

    # SQLite (local development)
    return create_async_engine(db_url, echo=False)


def get_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
