from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from cache_api.core.config import settings
from cache_api.db import Base

engine: AsyncEngine = create_async_engine(settings.DATABASE_URL)
SessionLocal = async_sessionmaker(
    autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
)


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
