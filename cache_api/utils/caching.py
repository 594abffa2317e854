from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cache_api.core.exceptions.errors import CacheStoreError, CacheWriteError
from cache_api.db.models.cache import CacheEntry
from cache_api.db.models.monitor import MonitorCursor
from cache_api.db.schemas.cache import CacheRecord
from cache_api.db.session import SessionLocal
from cache_api.utils.logging import get_logger

logger = get_logger()

# Single-statement INSERT .. ON CONFLICT DO UPDATE per backend.
_UPSERT_INSERTS = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}


async def _upsert(session: AsyncSession, model, values: dict, **overrides) -> None:
    """Insert or overwrite the row with the same primary key, last writer wins."""
    insert = _UPSERT_INSERTS.get(session.get_bind().dialect.name)
    if insert is None:
        # Other backends get the ORM merge, which is not atomic under races.
        await session.merge(model(**values, **overrides))
        return

    primary_key = [column.name for column in model.__table__.primary_key]
    stmt = insert(model).values(**values)
    update = {
        name: stmt.excluded[name] for name in values if name not in primary_key
    }
    update.update(overrides)
    await session.execute(
        stmt.on_conflict_do_update(index_elements=primary_key, set_=update)
    )


class CacheStore:
    """Contract-call results keyed by cache key.

    Reads fail open (a storage error is reported as a miss) and writes fail
    closed (a storage error raises CacheWriteError). ``get`` never filters on
    expiry; freshness is the caller's decision.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, key: str) -> Optional[CacheRecord]:
        try:
            async with self._session_factory() as session:
                entry = await session.get(CacheEntry, key)
                if entry is None:
                    return None
                return CacheRecord.model_validate(entry)
        except SQLAlchemyError as e:
            logger.bind(cache_key=key).error(f"Error getting cache: {e}")
            return None

    async def set(self, record: CacheRecord) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await _upsert(session, CacheEntry, record.model_dump())
        except SQLAlchemyError as e:
            logger.bind(cache_key=record.key).error(f"Error setting cache: {e}")
            raise CacheWriteError(f"Could not store {record.key}") from e
        logger.bind(cache_key=record.key).debug("Cache set")

    async def delete(self, key: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(CacheEntry).where(CacheEntry.key == key)
                )
                deleted = result.rowcount > 0
        return deleted

    async def delete_by_contract_and_function(
        self, contract_address: str, function_name: Optional[str] = None
    ) -> int:
        """Delete every entry for a contract, optionally narrowed to one function.

        Matches are deleted one by one; a failure part way through leaves the
        earlier deletions in place.
        """
        address = contract_address.lower()
        query = select(CacheEntry.key).where(CacheEntry.contract_address == address)
        if function_name:
            query = query.where(CacheEntry.function_name == function_name)

        try:
            async with self._session_factory() as session:
                keys = list((await session.execute(query)).scalars())

            count = 0
            for key in keys:
                if await self.delete(key):
                    count += 1
        except SQLAlchemyError as e:
            logger.bind(contract=address, function=function_name).error(
                f"Error clearing cache by contract: {e}"
            )
            raise CacheStoreError(f"Could not clear cache for {address}") from e

        if count:
            logger.bind(contract=address, function=function_name, count=count).info(
                "Cleared cache"
            )
        return count

    async def purge_expired(self, before: int) -> int:
        """Physically remove entries whose expire_at is older than ``before``."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(CacheEntry).where(CacheEntry.expire_at < before)
                    )
                    purged = result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Error purging expired cache entries: {e}")
            raise CacheStoreError("Could not purge expired entries") from e
        return purged


class WatermarkStore:
    """Durable last-processed block per monitor cursor name."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def load(self, name: str) -> Optional[int]:
        try:
            async with self._session_factory() as session:
                cursor = await session.get(MonitorCursor, name)
                return cursor.last_block if cursor else None
        except SQLAlchemyError as e:
            logger.bind(cursor=name).error(f"Error loading monitor cursor: {e}")
            return None

    async def save(self, name: str, block: int) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await _upsert(
                        session,
                        MonitorCursor,
                        {"name": name, "last_block": block},
                        updated_at=func.now(),
                    )
        except SQLAlchemyError as e:
            logger.bind(cursor=name, block=block).error(
                f"Error saving monitor cursor: {e}"
            )
            raise CacheStoreError(f"Could not save cursor {name}") from e


cache_store = CacheStore(SessionLocal)
watermark_store = WatermarkStore(SessionLocal)
