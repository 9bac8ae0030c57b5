"""
Persistent key-value stores with TTL.

PersistentStore is the interface the cache layer consumes. Two backends:
- MemoryStore: process-local dict, TTL checked on read
- SqlStore: SQLAlchemy async sessions over the gallery_api_store table
"""

import asyncio
import json
import time
from typing import Any, Callable, Protocol

from loguru import logger
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gallery_api.datastore.models import KeyValueDB


class PersistentStore(Protocol):
    """Key-value store with expiration enforced by the store."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: int = 0) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def delete_by_pattern(self, pattern: str) -> bool: ...


def _expires_at(now: float, ttl_seconds: int) -> float | None:
    return now + ttl_seconds if ttl_seconds > 0 else None


class MemoryStore:
    """
    In-process persistent store stand-in.

    Entries with ttl_seconds <= 0 never expire. Values are stored as given.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._data: dict[str, tuple[Any, float | None]] = {}
        self._clock = clock
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    async def set(self, key: str, value: Any, ttl_seconds: int = 0) -> bool:
        async with self._lock:
            self._data[key] = (value, _expires_at(self._clock(), ttl_seconds))
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    async def delete_by_pattern(self, pattern: str) -> bool:
        async with self._lock:
            for key in [k for k in self._data if pattern in k]:
                del self._data[key]
            return True

    def __len__(self) -> int:
        return len(self._data)


class SqlStore:
    """
    Persistent store backed by SQLAlchemy.

    Usage:
        factory = await init_db("sqlite+aiosqlite:///./gallery_api.db")
        store = SqlStore(factory)
        await store.set("key", {"a": 1}, ttl_seconds=300)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], float] = time.time,
    ):
        self._session_factory = session_factory
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        now = self._clock()
        async with self._session_factory() as session:
            result = await session.execute(
                select(KeyValueDB).where(
                    KeyValueDB.key == key,
                    or_(KeyValueDB.expires_at.is_(None), KeyValueDB.expires_at > now),
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None

        try:
            return json.loads(row.value_json)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to decode stored value for {key[:50]}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int = 0) -> bool:
        now = self._clock()
        value_json = json.dumps(value, ensure_ascii=False)

        async with self._session_factory() as session:
            existing = await session.execute(
                select(KeyValueDB).where(KeyValueDB.key == key)
            )
            row = existing.scalar_one_or_none()

            if row:
                row.value_json = value_json
                row.stored_at = now
                row.expires_at = _expires_at(now, ttl_seconds)
            else:
                session.add(
                    KeyValueDB(
                        key=key,
                        value_json=value_json,
                        stored_at=now,
                        expires_at=_expires_at(now, ttl_seconds),
                    )
                )
            await session.commit()

        logger.debug(f"Stored {key[:50]} (TTL: {ttl_seconds}s)")
        return True

    async def delete(self, key: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(KeyValueDB).where(KeyValueDB.key == key).execution_options(
                    synchronize_session=False
                )
            )
            await session.commit()
            return (result.rowcount or 0) > 0

    async def delete_by_pattern(self, pattern: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(KeyValueDB).where(
                    KeyValueDB.key.contains(pattern, autoescape=True)
                ).execution_options(synchronize_session=False)
            )
            await session.commit()

        if result.rowcount:
            logger.debug(f"Deleted {result.rowcount} entries matching '{pattern}'")
        return True

    async def cleanup_expired(self) -> int:
        """Remove expired rows. Returns the number deleted."""
        stmt = (
            delete(KeyValueDB)
            .where(KeyValueDB.expires_at <= self._clock())
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()

        deleted = result.rowcount or 0
        if deleted > 0:
            logger.debug(f"Cleaned up {deleted} expired store entries")
        return deleted
