"""Async SQLAlchemy key-value store.

Provides the durable backing store for credentials, OAuth state, the
webhook event log, and resource records:
- One ``kv_records`` table (key, JSON value, optional expiry)
- ``put`` is a single INSERT .. ON CONFLICT DO UPDATE statement
- Conditional delete reported through the statement rowcount
- Works with PostgreSQL (asyncpg) and SQLite (aiosqlite, tests); other
  dialects are rejected at construction
"""
from __future__ import annotations
from typing import Any, Callable
import time

from sqlalchemy import JSON, Float, String, delete, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from storelink.errors import ConfigurationError

# Dialects with INSERT .. ON CONFLICT support.
_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    """Declarative base for storelink tables."""
    pass


class KeyValueRecord(Base):
    """A single stored value."""

    __tablename__ = "kv_records"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    value: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[float] = mapped_column(Float, nullable=False)
    expires_at: Mapped[float | None] = mapped_column(Float, nullable=True, index=True)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class SqlKeyValueStore:
    """KeyValueStore over a relational database.

    Usage::

        store = SqlKeyValueStore.from_url("postgresql+asyncpg://...")
        await store.create_tables()
        await store.put("state:abc", {"domain": "x.myshopify.com"}, ttl_seconds=600)
    """

    def __init__(self, engine: AsyncEngine, clock: Callable[[], float] = time.time):
        insert = _UPSERT_INSERTS.get(engine.dialect.name)
        if insert is None:
            raise ConfigurationError(
                f"Unsupported database dialect for the key-value store: {engine.dialect.name}"
            )
        self._insert = insert
        self.engine = engine
        self._clock = clock
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> "SqlKeyValueStore":
        kwargs: dict[str, Any] = {"echo": echo}
        if not url.startswith("sqlite"):
            kwargs.update(pool_size=20, max_overflow=10, pool_pre_ping=True)
        return cls(create_async_engine(url, **kwargs))

    # -- Lifecycle --

    async def create_tables(self) -> None:
        """Create the table if missing (dev/test only)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    # -- KeyValueStore --

    async def get(self, key: str) -> dict[str, Any] | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(KeyValueRecord).where(KeyValueRecord.key == key)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            if row.expires_at is not None and self._clock() >= row.expires_at:
                return None
            return dict(row.value)

    async def put(
        self,
        key: str,
        value: dict[str, Any],
        ttl_seconds: int | None = None,
    ) -> None:
        now = self._clock()
        stmt = self._insert(KeyValueRecord).values(
            key=key,
            value=value,
            created_at=now,
            expires_at=now + ttl_seconds if ttl_seconds else None,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[KeyValueRecord.key],
            set_={
                "value": stmt.excluded.value,
                "created_at": stmt.excluded.created_at,
                "expires_at": stmt.excluded.expires_at,
            },
        )
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(stmt)

    async def delete_if_exists(self, key: str) -> bool:
        # Single conditional DELETE: the database decides which caller wins.
        stmt = delete(KeyValueRecord).where(
            KeyValueRecord.key == key,
            or_(KeyValueRecord.expires_at.is_(None), KeyValueRecord.expires_at > self._clock()),
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount == 1

    async def purge_expired(self) -> int:
        """Remove expired rows. Returns count removed."""
        stmt = delete(KeyValueRecord).where(
            KeyValueRecord.expires_at.is_not(None),
            KeyValueRecord.expires_at <= self._clock(),
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount or 0
