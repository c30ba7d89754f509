"""
SQLAlchemy declarative base, column types and the async engine factory.

Both processes (API and worker) talk to the database through the async
engine: the dispatcher runs as an asyncio task, so it shares the driver
with FastAPI instead of needing a second, sync engine.

Engines are created on demand by `create_engine_from_url()` rather than at
import time, so importing the models does not require a database driver.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, JSON, TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models. SQLAlchemy uses this to track table metadata."""
    pass


# JSONB on PostgreSQL, plain JSON on SQLite (tests)
JSONPayload = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC datetime on every backend.

    PostgreSQL hands back aware values from TIMESTAMPTZ; SQLite hands back
    naive ones. Values are normalized to UTC on the way in and tagged as
    UTC on the way out, so comparisons in Python never mix naive and aware.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def create_engine_from_url(url: str) -> AsyncEngine:
    return create_async_engine(url, echo=False)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory shared by the store. expire_on_commit=False keeps rows readable after commit."""
    return async_sessionmaker(engine, expire_on_commit=False)
