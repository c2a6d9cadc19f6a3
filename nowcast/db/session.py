from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi import Request
from typing import AsyncGenerator
import logging

from nowcast.config import Settings
from nowcast.models import Base
from nowcast.utils.errors import AppError

logger = logging.getLogger(__name__)

def create_engine_for(database_url: str, settings: Settings) -> AsyncEngine:
    """Create the async engine for a database URL"""
    if "sqlite" in database_url:
        # SQLite configuration for testing; an in-memory database only lives on one connection
        pool_args = {"poolclass": StaticPool} if ":memory:" in database_url else {}
        engine = create_async_engine(
            database_url,
            echo=settings.DEBUG,
            connect_args={"check_same_thread": False},
            **pool_args,
        )

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            # ON DELETE policies are ignored by SQLite unless switched on per connection
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    # PostgreSQL configuration for production/development
    return create_async_engine(
        database_url,
        echo=settings.DEBUG,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
    )

def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create async session factory"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

async def init_db(engine: AsyncEngine) -> None:
    """Initialize database (create tables, etc.)"""
    async with engine.begin() as conn:
        # Create all tables
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized successfully")

async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session"""
    session_factory = request.app.state.services.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except AppError:
            await session.rollback()
            raise
        except Exception as e:
            await session.rollback()
            logger.error(f"Database session error: {e}")
            raise
