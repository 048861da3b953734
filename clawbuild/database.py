"""Database handle with async support.

One ``Database`` is constructed at process start and handed to every
component that needs storage. Each logical step opens its own unit of work
so that a committed step (e.g. an approval) is never undone by a later one.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clawbuild.exceptions import ConfigurationError
from clawbuild.logging_config import get_logger
from clawbuild.models import Base

logger = get_logger(__name__)


def normalize_database_url(url: str) -> str:
    """Map plain PostgreSQL URLs onto the asyncpg driver."""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif url.startswith("postgresql://") and "+asyncpg" not in url:
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """Make SQLite take the write lock at BEGIN so concurrent writers queue up."""

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Engine plus session factory for one database."""

    def __init__(
        self,
        url: str | None,
        echo: bool = False,
        pool_size: int = 10,
        max_overflow: int = 20,
    ):
        if not url:
            raise ConfigurationError("A database URL is required")
        self.url = normalize_database_url(url)

        if self.url.startswith("sqlite"):
            self.engine = create_async_engine(
                self.url,
                echo=echo,
                connect_args={"timeout": 30},
            )
            _use_immediate_transactions(self.engine)
        else:
            self.engine = create_async_engine(
                self.url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,
                pool_recycle=3600,
            )

        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("database_engine_created", dialect=self.engine.dialect.name)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    async def verify(self) -> None:
        """Verify connectivity at startup."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            logger.info("database_connection_verified")
        except Exception as e:
            logger.error("database_connection_failed", error=str(e))
            raise

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_schema_created")

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("database_connections_closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Read-mostly session; callers commit explicitly if they write."""
        session = self.session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncGenerator[AsyncSession, None]:
        """Session inside one transaction, committed on clean exit."""
        async with self.session_factory() as session:
            async with session.begin():
                yield session
