"""
Database connection and session management for Identity Reconciliation API
This module sets up the async SQLAlchemy engine and transactional sessions.
Supports local SQLite, PostgreSQL and AWS RDS deployments with connection
pooling, serializable transactions and error handling.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import event, func, select, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from config import settings
from models import Base, Contact

# Configure logging
logger = logging.getLogger(__name__)


def _hide_credentials(url: str) -> str:
    if "@" not in url:
        return url
    return f"{url.split('@')[0].split('://')[0]}://[HIDDEN]@{url.split('@', 1)[1]}"


def _enable_immediate_transactions(engine: AsyncEngine):
    """
    Make every SQLite transaction start with BEGIN IMMEDIATE
    The driver's own deferred BEGIN would let two requests read the same
    empty state before either takes the write lock
    """
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        # stop the driver from emitting its own BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_database_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Create database engine with appropriate settings for environment"""
    database_url = database_url or settings.get_active_database_url()

    if settings.is_sqlite_url(database_url):
        engine = create_async_engine(
            database_url,
            echo=settings.DEBUG,
            connect_args={"timeout": settings.SQLITE_BUSY_TIMEOUT},
        )
        _enable_immediate_transactions(engine)
        return engine

    if settings.is_lambda_environment():
        # Lambda-optimized settings for RDS Proxy
        return create_async_engine(
            database_url,
            echo=settings.DEBUG,
            isolation_level=settings.DB_ISOLATION_LEVEL,
            pool_pre_ping=True,
            pool_size=1,
            max_overflow=0,
            pool_recycle=3600,
            pool_timeout=10,
            connect_args={
                "command_timeout": 10,
                "server_settings": {
                    "application_name": "identity-reconciliation-lambda",
                }
            }
        )

    return create_async_engine(
        database_url,
        echo=settings.DEBUG,
        isolation_level=settings.DB_ISOLATION_LEVEL,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        connect_args={
            "server_settings": {
                "application_name": "identity-reconciliation",
            }
        }
    )


class DatabaseManager:
    """
    Database connection manager that handles the async engine,
    session creation, and connection lifecycle management
    The engine is created lazily on first use
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            url = self.database_url or settings.get_active_database_url()
            logger.info(f"Initializing database connection to: {_hide_credentials(url)}")
            self._engine = create_database_engine(url)
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker:
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,  # loaded contacts stay readable after commit
                autoflush=False
            )
        return self._session_factory

    async def create_tables(self):
        """Create all database tables defined in models"""
        logger.info("Creating database tables...")
        async with self.engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    async def test_connection(self) -> bool:
        """Test database connection"""
        try:
            async with self.engine.connect() as connection:
                await connection.execute(text("SELECT 1"))
            logger.info("Database connection test successful")
            return True
        except Exception as e:
            logger.error(f"Database connection test failed: {e}")
            return False

    async def count_contacts(self) -> int:
        async with self.get_session() as session:
            result = await session.execute(
                select(func.count()).select_from(Contact).where(Contact.deleted_at.is_(None))
            )
            return result.scalar_one()

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """
        Context manager for one transactional unit of work
        Commits on clean exit, rolls back everything on any exception
        Usage:
            async with db_manager.get_session() as session:
                # database operations
        """
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.debug(f"Database session rolled back: {e!r}")
            raise
        finally:
            await session.close()

    async def dispose(self):
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

# Global database manager instance
db_manager = DatabaseManager()
