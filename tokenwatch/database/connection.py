from typing import Optional, AsyncGenerator, Any
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    AsyncEngine,
    async_sessionmaker
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import text
from contextlib import asynccontextmanager

from tokenwatch.core.config import DatabaseConfig
from tokenwatch.core.enums import IsolationLevel
from tokenwatch.database.models import tokenwatch_metadata
from tokenwatch.utils.logger import LoggerSetup

class DatabaseConnection:
    """
    Database connection manager.
    Owns the async engine, creates the projection tables and hands out
    transactional sessions.
    """
    def __init__(self, config: DatabaseConfig):
        self.url = config.url
        self.dialect = config.dialect
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._engine_options = config.get_engine_options()

        self.logger = LoggerSetup.setup(__class__.__name__)

    async def initialize(self) -> None:
        """Create the engine and make sure the schema exists"""
        if self.engine is None:
            self.engine = create_async_engine(self.url, **self._engine_options)

            self.session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(tokenwatch_metadata.create_all)

            self.logger.info(f"Database initialized ({self.dialect})")

    async def close(self) -> None:
        """Close database connection and cleanup"""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None

    @asynccontextmanager
    async def session(self, isolation_level: IsolationLevel | None = None) -> AsyncGenerator[AsyncSession, None]:
        """
        Get a session wrapped in a single transaction.
        Commits when the block exits cleanly, rolls back on any exception.

        Args:
            isolation_level: Optional transaction isolation level (PostgreSQL only)

        Raises:
            SQLAlchemyError: If database is not initialized
        """
        if not self.session_factory:
            raise SQLAlchemyError("Database not initialized")

        session = self.session_factory()
        try:
            if isolation_level and self.dialect == "postgresql":
                await session.execute(text(f"SET TRANSACTION ISOLATION LEVEL {isolation_level.value}"))

            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def check_health(self) -> dict[str, Any]:
        """
        Basic connectivity check.

        Returns:
            dict: ``connection_ok`` plus the dialect, or the error message
        """
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
                return {
                    "connection_ok": True,
                    "dialect": self.dialect
                }
        except Exception as e:
            return {
                "connection_ok": False,
                "error": str(e),
                "dialect": self.dialect
            }
