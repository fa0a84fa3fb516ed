"""
crudkit — Database Handle
===========================

What:  Async SQLAlchemy engine, session factory and declarative base, owned by
       an explicit `Database` object instead of module-level globals.
How:   The bootstrap creates one Database per process and hands it to every
       ResourceController through its constructor. `connect()` builds the
       engine, probes it with SELECT 1 under a deadline and retries transient
       failures with tenacity before declaring the failure terminal.
Who:   ServiceBootstrap (lifecycle), ResourceController (sessions), tests.
When:  Connected once at startup; sessions are opened per request.

Connection Lifecycle:
    Database(url) ──connect()──▶ engine + session factory ──dispose()──▶ closed
                       │
                       ├── URL missing          → ServiceUnavailableError(reason="unconfigured")
                       ├── probe > timeout      → ServiceUnavailableError(reason="timeout")
                       └── connection refused   → ServiceUnavailableError(reason="unreachable")
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from crudkit.config import Settings, settings
from crudkit.exceptions import ServiceUnavailableError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Alembic reads `Base.metadata` for autogenerate; `Database.create_all()`
    uses it to build the schema in tests and local development.
    """
    pass


class Database:
    """
    Process-wide connection handle.

    Attributes:
        url:              Async SQLAlchemy URL (None → cannot connect)
        engine:           AsyncEngine once connected
        session_factory:  async_sessionmaker bound to the engine
    """

    def __init__(
        self,
        url: Optional[str],
        *,
        pool_size: int = 10,
        max_overflow: int = 10,
        pool_pre_ping: bool = True,
        connect_timeout: float = 5.0,
        connect_attempts: int = 3,
        retry_min_wait: float = 1.0,
        retry_max_wait: float = 5.0,
        echo: bool = False,
    ):
        self.url = url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.pool_pre_ping = pool_pre_ping
        self.connect_timeout = connect_timeout
        self.connect_attempts = connect_attempts
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "Database":
        return cls(
            config.resolved_database_url,
            pool_size=config.db_pool_size,
            max_overflow=config.db_max_overflow,
            pool_pre_ping=config.db_pool_pre_ping,
            connect_timeout=config.db_connect_timeout,
            connect_attempts=config.db_connect_attempts,
            retry_min_wait=config.db_retry_min_wait,
            retry_max_wait=config.db_retry_max_wait,
            echo=config.effective_log_level == "DEBUG" and not config.is_test,
        )

    @property
    def is_connected(self) -> bool:
        return self.engine is not None

    def _engine_options(self) -> dict:
        options = {"echo": self.echo, "pool_pre_ping": self.pool_pre_ping}
        if self.url and self.url.startswith("sqlite"):
            # SQLite has no server to select and no meaningful pool sizing
            return options
        options.update(
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
            pool_recycle=3600,
        )
        if "asyncpg" in (self.url or ""):
            options["connect_args"] = {"timeout": self.connect_timeout}
        return options

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def connect(self) -> "Database":
        """
        Establish the engine and verify the server answers.

        Idempotent: a connected handle is returned unchanged.

        Raises:
            ServiceUnavailableError: URL missing, or every attempt failed
        """
        if self.engine is not None:
            return self

        if not self.url:
            raise ServiceUnavailableError(
                message="DATABASE_URL is not set",
                reason="unconfigured",
            )

        try:
            engine = create_async_engine(self.url, **self._engine_options())
        except (SQLAlchemyError, ImportError, ValueError) as e:
            raise ServiceUnavailableError(
                message=f"Invalid database URL: {e}",
                reason="unconfigured",
            ) from e

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(ServiceUnavailableError),
            stop=stop_after_attempt(self.connect_attempts),
            wait=wait_exponential_jitter(
                initial=self.retry_min_wait,
                max=self.retry_max_wait,
                jitter=1,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self._probe(engine, self.connect_timeout)
        except ServiceUnavailableError:
            await engine.dispose()
            raise

        self.engine = engine
        self.session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info("Database connected (%s)", engine.url.render_as_string(hide_password=True))
        return self

    @staticmethod
    async def _probe(engine: AsyncEngine, timeout: float) -> None:
        async def select_one() -> None:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))

        try:
            await asyncio.wait_for(select_one(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ServiceUnavailableError(
                message=f"Database did not respond within {timeout:g}s",
                reason="timeout",
            ) from e
        except (OSError, SQLAlchemyError) as e:
            raise ServiceUnavailableError(
                message="Database is unreachable",
                reason="unreachable",
                context={"error": str(e)},
            ) from e

    async def create_all(self) -> None:
        """Create every table registered on Base.metadata (tests, local dev)."""
        if self.engine is None:
            raise ServiceUnavailableError(message="Database is not connected")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        """Close all pooled connections; the handle can be connected again."""
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Database connections closed")
        self.engine = None
        self.session_factory = None

    # ── Sessions ──────────────────────────────────────────────────────────

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Unit of work: commit on success, roll back on any error, always close.

        Example:
            async with database.session() as session:
                await controller.create(session, payload, principal)
        """
        if self.session_factory is None:
            raise ServiceUnavailableError(message="Database is not connected")
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
