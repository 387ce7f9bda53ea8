"""Async database manager for Healthy Meals."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Awaitable, Callable

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from healthy_meals.common.config import HealthyMealsSettings, get_settings
from healthy_meals.common.models import Base

# Import all model modules so Base.metadata is complete for create_all().
import healthy_meals.tokens.models  # noqa: F401
import healthy_meals.recipes.models  # noqa: F401

_AFTER_COMMIT_KEY = "after_commit_callbacks"

AfterCommitCallback = Callable[[], Awaitable[None]]


def call_after_commit(session: AsyncSession, callback: AfterCommitCallback) -> None:
    """Run ``callback`` once the session's unit of work has committed.

    Callbacks are dropped when the unit of work rolls back.
    """
    session.info.setdefault(_AFTER_COMMIT_KEY, []).append(callback)


class DatabaseManager:
    """Manages a single async database engine."""

    def __init__(self, settings: HealthyMealsSettings | None = None):
        self._settings = settings or get_settings()
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def init(self) -> None:
        url = self._settings.db_url
        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_async_engine(url, echo=False)
        self._session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not initialized, call init() first")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                session.info.pop(_AFTER_COMMIT_KEY, None)
                await session.rollback()
                raise
            # The write transaction is closed here.
            for callback in session.info.pop(_AFTER_COMMIT_KEY, []):
                await callback()

    async def create_all(self) -> None:
        if self.engine is None:
            raise RuntimeError("DatabaseManager not initialized, call init() first")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self._session_factory = None
