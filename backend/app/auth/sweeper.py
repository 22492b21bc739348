import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.auth.service import purge_expired_sessions

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Periodically deletes expired session rows.

    Purely housekeeping: every request re-checks session expiry itself, so
    the cadence only bounds table growth. Owned by the application lifespan;
    nothing starts at import time.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], interval_seconds: float):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        async with self.session_factory() as db:
            removed = await purge_expired_sessions(db)
            await db.commit()
        if removed:
            logger.info("Purged %d expired session(s)", removed)
        return removed

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Session sweep failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.interval_seconds <= 0 or self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="session-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
