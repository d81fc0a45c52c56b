import asyncio
import uuid

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from lyceum.core.config import settings
from lyceum.core.db import session_factory
from lyceum.core.errors import LyceumError
from lyceum.schemas.progression import ProgressionUpdate, ProgressionUpdateResult
from lyceum.services.progression import ProgressionService


class ProgressionOutbox:
    """Queue of progression updates, applied in batches per user.

    Updates for the same user are coalesced into one transaction on flush.
    The queue holds at most ``max_users`` users; updates for further users are
    applied straight away. A background task flushes on an interval and the
    application flushes once more on shutdown.
    """

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        *,
        max_users: int | None = None,
        interval: float | None = None,
    ) -> None:
        self.sessions = sessions
        self.max_users = max_users or settings.outbox_max_users
        self.interval = interval or settings.outbox_flush_interval_seconds
        self._pending: dict[str, list[ProgressionUpdate]] = {}
        self._task: asyncio.Task[None] | None = None

    @property
    def pending_users(self) -> int:
        return len(self._pending)

    def pending_for(self, user_id: str) -> list[ProgressionUpdate]:
        return list(self._pending.get(user_id, []))

    async def enqueue(self, user_id: str, update: ProgressionUpdate) -> ProgressionUpdateResult:
        if user_id not in self._pending and len(self._pending) >= self.max_users:
            logger.debug(f"Outbox full ({self.max_users} users), applying {user_id} directly")
            async with self.sessions() as db:
                return await ProgressionService(db).apply_update(user_id, update)

        # Queued updates are retried, so each one needs a receipt key
        if not update.submission_id:
            update = update.model_copy(update={"submission_id": f"outbox-{uuid.uuid4().hex}"})
        self._pending.setdefault(user_id, []).append(update)
        return ProgressionUpdateResult(applied=False, queued=True)

    async def flush(self) -> int:
        """Apply every queued update.

        Users are taken off the queue one at a time. A user whose batch fails,
        or is interrupted, goes back on the queue ahead of anything queued since.

        Returns:
            Number of users whose updates were applied.
        """
        flushed = 0
        for user_id in list(self._pending):
            updates = self._pending.pop(user_id, [])
            if not updates:
                continue

            applied = False
            try:
                async with self.sessions() as db:
                    await ProgressionService(db).apply_updates(user_id, updates)
                applied = True
            except (LyceumError, SQLAlchemyError):
                logger.exception(f"Failed to flush {len(updates)} progression updates for {user_id}")
            finally:
                if applied:
                    flushed += 1
                else:
                    self._pending[user_id] = updates + self._pending.get(user_id, [])

        if flushed:
            logger.info(f"Flushed progression updates for {flushed} users")
        return flushed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.flush()
            except Exception:
                logger.exception("Progression outbox flush failed")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel the background flush and apply whatever is still queued."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.flush()


outbox = ProgressionOutbox(session_factory)


def get_outbox() -> ProgressionOutbox:
    return outbox
