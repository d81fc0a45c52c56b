import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger
from sqlalchemy import inspect as sa_inspect
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from lyceum.core.config import settings
from lyceum.core.errors import ConflictError


async def compare_and_swap(db: AsyncSession, row: SQLModel, **values: Any) -> None:
    """Write ``values`` to ``row`` only if nobody changed it since it was read.

    The row's ``version`` column is the comparison token; a successful swap bumps
    it. Zero matched rows means a concurrent writer won and raises StaleDataError,
    which ``run_in_transaction`` treats as a retryable conflict.
    """
    model = type(row)
    state = sa_inspect(row)
    expected_version: int = row.version  # pyright: ignore[reportAttributeAccessIssue]

    stmt = update(model).values(version=expected_version + 1, **values)
    for column, key in zip(state.mapper.primary_key, state.identity or (), strict=True):
        stmt = stmt.where(column == key)
    stmt = stmt.where(model.version == expected_version)  # pyright: ignore[reportAttributeAccessIssue]

    result = await db.exec(stmt)  # pyright: ignore[reportCallIssue, reportArgumentType]
    if result.rowcount != 1:  # pyright: ignore[reportAttributeAccessIssue]
        msg = f"{model.__name__} {state.identity} changed since version {expected_version}"
        raise StaleDataError(msg)


def _backoff_delay(attempt: int) -> float:
    delay = min(settings.tx_backoff_max_seconds, settings.tx_backoff_base_seconds * 2 ** attempt)
    return delay * random.uniform(0.5, 1.0)


async def run_in_transaction[T](
    db: AsyncSession, work: Callable[[], Awaitable[T]], *, description: str
) -> T:
    """Run ``work`` and commit, re-running it from a fresh read on conflicts.

    ``work`` must read everything it depends on itself, so that a retry recomputes
    from the latest committed state instead of overwriting it.

    Raises:
        ConflictError: If every attempt lost a race.
    """
    attempts = settings.tx_max_attempts
    for attempt in range(attempts):
        try:
            result = await work()
            await db.commit()
        except (StaleDataError, IntegrityError) as e:
            await db.rollback()
            logger.debug(f"{description}: conflict on attempt {attempt + 1}/{attempts}: {e}")
            if attempt + 1 < attempts:
                await asyncio.sleep(_backoff_delay(attempt))
        except Exception:
            await db.rollback()
            raise
        else:
            return result

    logger.warning(f"{description}: giving up after {attempts} conflicting attempts")
    raise ConflictError
