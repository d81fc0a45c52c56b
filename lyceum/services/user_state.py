from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from lyceum.models.user_progression import UserProgressionState


async def load_user_state(db: AsyncSession, user_id: str) -> UserProgressionState:
    """Read the latest committed state for a user, creating it on first use.

    Meant to be called inside ``run_in_transaction``: the row is re-read from the
    database even if the session already holds it, and a freshly created row is
    flushed so a compare-and-swap in the same transaction can match it. Two
    first-time writers racing on the insert surface as an IntegrityError, which
    the transaction runner retries.
    """
    result = await db.exec(
        select(UserProgressionState)
        .where(UserProgressionState.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    state = result.first()
    if state is None:
        state = UserProgressionState(user_id=user_id)
        db.add(state)
        await db.flush()
    return state


async def peek_user_state(db: AsyncSession, user_id: str) -> UserProgressionState:
    """Read-only view; unknown users get default values without a row being written."""
    result = await db.exec(
        select(UserProgressionState)
        .where(UserProgressionState.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.first() or UserProgressionState(user_id=user_id)
