import random
import uuid
from collections import Counter
from typing import Annotated

from fastapi import Depends
from loguru import logger
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from lyceum.core.db import get_db
from lyceum.core.enums import PITY_FLOOR, EventType, PullKind
from lyceum.core.errors import (
    ConflictError,
    EmptyRarityPoolError,
    InsufficientCurrencyError,
    LyceumError,
)
from lyceum.core.transactions import compare_and_swap, run_in_transaction
from lyceum.models.draw_history import DrawHistoryEntry
from lyceum.models.event_log import EventLog
from lyceum.models.pull_submission import PullSubmission
from lyceum.models.reward_pool import RewardPool
from lyceum.schemas.gacha import (
    GachaPullOutcome,
    GachaPullResult,
    PullError,
    PullSummary,
    TicketBalance,
)
from lyceum.schemas.reward_pool import MULTI_PULL_COUNT
from lyceum.services.catalog import ContentCatalogService
from lyceum.services.collection import CollectionService
from lyceum.services.history import HistoryLogService
from lyceum.services.rarity import resolve, should_force_pity
from lyceum.services.reward_pool import RewardPoolService, pool_rates
from lyceum.services.user_state import load_user_state, peek_user_state

LOW_TICKET_THRESHOLD = 10


def summarize(pulls: list[GachaPullResult]) -> PullSummary:
    breakdown = Counter(p.rarity for p in pulls)
    return PullSummary(
        total_pulls=len(pulls),
        new_items=sum(p.is_new for p in pulls),
        duplicates=sum(p.is_duplicate for p in pulls),
        rarity_breakdown=dict(breakdown),
        highest_rarity=max(breakdown) if breakdown else None,
    )


def _check_replay(submission: PullSubmission, pool: RewardPool, kind: PullKind) -> None:
    """A submission id can only be replayed for the pool and kind it was paid for.

    Raises:
        ConflictError: If the replay names another pool or pull kind.
    """
    if submission.pool_id != pool.id or submission.kind != kind:
        raise ConflictError(
            f"Submission {submission.submission_id} belongs to a {submission.kind} pull "
            f"from '{submission.pool_id}'"
        )


class GachaService:
    """Pull orchestration: debit, pity, draw, collection and history.

    A single pull is one transaction guarded by a compare-and-swap on the user's
    state row, so two devices racing for the last ticket cannot both win. A
    10-pull debits once, records a ``PullSubmission``, then commits every draw
    on its own; a failure part way keeps the finished draws and the submission
    can be replayed to finish the rest.
    """

    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db
        self.rng = random.Random()
        self.pools = RewardPoolService(db)
        self.catalog = ContentCatalogService(db)
        self.collection = CollectionService(db)
        self.history = HistoryLogService(db)

    async def get_ticket_balance(self, user_id: str) -> TicketBalance:
        state = await peek_user_state(self.db, user_id)
        recommendations = []
        if state.currency_balance < LOW_TICKET_THRESHOLD:
            recommendations = [
                "Complete quizzes to earn tickets",
                "Check your achievements",
                "Daily streaks grant bonus tickets",
            ]
        return TicketBalance(
            current_tickets=state.currency_balance, recommendations=recommendations
        )

    async def grant_tickets(self, user_id: str, amount: int, reason: str) -> int:
        """Add tickets to a user's balance and log the grant.

        Returns:
            The new balance.
        """
        if amount <= 0:
            raise ValueError("Ticket grant must be positive")

        async def work() -> int:
            state = await load_user_state(self.db, user_id)
            balance = state.currency_balance + amount
            await compare_and_swap(self.db, state, currency_balance=balance)
            self.db.add(
                EventLog(
                    user_id=user_id,
                    event_type=EventType.CURRENCY_GRANT,
                    context={"amount": amount, "reason": reason},
                )
            )
            return balance

        balance = await run_in_transaction(self.db, work, description=f"grant {user_id}")
        logger.info(f"Granted {amount} tickets to {user_id} ({reason}), balance {balance}")
        return balance

    async def _get_submission(self, user_id: str, submission_id: str) -> PullSubmission | None:
        result = await self.db.exec(
            select(PullSubmission)
            .where(PullSubmission.user_id == user_id, PullSubmission.submission_id == submission_id)
            .execution_options(populate_existing=True)
        )
        return result.first()

    async def _draw(
        self, user_id: str, pool: RewardPool, *, force_floor: bool, submission_id: str
    ) -> GachaPullResult:
        """One draw inside the caller's transaction.

        Raises:
            EmptyRarityPoolError: If the catalog has no item of the drawn tier.
        """
        pity_counter = await self.history.compute_pity_counter(
            user_id, pool.id, pool.pity_threshold
        )
        was_pity = force_floor or should_force_pity(pity_counter, pool.pity_threshold)
        rarity = resolve(pool_rates(pool), PITY_FLOOR if was_pity else None, self.rng)

        items = await self.catalog.get_items_by_rarity(rarity)
        if not items:
            raise EmptyRarityPoolError(rarity)
        item = self.rng.choice(items)

        is_new = await self.collection.apply_draw(user_id, item)
        self.history.append(
            DrawHistoryEntry(
                user_id=user_id,
                pool_id=pool.id,
                item_id=item.id,
                rarity=rarity,
                was_pity=was_pity,
                was_new=is_new,
                submission_id=submission_id,
            )
        )
        self.db.add(
            EventLog(
                user_id=user_id,
                event_type=EventType.GACHA_PULL,
                context={"item_id": item.id, "pool_id": pool.id, "was_pity": was_pity},
            )
        )
        return GachaPullResult(
            item_id=item.id,
            item_name=item.name,
            school=item.school,
            rarity=rarity,
            is_new=is_new,
            is_duplicate=not is_new,
            was_pity=was_pity,
        )

    async def _recorded_pulls(self, user_id: str, submission_id: str) -> list[GachaPullResult]:
        rows = await self.history.get_submission_draws(user_id, submission_id)
        return [
            GachaPullResult(
                item_id=item.id,
                item_name=item.name,
                school=item.school,
                rarity=entry.rarity,
                is_new=entry.was_new,
                is_duplicate=not entry.was_new,
                was_pity=entry.was_pity,
            )
            for entry, item in rows
        ]

    async def _debit(
        self, user_id: str, pool: RewardPool, kind: PullKind, submission_id: str
    ) -> tuple[PullSubmission, bool]:
        """Debit a bundle and open its submission, unless the submission already exists.

        Returns:
            Tuple of (submission, replayed)
        """
        cost = pool.cost if kind is PullKind.SINGLE else pool.multi_pull_cost
        requested = 1 if kind is PullKind.SINGLE else MULTI_PULL_COUNT

        async def work() -> tuple[PullSubmission, bool]:
            existing = await self._get_submission(user_id, submission_id)
            if existing:
                _check_replay(existing, pool, kind)
                return existing, True

            state = await load_user_state(self.db, user_id)
            if state.currency_balance < cost:
                raise InsufficientCurrencyError(balance=state.currency_balance, required=cost)

            await compare_and_swap(self.db, state, currency_balance=state.currency_balance - cost)
            submission = PullSubmission(
                user_id=user_id,
                submission_id=submission_id,
                pool_id=pool.id,
                kind=kind,
                cost=cost,
                requested_draws=requested,
            )
            self.db.add(submission)
            return submission, False

        return await run_in_transaction(self.db, work, description=f"debit {user_id}/{pool.id}")

    async def pull_single(
        self, user_id: str, pool_id: str, submission_id: str | None = None
    ) -> GachaPullOutcome:
        """Debit, draw and persist one pull in a single transaction."""
        pool = await self.pools.get_pool(pool_id)
        submission_id = submission_id or uuid.uuid4().hex

        async def work() -> GachaPullResult | None:
            existing = await self._get_submission(user_id, submission_id)
            if existing:
                _check_replay(existing, pool, PullKind.SINGLE)
                return None

            state = await load_user_state(self.db, user_id)
            if state.currency_balance < pool.cost:
                raise InsufficientCurrencyError(balance=state.currency_balance, required=pool.cost)

            await compare_and_swap(
                self.db, state, currency_balance=state.currency_balance - pool.cost
            )
            self.db.add(
                PullSubmission(
                    user_id=user_id,
                    submission_id=submission_id,
                    pool_id=pool.id,
                    kind=PullKind.SINGLE,
                    cost=pool.cost,
                    requested_draws=1,
                    completed_draws=1,
                )
            )
            return await self._draw(user_id, pool, force_floor=False, submission_id=submission_id)

        try:
            result = await run_in_transaction(
                self.db, work, description=f"single pull {user_id}/{pool.id}"
            )
        except EmptyRarityPoolError:
            logger.exception(f"Pool {pool.id} cannot be served by the catalog")
            raise

        if result is None:
            logger.info(f"Replayed single pull {submission_id} for {user_id}")
            pulls = await self._recorded_pulls(user_id, submission_id)
            return await self._outcome(
                user_id, pool, PullKind.SINGLE, submission_id, pulls, spent=0, replayed=True
            )

        logger.info(f"{user_id} pulled {result.item_id} ({result.rarity}) from {pool.id}")
        return await self._outcome(
            user_id, pool, PullKind.SINGLE, submission_id, [result], spent=pool.cost
        )

    async def pull_multi(
        self, user_id: str, pool_id: str, submission_id: str | None = None
    ) -> GachaPullOutcome:
        """Ten draws for the bundle price; the last one is always rare or better."""
        pool = await self.pools.get_pool(pool_id)
        submission_id = submission_id or uuid.uuid4().hex

        submission, replayed = await self._debit(user_id, pool, PullKind.MULTI, submission_id)
        pulls = await self._recorded_pulls(user_id, submission_id) if replayed else []
        if replayed and not submission.is_complete:
            logger.info(
                f"Resuming multi pull {submission_id} for {user_id} "
                f"at draw {submission.completed_draws + 1}"
            )

        error: PullError | None = None
        for index in range(submission.completed_draws, submission.requested_draws):
            is_last = index == submission.requested_draws - 1

            async def work(index: int = index, is_last: bool = is_last) -> GachaPullResult:
                current = await self._get_submission(user_id, submission_id)
                if current is None or current.completed_draws != index:
                    # Another request is finishing this submission
                    raise ConflictError

                state = await load_user_state(self.db, user_id)
                # Serialises the pity read with any other pull by this user
                await compare_and_swap(self.db, state)
                await compare_and_swap(self.db, current, completed_draws=index + 1)
                return await self._draw(
                    user_id, pool, force_floor=is_last, submission_id=submission_id
                )

            try:
                pulls.append(
                    await run_in_transaction(
                        self.db, work, description=f"multi pull {submission_id} #{index + 1}"
                    )
                )
            except LyceumError as e:
                if isinstance(e, EmptyRarityPoolError):
                    logger.exception(f"Pool {pool.id} cannot be served by the catalog")
                else:
                    logger.warning(f"Multi pull {submission_id} stopped at draw {index + 1}: {e}")
                error = PullError(kind=e.kind, message=e.message)
                break

        completed = len(pulls)
        if replayed:
            logger.info(f"Replayed multi pull {submission_id} for {user_id}, {completed} draws")
        else:
            logger.info(f"{user_id} finished a {completed}-draw pull from {pool.id}")

        return await self._outcome(
            user_id,
            pool,
            PullKind.MULTI,
            submission_id,
            pulls,
            spent=0 if replayed else submission.cost,
            replayed=replayed,
            requested=submission.requested_draws,
            error=error,
        )

    async def pull(
        self, user_id: str, pool_id: str, kind: PullKind, submission_id: str | None = None
    ) -> GachaPullOutcome:
        if kind is PullKind.MULTI:
            return await self.pull_multi(user_id, pool_id, submission_id)
        return await self.pull_single(user_id, pool_id, submission_id)

    async def _outcome(
        self,
        user_id: str,
        pool: RewardPool,
        kind: PullKind,
        submission_id: str,
        pulls: list[GachaPullResult],
        *,
        spent: int,
        replayed: bool = False,
        requested: int = 1,
        error: PullError | None = None,
    ) -> GachaPullOutcome:
        state = await peek_user_state(self.db, user_id)
        pity = await self.history.compute_pity_counter(user_id, pool.id, pool.pity_threshold)
        return GachaPullOutcome(
            pool_id=pool.id,
            kind=kind,
            submission_id=submission_id,
            pulls=pulls,
            requested=requested,
            completed=len(pulls),
            tickets_spent=spent,
            remaining_currency=state.currency_balance,
            current_pity=pity,
            replayed=replayed,
            error=error,
            summary=summarize(pulls),
        )

