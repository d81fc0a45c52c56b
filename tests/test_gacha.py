"""
Tests for the pull orchestrator.

Covers debits, pity, duplicates, idempotent replays and concurrent pulls.
"""

import asyncio
import random

import pytest
from sqlmodel import func, select

from lyceum.core.enums import PullKind, RarityTier
from lyceum.core.errors import (
    ConflictError,
    EmptyRarityPoolError,
    InsufficientCurrencyError,
    NotFoundError,
)
from lyceum.models.collectible_item import CollectibleItem
from lyceum.models.draw_history import DrawHistoryEntry
from lyceum.models.reward_pool import RewardPool
from lyceum.services.gacha import GachaService
from lyceum.services.reward_pool import STANDARD_POOL_ID
from lyceum.services.user_state import peek_user_state

USER = "user-1"


async def balance_of(db, user_id: str = USER) -> int:
    state = await peek_user_state(db, user_id)
    return state.currency_balance


async def history_count(db, user_id: str = USER) -> int:
    result = await db.exec(
        select(func.count()).select_from(DrawHistoryEntry).where(DrawHistoryEntry.user_id == user_id)
    )
    return result.one()


class TestSinglePull:
    @pytest.mark.asyncio
    async def test_balance_of_one(self, db, gacha):
        await gacha.grant_tickets(USER, 1, "test")

        outcome = await gacha.pull_single(USER, STANDARD_POOL_ID)
        assert outcome.completed == 1
        assert outcome.tickets_spent == 1
        assert outcome.remaining_currency == 0

        with pytest.raises(InsufficientCurrencyError) as exc_info:
            await gacha.pull_single(USER, STANDARD_POOL_ID)
        assert exc_info.value.context == {"balance": 0, "required": 1}
        assert await balance_of(db) == 0
        assert await history_count(db) == 1

    @pytest.mark.asyncio
    async def test_new_user_cannot_pull(self, db, gacha):
        with pytest.raises(InsufficientCurrencyError):
            await gacha.pull_single("nobody", STANDARD_POOL_ID)
        assert await history_count(db, "nobody") == 0

    @pytest.mark.asyncio
    async def test_unknown_pool(self, gacha):
        await gacha.grant_tickets(USER, 5, "test")
        with pytest.raises(NotFoundError):
            await gacha.pull_single(USER, "missing")

    @pytest.mark.asyncio
    async def test_currency_conservation(self, db, gacha):
        await gacha.grant_tickets(USER, 20, "test")

        for _ in range(5):
            await gacha.pull_single(USER, STANDARD_POOL_ID)
        await gacha.pull_multi(USER, STANDARD_POOL_ID)

        assert await balance_of(db) == 20 - 5 - 9
        assert await history_count(db) == 15

        with pytest.raises(InsufficientCurrencyError):
            await gacha.pull_multi(USER, STANDARD_POOL_ID)
        assert await balance_of(db) == 6
        assert await history_count(db) == 15

    @pytest.mark.asyncio
    async def test_pity_forces_tenth_draw(self, gacha, commons_pool):
        await gacha.grant_tickets(USER, 11, "test")

        results = [(await gacha.pull_single(USER, commons_pool.id)).pulls[0] for _ in range(11)]

        assert all(r.rarity == RarityTier.COMMON and not r.was_pity for r in results[:9])
        assert results[9].rarity >= RarityTier.RARE
        assert results[9].was_pity
        assert results[10].rarity == RarityTier.COMMON

    @pytest.mark.asyncio
    async def test_no_sub_rare_run_reaches_threshold(self, gacha):
        await gacha.grant_tickets(USER, 80, "test")
        history = []
        for _ in range(80):
            history.extend((await gacha.pull_single(USER, STANDARD_POOL_ID)).pulls)

        run = 0
        for pull in history:
            run = 0 if pull.rarity >= RarityTier.RARE else run + 1
            assert run < 10

    @pytest.mark.asyncio
    async def test_current_pity_reported(self, gacha, commons_pool):
        await gacha.grant_tickets(USER, 3, "test")
        for _ in range(3):
            outcome = await gacha.pull_single(USER, commons_pool.id)
        assert outcome.current_pity == 3


class TestMultiPull:
    @pytest.mark.asyncio
    async def test_every_ten_pull_has_rare_or_better(self, gacha, commons_pool):
        await gacha.grant_tickets(USER, 27, "test")

        for _ in range(3):
            outcome = await gacha.pull_multi(USER, commons_pool.id)
            assert outcome.completed == 10
            assert outcome.error is None
            assert outcome.pulls[-1].rarity >= RarityTier.RARE
            assert outcome.summary.highest_rarity >= RarityTier.RARE

        assert outcome.remaining_currency == 0

    @pytest.mark.asyncio
    async def test_pity_counts_across_bundles(self, gacha, commons_pool):
        await gacha.grant_tickets(USER, 14, "test")
        for _ in range(5):
            await gacha.pull_single(USER, commons_pool.id)

        outcome = await gacha.pull_multi(USER, commons_pool.id)

        # Five commons already banked: the fifth draw of the bundle is the tenth in a row
        assert outcome.pulls[4].was_pity
        assert outcome.pulls[4].rarity >= RarityTier.RARE
        assert outcome.pulls[9].was_pity

    @pytest.mark.asyncio
    async def test_summary_counts_new_and_duplicates(self, gacha):
        await gacha.grant_tickets(USER, 9, "test")

        outcome = await gacha.pull_multi(USER, STANDARD_POOL_ID)

        summary = outcome.summary
        assert summary.total_pulls == 10
        assert summary.new_items + summary.duplicates == 10
        assert sum(summary.rarity_breakdown.values()) == 10
        assert summary.new_items == len({p.item_id for p in outcome.pulls})


class TestReplay:
    @pytest.mark.asyncio
    async def test_single_replay_does_not_debit(self, db, gacha):
        await gacha.grant_tickets(USER, 5, "test")

        first = await gacha.pull(USER, STANDARD_POOL_ID, PullKind.SINGLE, "sub-1")
        second = await gacha.pull(USER, STANDARD_POOL_ID, PullKind.SINGLE, "sub-1")

        assert not first.replayed
        assert second.replayed
        assert second.tickets_spent == 0
        assert [p.item_id for p in second.pulls] == [p.item_id for p in first.pulls]
        assert await balance_of(db) == 4
        assert await history_count(db) == 1

    @pytest.mark.asyncio
    async def test_multi_replay_does_not_debit(self, db, gacha):
        await gacha.grant_tickets(USER, 18, "test")

        first = await gacha.pull(USER, STANDARD_POOL_ID, PullKind.MULTI, "bundle-1")
        second = await gacha.pull(USER, STANDARD_POOL_ID, PullKind.MULTI, "bundle-1")

        assert second.replayed
        assert second.completed == 10
        assert [p.item_id for p in second.pulls] == [p.item_id for p in first.pulls]
        assert await balance_of(db) == 9
        assert await history_count(db) == 10

    @pytest.mark.asyncio
    async def test_partial_bundle_resumes_after_fix(self, db, gacha):
        # Commons only and no pity mid-bundle, while the catalog has no rare to serve
        # the guaranteed last draw
        rare_items = (
            await db.exec(select(CollectibleItem).where(CollectibleItem.rarity == RarityTier.RARE))
        ).all()
        rare_id = rare_items[0].id
        for item in rare_items:
            item.rarity = RarityTier.EPIC
            db.add(item)
        db.add(
            RewardPool(
                id="broken",
                name="Broken",
                multi_pull_cost=9,
                rates={"common": 1.0, "rare": 0.0, "epic": 0.0, "legendary": 0.0},
                pity_threshold=50,
            )
        )
        await db.commit()
        await gacha.grant_tickets(USER, 9, "test")

        partial = await gacha.pull_multi(USER, "broken", "bundle-2")

        assert partial.requested == 10
        assert partial.completed == 9
        assert partial.error is not None
        assert partial.error.kind == "configuration_error"
        assert await balance_of(db) == 0

        item = await db.get(CollectibleItem, rare_id)
        item.rarity = RarityTier.RARE
        db.add(item)
        await db.commit()

        resumed = await gacha.pull_multi(USER, "broken", "bundle-2")

        assert resumed.replayed
        assert resumed.completed == 10
        assert resumed.error is None
        assert resumed.pulls[-1].rarity == RarityTier.RARE
        assert await balance_of(db) == 0
        assert await history_count(db) == 10

    @pytest.mark.asyncio
    async def test_replay_against_another_pool_is_rejected(self, db, gacha, commons_pool):
        for item in (
            await db.exec(select(CollectibleItem).where(CollectibleItem.rarity == RarityTier.RARE))
        ).all():
            item.rarity = RarityTier.EPIC
            db.add(item)
        await db.commit()
        await gacha.grant_tickets(USER, 9, "test")

        partial = await gacha.pull_multi(USER, commons_pool.id, "bundle-3")
        assert partial.completed == 9

        with pytest.raises(ConflictError):
            await gacha.pull_multi(USER, STANDARD_POOL_ID, "bundle-3")
        with pytest.raises(ConflictError):
            await gacha.pull_single(USER, commons_pool.id, "bundle-3")

        assert await balance_of(db) == 0
        assert await history_count(db) == 9
        draws = (
            await db.exec(
                select(DrawHistoryEntry).where(DrawHistoryEntry.pool_id == STANDARD_POOL_ID)
            )
        ).all()
        assert draws == []

    @pytest.mark.asyncio
    async def test_single_pull_with_empty_tier_keeps_balance(self, db, gacha):
        for item in (await db.exec(select(CollectibleItem))).all():
            await db.delete(item)
        await db.commit()
        await gacha.grant_tickets(USER, 1, "test")

        with pytest.raises(EmptyRarityPoolError):
            await gacha.pull_single(USER, STANDARD_POOL_ID)
        assert await balance_of(db) == 1


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_two_devices_race_for_last_ticket(self, sessions, gacha):
        await gacha.grant_tickets(USER, 1, "test")

        async def pull_from_device(seed: int):
            async with sessions() as session:
                service = GachaService(session)
                service.rng = random.Random(seed)
                return await service.pull_single(USER, STANDARD_POOL_ID)

        results = await asyncio.gather(
            pull_from_device(1), pull_from_device(2), return_exceptions=True
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientCurrencyError)

        async with sessions() as session:
            assert await balance_of(session) == 0
            assert await history_count(session) == 1


class TestTickets:
    @pytest.mark.asyncio
    async def test_grant_and_balance(self, gacha):
        balance = await gacha.grant_tickets(USER, 12, "welcome")
        assert balance == 12

        tickets = await gacha.get_ticket_balance(USER)
        assert tickets.current_tickets == 12
        assert tickets.recommendations == []

    @pytest.mark.asyncio
    async def test_low_balance_recommendations(self, gacha):
        tickets = await gacha.get_ticket_balance("new-user")
        assert tickets.current_tickets == 0
        assert tickets.recommendations

    @pytest.mark.asyncio
    async def test_grant_must_be_positive(self, gacha):
        with pytest.raises(ValueError):
            await gacha.grant_tickets(USER, 0, "nothing")
