import datetime
from collections.abc import Sequence
from typing import Annotated, Literal

from fastapi import Depends
from sqlmodel import col, desc, func, select
from sqlmodel.ext.asyncio.session import AsyncSession

from lyceum.core.db import get_db
from lyceum.core.enums import RarityTier
from lyceum.models.collectible_item import CollectibleItem
from lyceum.models.draw_history import DrawHistoryEntry
from lyceum.schemas.gacha import DrawHistoryRead, PityStatus, PoolPity, PullStats
from lyceum.services.rarity import meets_pity_floor
from lyceum.services.reward_pool import STANDARD_POOL_ID, RewardPoolService, pool_rates

LUCK_MARGIN = 5.0
"""Percentage points of rare-or-better surplus/deficit before a user counts as (un)lucky"""


def _to_read(entry: DrawHistoryEntry, item: CollectibleItem | None) -> DrawHistoryRead:
    return DrawHistoryRead(
        item_id=entry.item_id,
        item_name=item.name if item else "Unknown Philosopher",
        school=item.school if item else None,
        pool_id=entry.pool_id,
        rarity=entry.rarity,
        timestamp=entry.timestamp,
        was_pity=entry.was_pity,
    )


class HistoryLogService:
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db
        self.pools = RewardPoolService(db)

    def append(self, entry: DrawHistoryEntry) -> None:
        """Stage a draw in the caller's transaction."""
        self.db.add(entry)

    async def compute_pity_counter(self, user_id: str, pool_id: str, pity_threshold: int) -> int:
        """Count the most recent consecutive draws below the pity floor.

        Only the last ``pity_threshold`` draws can matter, so no more are read.
        """
        result = await self.db.exec(
            select(DrawHistoryEntry.rarity)
            .where(DrawHistoryEntry.user_id == user_id, DrawHistoryEntry.pool_id == pool_id)
            .order_by(desc(col(DrawHistoryEntry.timestamp)), desc(col(DrawHistoryEntry.id)))
            .limit(pity_threshold)
        )
        counter = 0
        for rarity in result.all():
            if meets_pity_floor(RarityTier(rarity)):
                break
            counter += 1
        return counter

    async def get_submission_draws(
        self, user_id: str, submission_id: str
    ) -> Sequence[tuple[DrawHistoryEntry, CollectibleItem]]:
        result = await self.db.exec(
            select(DrawHistoryEntry, CollectibleItem)
            .join(CollectibleItem, col(DrawHistoryEntry.item_id) == col(CollectibleItem.id))
            .where(
                DrawHistoryEntry.user_id == user_id,
                DrawHistoryEntry.submission_id == submission_id,
            )
            .order_by(col(DrawHistoryEntry.id))
        )
        return result.all()

    async def get_history(
        self,
        user_id: str,
        *,
        limit: int = 50,
        pool_id: str | None = None,
        rarity: RarityTier | None = None,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
        item_id: str | None = None,
    ) -> list[DrawHistoryRead]:
        """Past draws, newest first."""
        filters = [col(DrawHistoryEntry.user_id) == user_id]
        if pool_id is not None:
            filters.append(col(DrawHistoryEntry.pool_id) == pool_id)
        if rarity is not None:
            filters.append(col(DrawHistoryEntry.rarity) == rarity)
        if start is not None:
            filters.append(col(DrawHistoryEntry.timestamp) >= start)
        if end is not None:
            filters.append(col(DrawHistoryEntry.timestamp) <= end)
        if item_id is not None:
            filters.append(col(DrawHistoryEntry.item_id) == item_id)

        result = await self.db.exec(
            select(DrawHistoryEntry, CollectibleItem)
            .outerjoin(CollectibleItem, col(DrawHistoryEntry.item_id) == col(CollectibleItem.id))
            .where(*filters)
            .order_by(desc(col(DrawHistoryEntry.timestamp)), desc(col(DrawHistoryEntry.id)))
            .limit(limit)
        )
        return [_to_read(entry, item) for entry, item in result.all()]

    async def get_pity_status(self, user_id: str) -> PityStatus:
        pools = await self.pools.list_pools()
        statuses: list[PoolPity] = []
        for pool in pools:
            counter = await self.compute_pity_counter(user_id, pool.id, pool.pity_threshold)
            statuses.append(
                PoolPity(
                    pool_id=pool.id,
                    current_pity=counter,
                    pity_threshold=pool.pity_threshold,
                    pulls_until_guarantee=max(0, pool.pity_threshold - counter),
                )
            )
        return PityStatus(pools=statuses)

    async def get_pull_stats(self, user_id: str, pool_id: str = STANDARD_POOL_ID) -> PullStats:
        pool = await self.pools.get_pool(pool_id)
        base = select(DrawHistoryEntry.rarity, func.count()).where(
            DrawHistoryEntry.user_id == user_id, DrawHistoryEntry.pool_id == pool_id
        )
        result = await self.db.exec(base.group_by(col(DrawHistoryEntry.rarity)))
        breakdown: dict[RarityTier, int] = dict.fromkeys(RarityTier, 0)
        for rarity, count in result.all():
            breakdown[RarityTier(rarity)] = count
        total = sum(breakdown.values())

        unique_result = await self.db.exec(
            select(func.count(func.distinct(DrawHistoryEntry.item_id))).where(
                DrawHistoryEntry.user_id == user_id, DrawHistoryEntry.pool_id == pool_id
            )
        )
        unique_items = unique_result.one()

        last_legendary = await self.get_history(
            user_id, limit=1, pool_id=pool_id, rarity=RarityTier.LEGENDARY
        )

        return PullStats(
            pool_id=pool_id,
            total_pulls=total,
            rarity_breakdown=breakdown,
            unique_items=unique_items,
            last_legendary=last_legendary[0] if last_legendary else None,
            average_rarity=self._average_rarity(breakdown),
            luck_factor=self._luck_factor(breakdown, pool_rates(pool)),
        )

    @staticmethod
    def _average_rarity(breakdown: dict[RarityTier, int]) -> float:
        total = sum(breakdown.values())
        if total == 0:
            return 0
        weighted = sum((tier.rank + 1) * count for tier, count in breakdown.items())
        return round(weighted / total, 2)

    @staticmethod
    def _luck_factor(
        breakdown: dict[RarityTier, int], rates: dict[RarityTier, float]
    ) -> Literal["lucky", "average", "unlucky", "neutral"]:
        total = sum(breakdown.values())
        if total == 0:
            return "neutral"

        score = sum(
            (breakdown[tier] / total - rates.get(tier, 0)) * 100
            for tier in RarityTier
            if meets_pity_floor(tier)
        )
        if score > LUCK_MARGIN:
            return "lucky"
        if score < -LUCK_MARGIN:
            return "unlucky"
        return "average"
