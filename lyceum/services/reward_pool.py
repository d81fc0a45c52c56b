from collections.abc import Mapping, Sequence
from typing import Annotated

from fastapi import Depends
from loguru import logger
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from lyceum.core.db import get_db
from lyceum.core.enums import RarityTier
from lyceum.core.errors import ConfigurationError, ConflictError, NotFoundError
from lyceum.models.reward_pool import RewardPool
from lyceum.schemas.reward_pool import (
    MULTI_PULL_PRICE_FACTOR,
    PityInfo,
    PoolRates,
    RewardPoolCreate,
    RewardPoolUpdate,
)
from lyceum.services.catalog import ContentCatalogService
from lyceum.services.rarity import validate_rates

STANDARD_POOL_ID = "standard"


def standard_pool() -> RewardPool:
    """The pool every installation ships with."""
    return RewardPool(
        id=STANDARD_POOL_ID,
        name="Standard Philosopher Pool",
        cost=1,
        multi_pull_cost=MULTI_PULL_PRICE_FACTOR,
        rates={
            RarityTier.COMMON: 0.60,
            RarityTier.RARE: 0.30,
            RarityTier.EPIC: 0.08,
            RarityTier.LEGENDARY: 0.02,
        },
        pity_threshold=10,
    )


def pool_rates(pool: RewardPool) -> dict[RarityTier, float]:
    return {RarityTier(tier): p for tier, p in pool.rates.items()}


class RewardPoolService:
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db
        self.catalog = ContentCatalogService(db)

    async def get_pool(self, pool_id: str) -> RewardPool:
        """Look up an active pool.

        Raises:
            NotFoundError: If the pool does not exist or is inactive.
        """
        result = await self.db.exec(
            select(RewardPool).where(RewardPool.id == pool_id, col(RewardPool.active))
        )
        pool = result.first()
        if not pool:
            raise NotFoundError(f"Gacha pool '{pool_id}' was not found")
        return pool

    async def list_pools(self) -> Sequence[RewardPool]:
        result = await self.db.exec(
            select(RewardPool).where(col(RewardPool.active)).order_by(col(RewardPool.id))
        )
        return result.all()

    async def get_rates(self, pool_id: str) -> PoolRates:
        pool = await self.get_pool(pool_id)
        return PoolRates(
            pool_id=pool.id,
            rates={tier: round(p * 100, 2) for tier, p in pool_rates(pool).items()},
            single_cost=pool.cost,
            multi_cost=pool.multi_pull_cost,
            pity=PityInfo(
                guaranteed_rare_every=pool.pity_threshold,
                description=(
                    f"Every {pool.pity_threshold}th pull without a rare or better philosopher "
                    "is guaranteed to be rare or better; the last pull of a 10-pull always is."
                ),
            ),
        )

    async def validate_pool_catalog(
        self, rates: Mapping[str, float], featured_item_ids: Sequence[str] = ()
    ) -> None:
        """Check that a rate table can actually be served by the catalog.

        Raises:
            ConfigurationError: If the rates are malformed or a tier with a non-zero
                rate has no items.
            NotFoundError: If a featured item does not exist.
        """
        parsed = validate_rates(rates)
        counts = await self.catalog.count_by_rarity()
        empty = [tier for tier, p in parsed.items() if p > 0 and counts[tier] == 0]
        if empty:
            names = ", ".join(sorted(empty))
            raise ConfigurationError(f"Pool rates reference tiers without items: {names}")

        if featured_item_ids:
            found = await self.catalog.get_items(featured_item_ids)
            missing = [item_id for item_id in featured_item_ids if item_id not in found]
            if missing:
                raise NotFoundError(f"Featured items do not exist: {', '.join(missing)}")

    async def create_pool(self, data: RewardPoolCreate) -> RewardPool:
        existing = await self.db.get(RewardPool, data.id)
        if existing:
            raise ConflictError(f"A gacha pool with id '{data.id}' already exists")

        await self.validate_pool_catalog(data.rates, data.featured_item_ids)

        pool = RewardPool(**data.model_dump(mode="json"))
        self.db.add(pool)
        await self.db.commit()
        await self.db.refresh(pool)
        logger.info(f"Created gacha pool {pool.id}")
        return pool

    async def update_pool(self, pool_id: str, data: RewardPoolUpdate) -> RewardPool:
        pool = await self.db.get(RewardPool, pool_id)
        if not pool:
            raise NotFoundError(f"Gacha pool '{pool_id}' was not found")

        pool_data = data.model_dump(mode="json", exclude_unset=True, exclude_none=True)
        if "cost" in pool_data and "multi_pull_cost" not in pool_data:
            pool_data["multi_pull_cost"] = pool_data["cost"] * MULTI_PULL_PRICE_FACTOR
        await self.validate_pool_catalog(
            pool_data.get("rates", pool.rates),
            pool_data.get("featured_item_ids", pool.featured_item_ids),
        )

        pool.sqlmodel_update(pool_data)
        self.db.add(pool)
        await self.db.commit()
        await self.db.refresh(pool)
        logger.info(f"Updated gacha pool {pool.id}: {sorted(pool_data)}")
        return pool
