import math
from collections.abc import Mapping
from typing import Annotated

from fastapi import Depends
from loguru import logger
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from lyceum.core.db import get_db
from lyceum.core.enums import CollectionSort, EventType, RarityTier
from lyceum.core.errors import NoDuplicatesAvailableError, NotFoundError
from lyceum.core.transactions import compare_and_swap, run_in_transaction
from lyceum.models.collectible_item import CollectibleItem
from lyceum.models.event_log import EventLog
from lyceum.models.owned_item import OwnedItem
from lyceum.schemas.collection import (
    CollectionResponse,
    CollectionStats,
    ItemEnhanceResult,
    ItemLevelUpResult,
    OwnedItemRead,
)
from lyceum.services.catalog import ContentCatalogService

MAX_ITEM_LEVEL = 50
EXPERIENCE_PER_LEVEL = 100
LEVEL_STAT_BONUS = 0.05
"""+5% base stats per level above 1"""
DUPLICATE_STAT_BONUS = 0.1
"""+10% base stats per unspent duplicate"""
DUPLICATE_ENHANCE_EXPERIENCE = 150


def stat_multiplier(level: int, duplicate_count: int) -> float:
    return 1 + (level - 1) * LEVEL_STAT_BONUS + duplicate_count * DUPLICATE_STAT_BONUS


def compute_enhanced_attributes(
    base_attributes: Mapping[str, float], level: int, duplicate_count: int
) -> dict[str, int]:
    multiplier = stat_multiplier(level, duplicate_count)
    # Half up, so 10.5 becomes 11 rather than banker's rounding to 10
    return {name: math.floor(value * multiplier + 0.5) for name, value in base_attributes.items()}


def apply_item_experience(level: int, experience: int, amount: int) -> tuple[int, int, bool]:
    """Add experience to an owned item and promote it.

    Each promotion costs ``level * 100`` experience. At the level cap the excess
    is discarded rather than banked.

    Returns:
        Tuple of (level, experience, capped)
    """
    experience += amount
    while level < MAX_ITEM_LEVEL and experience >= level * EXPERIENCE_PER_LEVEL:
        experience -= level * EXPERIENCE_PER_LEVEL
        level += 1

    if level >= MAX_ITEM_LEVEL:
        return MAX_ITEM_LEVEL, 0, True
    return level, experience, False


class CollectionService:
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db
        self.catalog = ContentCatalogService(db)

    async def _get_owned(self, user_id: str, item_id: str) -> OwnedItem | None:
        result = await self.db.exec(
            select(OwnedItem)
            .where(OwnedItem.user_id == user_id, OwnedItem.item_id == item_id)
            .execution_options(populate_existing=True)
        )
        return result.first()

    async def _require_owned(self, user_id: str, item_id: str) -> tuple[OwnedItem, CollectibleItem]:
        owned = await self._get_owned(user_id, item_id)
        item = await self.catalog.get_item(item_id)
        if not owned or not item:
            raise NotFoundError("You don't own this philosopher")
        return owned, item

    async def apply_draw(self, user_id: str, item: CollectibleItem) -> bool:
        """Record a drawn item in the user's collection.

        Runs inside the caller's transaction and does not commit.

        Returns:
            True if the item was not owned before.
        """
        owned = await self._get_owned(user_id, item.id)
        if owned is None:
            self.db.add(
                OwnedItem(
                    user_id=user_id,
                    item_id=item.id,
                    enhanced_attributes=compute_enhanced_attributes(item.base_attributes, 1, 0),
                )
            )
            return True

        duplicate_count = owned.duplicate_count + 1
        await compare_and_swap(
            self.db,
            owned,
            duplicate_count=duplicate_count,
            enhanced_attributes=compute_enhanced_attributes(
                item.base_attributes, owned.level, duplicate_count
            ),
        )
        return False

    async def add_experience(self, user_id: str, item_id: str, amount: int) -> ItemLevelUpResult:
        """Level up an owned philosopher with experience."""
        if amount < 0:
            raise ValueError("Experience amount must not be negative")

        async def work() -> ItemLevelUpResult:
            owned, item = await self._require_owned(user_id, item_id)
            previous_level = owned.level
            level, experience, capped = apply_item_experience(owned.level, owned.experience, amount)
            attributes = compute_enhanced_attributes(
                item.base_attributes, level, owned.duplicate_count
            )
            await compare_and_swap(
                self.db, owned, level=level, experience=experience, enhanced_attributes=attributes
            )
            self.db.add(
                EventLog(
                    user_id=user_id,
                    event_type=EventType.ITEM_LEVEL_UP,
                    context={"item_id": item_id, "from": previous_level, "to": level},
                )
            )
            return ItemLevelUpResult(
                item_id=item_id,
                previous_level=previous_level,
                new_level=level,
                levels_gained=level - previous_level,
                experience_added=amount,
                new_experience=experience,
                capped=capped,
                enhanced_attributes=attributes,
                stat_multiplier=round(stat_multiplier(level, owned.duplicate_count), 2),
            )

        return await run_in_transaction(self.db, work, description=f"item xp {user_id}/{item_id}")

    async def consume_duplicate(self, user_id: str, item_id: str) -> ItemEnhanceResult:
        """Spend one duplicate for a flat experience bonus.

        Raises:
            NoDuplicatesAvailableError: If the item has no duplicates.
        """

        async def work() -> ItemEnhanceResult:
            owned, item = await self._require_owned(user_id, item_id)
            if owned.duplicate_count < 1:
                raise NoDuplicatesAvailableError

            duplicate_count = owned.duplicate_count - 1
            level, experience, capped = apply_item_experience(
                owned.level, owned.experience, DUPLICATE_ENHANCE_EXPERIENCE
            )
            attributes = compute_enhanced_attributes(item.base_attributes, level, duplicate_count)
            await compare_and_swap(
                self.db,
                owned,
                duplicate_count=duplicate_count,
                level=level,
                experience=experience,
                enhanced_attributes=attributes,
            )
            self.db.add(
                EventLog(
                    user_id=user_id,
                    event_type=EventType.ITEM_ENHANCED,
                    context={"item_id": item_id, "remaining_duplicates": duplicate_count},
                )
            )
            return ItemEnhanceResult(
                item_id=item_id,
                remaining_duplicates=duplicate_count,
                experience_gained=DUPLICATE_ENHANCE_EXPERIENCE,
                new_level=level,
                new_experience=experience,
                capped=capped,
                enhanced_attributes=attributes,
                stat_multiplier=round(stat_multiplier(level, duplicate_count), 2),
            )

        result = await run_in_transaction(self.db, work, description=f"enhance {user_id}/{item_id}")
        logger.info(f"{user_id} enhanced {item_id}, {result.remaining_duplicates} duplicates left")
        return result

    async def count_owned(self, user_id: str) -> int:
        result = await self.db.exec(select(OwnedItem.id).where(OwnedItem.user_id == user_id))
        return len(result.all())

    async def get_collection(
        self,
        user_id: str,
        *,
        rarity: RarityTier | None = None,
        min_level: int | None = None,
        max_level: int | None = None,
        sort_by: CollectionSort = CollectionSort.LEVEL,
        descending: bool = True,
    ) -> CollectionResponse:
        query = (
            select(OwnedItem, CollectibleItem)
            .join(CollectibleItem, col(OwnedItem.item_id) == col(CollectibleItem.id))
            .where(OwnedItem.user_id == user_id)
        )
        if rarity is not None:
            query = query.where(CollectibleItem.rarity == rarity)
        if min_level is not None:
            query = query.where(col(OwnedItem.level) >= min_level)
        if max_level is not None:
            query = query.where(col(OwnedItem.level) <= max_level)

        result = await self.db.exec(query)
        items = [
            OwnedItemRead(
                item_id=item.id,
                name=item.name,
                school=item.school,
                rarity=item.rarity,
                level=owned.level,
                experience=owned.experience,
                duplicate_count=owned.duplicate_count,
                enhanced_attributes=owned.enhanced_attributes,
                stat_multiplier=round(stat_multiplier(owned.level, owned.duplicate_count), 2),
            )
            for owned, item in result.all()
        ]

        sort_keys = {
            CollectionSort.LEVEL: lambda i: i.level,
            CollectionSort.EXPERIENCE: lambda i: i.experience,
            CollectionSort.DUPLICATES: lambda i: i.duplicate_count,
            CollectionSort.RARITY: lambda i: i.rarity.rank,
            CollectionSort.NAME: lambda i: i.name.lower(),
        }
        items.sort(key=sort_keys[sort_by], reverse=descending)

        catalog_size = await self.catalog.count_items()
        breakdown: dict[RarityTier, int] = dict.fromkeys(RarityTier, 0)
        for owned_item in items:
            breakdown[owned_item.rarity] += 1

        stats = CollectionStats(
            total_owned=len(items),
            total_duplicates=sum(i.duplicate_count for i in items),
            average_level=round(sum(i.level for i in items) / len(items), 1) if items else 0,
            rarity_breakdown=breakdown,
            completion=round(len(items) / catalog_size, 4) if catalog_size else 0,
        )
        return CollectionResponse(items=items, stats=stats)
