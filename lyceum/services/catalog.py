from collections.abc import Sequence
from typing import Annotated

from fastapi import Depends
from sqlmodel import col, func, select
from sqlmodel.ext.asyncio.session import AsyncSession

from lyceum.core.db import get_db
from lyceum.core.enums import RarityTier
from lyceum.models.collectible_item import CollectibleItem


class ContentCatalogService:
    """Read-only lookups into the collectible item catalog.

    Lookups return ``None`` or an empty sequence when nothing matches; deciding
    whether that is an error is up to the caller.
    """

    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db

    async def get_item(self, item_id: str) -> CollectibleItem | None:
        result = await self.db.exec(select(CollectibleItem).where(CollectibleItem.id == item_id))
        return result.first()

    async def get_items(self, item_ids: Sequence[str]) -> dict[str, CollectibleItem]:
        if not item_ids:
            return {}
        result = await self.db.exec(
            select(CollectibleItem).where(col(CollectibleItem.id).in_(set(item_ids)))
        )
        return {item.id: item for item in result.all()}

    async def get_items_by_rarity(self, rarity: RarityTier) -> Sequence[CollectibleItem]:
        result = await self.db.exec(
            select(CollectibleItem)
            .where(CollectibleItem.rarity == rarity)
            .order_by(col(CollectibleItem.id))
        )
        return result.all()

    async def count_by_rarity(self) -> dict[RarityTier, int]:
        result = await self.db.exec(
            select(CollectibleItem.rarity, func.count()).group_by(col(CollectibleItem.rarity))
        )
        counts: dict[RarityTier, int] = dict.fromkeys(RarityTier, 0)
        for rarity, count in result.all():
            counts[RarityTier(rarity)] = count
        return counts

    async def count_items(self) -> int:
        result = await self.db.exec(select(func.count()).select_from(CollectibleItem))
        return result.one()
