import datetime

import sqlmodel

from lyceum.core.enums import RarityTier
from lyceum.utils.misc import get_utc_now

from ._base import BaseModel


class DrawHistoryEntry(BaseModel, table=True):
    """Append-only log of every draw made by a user."""

    __tablename__: str = "draw_history"
    __table_args__ = (
        sqlmodel.Index("ix_draw_history_user_pool_time", "user_id", "pool_id", "timestamp"),
    )

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    user_id: str = sqlmodel.Field(index=True, max_length=128)
    pool_id: str = sqlmodel.Field(foreign_key="reward_pools.id")
    item_id: str = sqlmodel.Field(foreign_key="collectible_items.id", index=True)
    rarity: RarityTier
    timestamp: datetime.datetime = sqlmodel.Field(
        default_factory=get_utc_now, sa_type=sqlmodel.DateTime(timezone=True)
    )
    was_pity: bool = sqlmodel.Field(default=False)
    """Whether the pity floor was forced for this draw"""
    was_new: bool = sqlmodel.Field(default=False)
    """Whether the draw added the item to the collection"""
    submission_id: str | None = sqlmodel.Field(default=None, index=True, max_length=64)
