import datetime
from typing import Any

import sqlmodel

from lyceum.core.enums import AchievementCriterion
from lyceum.utils.misc import get_utc_now

from ._base import BaseModel


class Achievement(BaseModel, table=True):
    __tablename__: str = "achievements"

    id: str = sqlmodel.Field(primary_key=True, max_length=64)
    name: str = sqlmodel.Field(max_length=100)
    description: str = ""
    criterion: AchievementCriterion
    threshold: int = sqlmodel.Field(default=0, ge=0)
    """Meaning depends on the criterion: seconds, wins, items or days"""
    reward_experience: int = sqlmodel.Field(default=0, ge=0)
    reward_currency: int = sqlmodel.Field(default=0, ge=0)


class UserAchievement(BaseModel, table=True):
    __tablename__: str = "user_achievements"
    __table_args__ = (
        sqlmodel.UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    user_id: str = sqlmodel.Field(index=True, max_length=128)
    achievement_id: str = sqlmodel.Field(foreign_key="achievements.id")
    unlocked_at: datetime.datetime = sqlmodel.Field(
        default_factory=get_utc_now, sa_type=sqlmodel.DateTime(timezone=True)
    )
    context: dict[str, Any] = sqlmodel.Field(
        default_factory=dict, sa_column=sqlmodel.Column(sqlmodel.JSON)
    )
    viewed: bool = False
