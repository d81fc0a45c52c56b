import datetime

import sqlmodel

from ._base import BaseModel


class UserProgressionState(BaseModel, table=True):
    """Per-user counters shared by gacha pulls and the progression ledger."""

    __tablename__: str = "user_progression"

    user_id: str = sqlmodel.Field(primary_key=True, max_length=128)
    """Opaque id supplied by the authentication layer"""
    level: int = sqlmodel.Field(default=1, ge=1)
    """Derived from experience on every write, stored for queries"""
    experience: int = sqlmodel.Field(default=0, ge=0)
    currency_balance: int = sqlmodel.Field(default=0, ge=0)
    """Gacha tickets"""

    completed_lesson_ids: list[str] = sqlmodel.Field(
        default_factory=list, sa_column=sqlmodel.Column(sqlmodel.JSON)
    )
    quizzes_completed: int = sqlmodel.Field(default=0, ge=0)
    total_time_spent: int = sqlmodel.Field(default=0, ge=0)
    """Seconds"""

    streak_days: int = sqlmodel.Field(default=0, ge=0)
    last_streak_at: datetime.datetime | None = sqlmodel.Field(
        default=None, sa_type=sqlmodel.DateTime(timezone=True)
    )
    unlocked_features: list[str] = sqlmodel.Field(
        default_factory=list, sa_column=sqlmodel.Column(sqlmodel.JSON)
    )

    version: int = sqlmodel.Field(default=0)
    """Compare-and-swap token, bumped on every write"""
