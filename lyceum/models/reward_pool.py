import sqlmodel

from ._base import BaseModel


class RewardPool(BaseModel, table=True):
    __tablename__: str = "reward_pools"

    id: str = sqlmodel.Field(primary_key=True, max_length=64)
    name: str = sqlmodel.Field(max_length=100)
    cost: int = sqlmodel.Field(default=1, ge=1)
    """Tickets per single draw"""
    multi_pull_cost: int = sqlmodel.Field(ge=1)
    """Price of a 10-pull bundle"""
    rates: dict[str, float] = sqlmodel.Field(sa_column=sqlmodel.Column(sqlmodel.JSON))
    """Rarity tier -> probability, sums to 1.0"""
    pity_threshold: int = sqlmodel.Field(default=10, ge=1)
    featured_item_ids: list[str] = sqlmodel.Field(
        default_factory=list, sa_column=sqlmodel.Column(sqlmodel.JSON)
    )
    """Reserved for banner weighting, not used by draws yet"""
    active: bool = True
