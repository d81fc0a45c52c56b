from pydantic import BaseModel, Field, model_validator

from lyceum.core.enums import RarityTier

MULTI_PULL_COUNT = 10
MULTI_PULL_PRICE_FACTOR = 9
"""A 10-pull costs as much as 9 single pulls"""


class RewardPoolCreate(BaseModel):
    """Admin payload for defining a new pool."""

    id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=100)
    cost: int = Field(default=1, ge=1, le=10, description="Tickets per single draw")
    multi_pull_cost: int | None = Field(
        default=None, ge=1, description="Bundle price for 10 draws, defaults to 9x cost"
    )
    rates: dict[RarityTier, float]
    pity_threshold: int = Field(default=10, ge=1, le=50)
    featured_item_ids: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def default_multi_pull_cost(self) -> "RewardPoolCreate":
        if self.multi_pull_cost is None:
            self.multi_pull_cost = self.cost * MULTI_PULL_PRICE_FACTOR
        return self


class RewardPoolUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    cost: int | None = Field(default=None, ge=1, le=10)
    multi_pull_cost: int | None = Field(default=None, ge=1)
    rates: dict[RarityTier, float] | None = None
    pity_threshold: int | None = Field(default=None, ge=1, le=50)
    featured_item_ids: list[str] | None = None
    active: bool | None = None


class PityInfo(BaseModel):
    guaranteed_rare_every: int
    multi_pull_guarantee: bool = True
    description: str


class PoolRates(BaseModel):
    """Public view of a pool's odds, in percent."""

    pool_id: str
    rates: dict[RarityTier, float]
    single_cost: int
    multi_cost: int
    multi_count: int = MULTI_PULL_COUNT
    pity: PityInfo
