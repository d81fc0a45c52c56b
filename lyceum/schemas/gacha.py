import datetime
from typing import Literal

from pydantic import BaseModel, Field

from lyceum.core.enums import PullKind, RarityTier


class GachaPullRequest(BaseModel):
    """Request to pull from a gacha pool."""

    pool_id: str = Field(default="standard", min_length=1, description="ID of the pool")
    kind: PullKind = Field(default=PullKind.SINGLE, description="Single pull or 10-pull")
    submission_id: str | None = Field(
        default=None,
        min_length=1,
        max_length=64,
        description="Client generated idempotency key; replays never debit twice",
    )


class GachaPullResult(BaseModel):
    """Result of a single draw."""

    item_id: str
    item_name: str
    school: str | None = None
    rarity: RarityTier
    is_new: bool
    is_duplicate: bool
    was_pity: bool


class PullError(BaseModel):
    kind: str
    message: str


class PullSummary(BaseModel):
    total_pulls: int
    new_items: int
    duplicates: int
    rarity_breakdown: dict[RarityTier, int]
    highest_rarity: RarityTier | None


class GachaPullOutcome(BaseModel):
    """Everything a pull request produced.

    ``completed`` is lower than ``requested`` when a 10-pull stopped part way;
    the completed draws are kept and ``error`` says why the rest did not happen.
    Replaying the same ``submission_id`` resumes the remaining draws.
    """

    pool_id: str
    kind: PullKind
    submission_id: str
    pulls: list[GachaPullResult]
    requested: int
    completed: int
    tickets_spent: int
    remaining_currency: int
    current_pity: int
    replayed: bool = False
    error: PullError | None = None
    summary: PullSummary


class TicketBalance(BaseModel):
    current_tickets: int
    recommendations: list[str] = Field(default_factory=list)


class TicketGrant(BaseModel):
    """Schema for granting tickets to a user (admin only)."""

    user_id: str = Field(min_length=1, max_length=128)
    amount: int = Field(gt=0, le=100, description="Tickets to grant")
    reason: str = Field(min_length=1, max_length=255, description="Reason for the grant")


class DrawHistoryRead(BaseModel):
    item_id: str
    item_name: str
    school: str | None = None
    pool_id: str
    rarity: RarityTier
    timestamp: datetime.datetime
    was_pity: bool


class PoolPity(BaseModel):
    pool_id: str
    current_pity: int
    pity_threshold: int
    pulls_until_guarantee: int


class PityStatus(BaseModel):
    pools: list[PoolPity]


class PullStats(BaseModel):
    pool_id: str
    total_pulls: int
    rarity_breakdown: dict[RarityTier, int]
    unique_items: int
    last_legendary: DrawHistoryRead | None
    average_rarity: float
    luck_factor: Literal["lucky", "average", "unlucky", "neutral"]
