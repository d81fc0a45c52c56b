from pydantic import BaseModel, Field

from lyceum.core.enums import RarityTier


class OwnedItemRead(BaseModel):
    item_id: str
    name: str
    school: str | None = None
    rarity: RarityTier
    level: int
    experience: int
    duplicate_count: int
    enhanced_attributes: dict[str, int]
    stat_multiplier: float


class CollectionStats(BaseModel):
    total_owned: int
    total_duplicates: int
    average_level: float
    rarity_breakdown: dict[RarityTier, int]
    completion: float = Field(description="Share of the catalog owned, 0..1")


class CollectionResponse(BaseModel):
    items: list[OwnedItemRead]
    stats: CollectionStats


class ItemLevelUpRequest(BaseModel):
    experience: int = Field(gt=0, le=100_000, description="Experience to add")


class ItemLevelUpResult(BaseModel):
    item_id: str
    previous_level: int
    new_level: int
    levels_gained: int
    experience_added: int
    new_experience: int
    capped: bool = Field(description="Level cap reached, excess experience discarded")
    enhanced_attributes: dict[str, int]
    stat_multiplier: float


class ItemEnhanceResult(BaseModel):
    item_id: str
    duplicates_used: int = 1
    remaining_duplicates: int
    experience_gained: int
    new_level: int
    new_experience: int
    capped: bool
    enhanced_attributes: dict[str, int]
    stat_multiplier: float
