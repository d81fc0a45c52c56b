from enum import StrEnum


class RarityTier(StrEnum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"

    @property
    def rank(self) -> int:
        return _RARITY_ORDER.index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RarityTier):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, RarityTier):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, RarityTier):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, RarityTier):
            return NotImplemented
        return self.rank >= other.rank


_RARITY_ORDER = (RarityTier.COMMON, RarityTier.RARE, RarityTier.EPIC, RarityTier.LEGENDARY)

PITY_FLOOR = RarityTier.RARE
"""Lowest tier that resets the pity counter"""


class PullKind(StrEnum):
    SINGLE = "single"
    MULTI = "multi"


class EventType(StrEnum):
    GACHA_PULL = "gacha_pull"
    LEVEL_UP = "level_up"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
    STREAK_REWARD = "streak_reward"
    CURRENCY_GRANT = "currency_grant"
    ITEM_LEVEL_UP = "item_level_up"
    ITEM_ENHANCED = "item_enhanced"


class AchievementCriterion(StrEnum):
    PERFECT_SCORE = "perfect_score"
    TIME_LIMIT = "time_limit"
    DEBATE_WINS = "debate_wins"
    COLLECTION_SIZE = "collection_size"
    DAILY_STREAK = "daily_streak"


class CollectionSort(StrEnum):
    LEVEL = "level"
    EXPERIENCE = "experience"
    DUPLICATES = "duplicates"
    RARITY = "rarity"
    NAME = "name"
