from .achievement import Achievement, UserAchievement
from .collectible_item import CollectibleItem
from .draw_history import DrawHistoryEntry
from .event_log import EventLog
from .owned_item import OwnedItem
from .progression_receipt import ProgressionReceipt
from .pull_submission import PullSubmission
from .reward_pool import RewardPool
from .user_progression import UserProgressionState

__all__ = (
    "Achievement",
    "CollectibleItem",
    "DrawHistoryEntry",
    "EventLog",
    "OwnedItem",
    "ProgressionReceipt",
    "PullSubmission",
    "RewardPool",
    "UserAchievement",
    "UserProgressionState",
)
