from pydantic import BaseModel, Field


class ExperienceRequest(BaseModel):
    amount: int = Field(ge=0, le=100_000, description="Experience to add")


class LevelUpRewards(BaseModel):
    gacha_tickets: int
    unlocked_feature: str | None = None


class ExperienceResult(BaseModel):
    previous_level: int
    new_level: int
    levels_gained: int
    leveled_up: bool
    new_experience: int
    rewards: LevelUpRewards | None = None


class AchievementContext(BaseModel):
    """What the client observed when asking for an achievement check."""

    score: int | None = Field(default=None, ge=0, le=100)
    time_spent: int | None = Field(default=None, ge=0, description="Seconds")
    debate_wins: int | None = Field(default=None, ge=0)


class AchievementRead(BaseModel):
    id: str
    name: str
    description: str
    reward_experience: int
    reward_currency: int


class AchievementCheckResult(BaseModel):
    achievement_id: str
    unlocked: bool
    was_already_unlocked: bool = False
    achievement: AchievementRead | None = None
    experience: ExperienceResult | None = None


class StreakResult(BaseModel):
    streak_days: int
    changed: bool
    reward_tickets: int = 0
    reward_experience: int = 0
    experience: ExperienceResult | None = None


class ProgressionUpdate(BaseModel):
    """Progress reported by a client, possibly queued before it is applied."""

    submission_id: str | None = Field(
        default=None,
        min_length=1,
        max_length=64,
        description="Client generated idempotency key; an applied submission is skipped",
    )
    experience: int = Field(default=0, ge=0, le=100_000)
    completed_lesson_ids: list[str] = Field(default_factory=list)
    quizzes_completed: int = Field(default=0, ge=0)
    time_spent: int = Field(default=0, ge=0, description="Seconds")
    immediate: bool = Field(default=True, description="Apply now instead of queueing")


class ProgressionUpdateResult(BaseModel):
    applied: bool
    queued: bool = False
    duplicate: bool = False
    experience: ExperienceResult | None = None


class QuizCompletion(BaseModel):
    quiz_id: str | None = None
    submission_id: str | None = Field(default=None, min_length=1, max_length=64)
    score: int = Field(ge=0, le=100)
    experience: int = Field(ge=0, le=100_000)
    time_spent: int = Field(default=0, ge=0, description="Seconds")
    debate_wins: int = Field(default=0, ge=0)


class QuizCompletionResult(BaseModel):
    experience: ExperienceResult | None
    achievements_unlocked: list[str]
    leveled_up: bool
    duplicate: bool = False
    streak: StreakResult | None = None


class ProgressionSummary(BaseModel):
    user_id: str
    level: int
    experience: int
    experience_to_next_level: int
    currency_balance: int
    completed_lessons: int
    quizzes_completed: int
    total_time_spent: int
    streak_days: int
    unlocked_features: list[str]
    achievements: list[str]
