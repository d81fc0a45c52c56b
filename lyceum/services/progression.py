import datetime
import math
from collections.abc import Sequence
from typing import Annotated, Any
from zoneinfo import ZoneInfo

from fastapi import Depends
from loguru import logger
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from lyceum.core.config import settings
from lyceum.core.db import get_db
from lyceum.core.enums import AchievementCriterion, EventType
from lyceum.core.errors import NotFoundError
from lyceum.core.transactions import compare_and_swap, run_in_transaction
from lyceum.models.achievement import Achievement, UserAchievement
from lyceum.models.event_log import EventLog
from lyceum.models.progression_receipt import ProgressionReceipt
from lyceum.models.user_progression import UserProgressionState
from lyceum.schemas.progression import (
    AchievementCheckResult,
    AchievementContext,
    AchievementRead,
    ExperienceResult,
    LevelUpRewards,
    ProgressionSummary,
    ProgressionUpdate,
    ProgressionUpdateResult,
    QuizCompletion,
    QuizCompletionResult,
    StreakResult,
)
from lyceum.services.collection import CollectionService
from lyceum.services.user_state import load_user_state, peek_user_state
from lyceum.utils.misc import as_utc, get_utc_now

EXPERIENCE_PER_LEVEL = 100
LEVEL_UP_TICKETS = 2
"""Tickets granted per level gained"""

FEATURE_UNLOCKS = {
    5: "debate_mode",
    10: "advanced_analytics",
    15: "custom_quizzes",
    20: "philosopher_teams",
    25: "daily_challenges",
    30: "leaderboards",
}

STREAK_REWARD_INTERVAL = 7
STREAK_TICKETS_PER_WEEK = 3
STREAK_REWARD_EXPERIENCE = 500

PERFECT_QUIZ_ACHIEVEMENT = "perfect_quiz"
SPEED_ACHIEVEMENT = "speed_thinker"
DEBATE_ACHIEVEMENT = "debate_champion"
COLLECTOR_ACHIEVEMENT = "philosopher_collector"
STREAK_ACHIEVEMENT = "weekly_streak"


def level_for_experience(experience: int) -> int:
    return math.isqrt(experience // EXPERIENCE_PER_LEVEL) + 1


def experience_to_next_level(experience: int) -> int:
    level = level_for_experience(experience)
    return level**2 * EXPERIENCE_PER_LEVEL - experience


def experience_changes(
    state: UserProgressionState, amount: int, *, bonus_currency: int = 0
) -> tuple[dict[str, Any], ExperienceResult]:
    """Compute the columns to write when ``amount`` experience is added.

    Both levels come from the experience totals; the stored level is never
    trusted. Level-up tickets are added on top of ``bonus_currency``.

    Returns:
        Tuple of (column values, result)
    """
    previous_level = level_for_experience(state.experience)
    experience = state.experience + amount
    level = level_for_experience(experience)
    levels_gained = level - previous_level

    currency = state.currency_balance + bonus_currency
    features = list(state.unlocked_features)
    rewards = None
    if levels_gained > 0:
        tickets = levels_gained * LEVEL_UP_TICKETS
        currency += tickets
        feature = FEATURE_UNLOCKS.get(level)
        if feature and feature not in features:
            features.append(feature)
        rewards = LevelUpRewards(gacha_tickets=tickets, unlocked_feature=feature)

    values = {
        "experience": experience,
        "level": level,
        "currency_balance": currency,
        "unlocked_features": features,
    }
    result = ExperienceResult(
        previous_level=previous_level,
        new_level=level,
        levels_gained=levels_gained,
        leveled_up=levels_gained > 0,
        new_experience=experience,
        rewards=rewards,
    )
    return values, result


class ProgressionService:
    """Experience, levels, achievements and streaks for a user.

    Every write goes through a compare-and-swap on ``UserProgressionState`` so
    updates from several devices never overwrite each other.
    """

    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db
        self.collection = CollectionService(db)

    def _log_level_up(self, user_id: str, result: ExperienceResult) -> None:
        if not result.leveled_up:
            return

        self.db.add(
            EventLog(
                user_id=user_id,
                event_type=EventType.LEVEL_UP,
                context={
                    "from": result.previous_level,
                    "to": result.new_level,
                    "tickets": result.rewards.gacha_tickets if result.rewards else 0,
                    "feature": result.rewards.unlocked_feature if result.rewards else None,
                },
            )
        )
        logger.info(f"{user_id} reached level {result.new_level}")

    async def add_experience(self, user_id: str, amount: int) -> ExperienceResult:
        if amount < 0:
            raise ValueError("Experience amount must not be negative")

        async def work() -> ExperienceResult:
            state = await load_user_state(self.db, user_id)
            values, result = experience_changes(state, amount)
            await compare_and_swap(self.db, state, **values)
            self._log_level_up(user_id, result)
            return result

        return await run_in_transaction(self.db, work, description=f"experience {user_id}")

    async def _get_achievement(self, achievement_id: str) -> Achievement:
        achievement = await self.db.get(Achievement, achievement_id)
        if achievement is None:
            raise NotFoundError(f"Achievement {achievement_id} not found")
        return achievement

    async def _get_unlock(self, user_id: str, achievement_id: str) -> UserAchievement | None:
        result = await self.db.exec(
            select(UserAchievement).where(
                UserAchievement.user_id == user_id,
                UserAchievement.achievement_id == achievement_id,
            )
        )
        return result.first()

    async def _criterion_met(
        self, achievement: Achievement, state: UserProgressionState, context: AchievementContext
    ) -> bool:
        criterion = achievement.criterion
        if criterion is AchievementCriterion.PERFECT_SCORE:
            return context.score == 100
        if criterion is AchievementCriterion.TIME_LIMIT:
            return context.time_spent is not None and context.time_spent <= achievement.threshold
        if criterion is AchievementCriterion.DEBATE_WINS:
            return (context.debate_wins or 0) >= achievement.threshold
        if criterion is AchievementCriterion.COLLECTION_SIZE:
            return await self.collection.count_owned(state.user_id) >= achievement.threshold
        if criterion is AchievementCriterion.DAILY_STREAK:
            return state.streak_days >= achievement.threshold

        logger.warning(f"Unknown achievement criterion {criterion} on {achievement.id}")
        return False

    async def check_achievement(
        self, user_id: str, achievement_id: str, context: AchievementContext | None = None
    ) -> AchievementCheckResult:
        """Unlock an achievement if its criterion holds, granting its reward once.

        Raises:
            NotFoundError: If the achievement does not exist.
        """
        context = context or AchievementContext()

        async def work() -> AchievementCheckResult:
            achievement = await self._get_achievement(achievement_id)
            if await self._get_unlock(user_id, achievement_id):
                return AchievementCheckResult(
                    achievement_id=achievement_id, unlocked=False, was_already_unlocked=True
                )

            state = await load_user_state(self.db, user_id)
            if not await self._criterion_met(achievement, state, context):
                return AchievementCheckResult(achievement_id=achievement_id, unlocked=False)

            values, result = experience_changes(
                state, achievement.reward_experience, bonus_currency=achievement.reward_currency
            )
            await compare_and_swap(self.db, state, **values)
            self.db.add(
                UserAchievement(
                    user_id=user_id,
                    achievement_id=achievement_id,
                    context=context.model_dump(exclude_none=True),
                )
            )
            self.db.add(
                EventLog(
                    user_id=user_id,
                    event_type=EventType.ACHIEVEMENT_UNLOCKED,
                    context={
                        "achievement_id": achievement_id,
                        "experience": achievement.reward_experience,
                        "tickets": achievement.reward_currency,
                    },
                )
            )
            self._log_level_up(user_id, result)
            return AchievementCheckResult(
                achievement_id=achievement_id,
                unlocked=True,
                achievement=AchievementRead.model_validate(achievement, from_attributes=True),
                experience=result,
            )

        result = await run_in_transaction(
            self.db, work, description=f"achievement {user_id}/{achievement_id}"
        )
        if result.unlocked:
            logger.info(f"{user_id} unlocked achievement {achievement_id}")
        return result

    async def update_streak(
        self, user_id: str, now: datetime.datetime | None = None
    ) -> StreakResult:
        """Advance the daily streak by calendar day in the configured timezone.

        Consecutive days extend the streak, a missed day resets it to 1 and a
        second update on the same day changes nothing. Every seventh day grants
        tickets and experience.
        """
        now = now or get_utc_now()
        tz = ZoneInfo(settings.streak_timezone)
        today = now.astimezone(tz).date()

        async def work() -> StreakResult:
            state = await load_user_state(self.db, user_id)
            if state.last_streak_at is None:
                streak = 1
            else:
                gap = (today - as_utc(state.last_streak_at).astimezone(tz).date()).days
                if gap <= 0:
                    return StreakResult(streak_days=state.streak_days, changed=False)
                streak = state.streak_days + 1 if gap == 1 else 1

            tickets = experience = 0
            if streak % STREAK_REWARD_INTERVAL == 0:
                tickets = streak // STREAK_REWARD_INTERVAL * STREAK_TICKETS_PER_WEEK
                experience = STREAK_REWARD_EXPERIENCE

            values, result = experience_changes(state, experience, bonus_currency=tickets)
            await compare_and_swap(
                self.db, state, **values, streak_days=streak, last_streak_at=now
            )
            if tickets:
                self.db.add(
                    EventLog(
                        user_id=user_id,
                        event_type=EventType.STREAK_REWARD,
                        context={"streak_days": streak, "tickets": tickets, "experience": experience},
                    )
                )
            self._log_level_up(user_id, result)
            return StreakResult(
                streak_days=streak,
                changed=True,
                reward_tickets=tickets,
                reward_experience=experience,
                experience=result if experience else None,
            )

        return await run_in_transaction(self.db, work, description=f"streak {user_id}")

    async def _unapplied(
        self, user_id: str, updates: Sequence[ProgressionUpdate]
    ) -> list[ProgressionUpdate]:
        """Drop updates whose submission was applied before or repeats within the batch."""
        submission_ids = {u.submission_id for u in updates if u.submission_id}
        applied: set[str] = set()
        if submission_ids:
            result = await self.db.exec(
                select(ProgressionReceipt.submission_id).where(
                    ProgressionReceipt.user_id == user_id,
                    col(ProgressionReceipt.submission_id).in_(submission_ids),
                )
            )
            applied = set(result.all())

        fresh = []
        for update in updates:
            if update.submission_id:
                if update.submission_id in applied:
                    continue
                applied.add(update.submission_id)
            fresh.append(update)
        return fresh

    async def apply_updates(
        self, user_id: str, updates: Sequence[ProgressionUpdate]
    ) -> ProgressionUpdateResult:
        """Apply several updates for one user in a single transaction."""

        async def work() -> ProgressionUpdateResult:
            fresh = await self._unapplied(user_id, updates)
            if not fresh:
                return ProgressionUpdateResult(applied=False, duplicate=True)

            state = await load_user_state(self.db, user_id)
            lessons = list(state.completed_lesson_ids)
            for update in fresh:
                lessons.extend(i for i in update.completed_lesson_ids if i not in lessons)

            values, result = experience_changes(state, sum(u.experience for u in fresh))
            await compare_and_swap(
                self.db,
                state,
                **values,
                completed_lesson_ids=lessons,
                quizzes_completed=state.quizzes_completed + sum(u.quizzes_completed for u in fresh),
                total_time_spent=state.total_time_spent + sum(u.time_spent for u in fresh),
            )
            for update in fresh:
                if update.submission_id:
                    self.db.add(
                        ProgressionReceipt(user_id=user_id, submission_id=update.submission_id)
                    )
            self._log_level_up(user_id, result)
            return ProgressionUpdateResult(applied=True, experience=result)

        return await run_in_transaction(self.db, work, description=f"progress {user_id}")

    async def apply_update(self, user_id: str, update: ProgressionUpdate) -> ProgressionUpdateResult:
        return await self.apply_updates(user_id, [update])

    async def _try_unlock(
        self, user_id: str, achievement_id: str, context: AchievementContext
    ) -> AchievementCheckResult | None:
        try:
            return await self.check_achievement(user_id, achievement_id, context)
        except NotFoundError:
            logger.warning(f"Achievement {achievement_id} is not in the catalog, skipping")
            return None

    async def process_quiz_completion(
        self, user_id: str, quiz: QuizCompletion, now: datetime.datetime | None = None
    ) -> QuizCompletionResult:
        """Record a finished quiz and run every check it can trigger.

        A replayed submission does not add experience again, but the
        achievement and streak checks still run so a completion that failed
        after its update was committed is finished on retry.
        """
        update = ProgressionUpdate(
            submission_id=quiz.submission_id,
            experience=quiz.experience,
            quizzes_completed=1,
            time_spent=quiz.time_spent,
        )
        applied = await self.apply_update(user_id, update)
        if applied.duplicate:
            logger.info(f"Quiz submission {quiz.submission_id} for {user_id} already applied")

        context = AchievementContext(
            score=quiz.score, time_spent=quiz.time_spent, debate_wins=quiz.debate_wins
        )
        candidates = []
        if quiz.score == 100:
            candidates.append(PERFECT_QUIZ_ACHIEVEMENT)
        if quiz.time_spent > 0:
            candidates.append(SPEED_ACHIEVEMENT)
        if quiz.debate_wins > 0:
            candidates.append(DEBATE_ACHIEVEMENT)
        candidates.append(COLLECTOR_ACHIEVEMENT)

        checks = [await self._try_unlock(user_id, a, context) for a in candidates]
        streak = await self.update_streak(user_id, now)
        checks.append(await self._try_unlock(user_id, STREAK_ACHIEVEMENT, context))

        unlocked = [c for c in checks if c and c.unlocked]
        experience_results = [applied.experience, streak.experience]
        experience_results.extend(c.experience for c in unlocked)
        return QuizCompletionResult(
            experience=applied.experience,
            achievements_unlocked=[c.achievement_id for c in unlocked],
            leveled_up=any(r.leveled_up for r in experience_results if r),
            duplicate=applied.duplicate,
            streak=streak,
        )

    async def get_summary(self, user_id: str) -> ProgressionSummary:
        state = await peek_user_state(self.db, user_id)
        result = await self.db.exec(
            select(UserAchievement.achievement_id)
            .where(UserAchievement.user_id == user_id)
            .order_by(col(UserAchievement.unlocked_at))
        )
        level = level_for_experience(state.experience)
        return ProgressionSummary(
            user_id=user_id,
            level=level,
            experience=state.experience,
            experience_to_next_level=experience_to_next_level(state.experience),
            currency_balance=state.currency_balance,
            completed_lessons=len(state.completed_lesson_ids),
            quizzes_completed=state.quizzes_completed,
            total_time_spent=state.total_time_spent,
            streak_days=state.streak_days,
            unlocked_features=state.unlocked_features,
            achievements=list(result.all()),
        )
