from typing import Annotated

from fastapi import APIRouter, Body, Depends

from lyceum.core.security import get_current_user_id
from lyceum.schemas.common import APIResponse
from lyceum.schemas.progression import (
    AchievementCheckResult,
    AchievementContext,
    ExperienceRequest,
    ExperienceResult,
    ProgressionSummary,
    ProgressionUpdate,
    ProgressionUpdateResult,
    QuizCompletion,
    QuizCompletionResult,
    StreakResult,
)
from lyceum.services.outbox import ProgressionOutbox, get_outbox
from lyceum.services.progression import ProgressionService

router = APIRouter(prefix="/progression", tags=["progression"])


@router.post("/experience")
async def add_experience(
    request: ExperienceRequest,
    service: Annotated[ProgressionService, Depends()],
    user_id: Annotated[str, Depends(get_current_user_id)],
) -> APIResponse[ExperienceResult]:
    result = await service.add_experience(user_id, request.amount)
    return APIResponse(data=result)


@router.post("/achievements/{achievement_id}/check")
async def check_achievement(
    achievement_id: str,
    service: Annotated[ProgressionService, Depends()],
    user_id: Annotated[str, Depends(get_current_user_id)],
    context: Annotated[AchievementContext | None, Body()] = None,
) -> APIResponse[AchievementCheckResult]:
    result = await service.check_achievement(user_id, achievement_id, context)
    return APIResponse(data=result)


@router.post("/streak")
async def update_streak(
    service: Annotated[ProgressionService, Depends()],
    user_id: Annotated[str, Depends(get_current_user_id)],
) -> APIResponse[StreakResult]:
    result = await service.update_streak(user_id)
    return APIResponse(data=result)


@router.post("/updates")
async def submit_update(
    update: ProgressionUpdate,
    service: Annotated[ProgressionService, Depends()],
    outbox: Annotated[ProgressionOutbox, Depends(get_outbox)],
    user_id: Annotated[str, Depends(get_current_user_id)],
) -> APIResponse[ProgressionUpdateResult]:
    """Apply progress now, or queue it when ``immediate`` is false."""
    if update.immediate:
        result = await service.apply_update(user_id, update)
    else:
        result = await outbox.enqueue(user_id, update)
    return APIResponse(data=result)


@router.post("/quiz-completions")
async def complete_quiz(
    quiz: QuizCompletion,
    service: Annotated[ProgressionService, Depends()],
    user_id: Annotated[str, Depends(get_current_user_id)],
) -> APIResponse[QuizCompletionResult]:
    result = await service.process_quiz_completion(user_id, quiz)
    return APIResponse(data=result)


@router.get("/summary")
async def get_summary(
    service: Annotated[ProgressionService, Depends()],
    user_id: Annotated[str, Depends(get_current_user_id)],
) -> APIResponse[ProgressionSummary]:
    summary = await service.get_summary(user_id)
    return APIResponse(data=summary)
