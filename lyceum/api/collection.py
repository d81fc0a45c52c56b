from typing import Annotated

from fastapi import APIRouter, Depends, Query

from lyceum.core.enums import CollectionSort, RarityTier
from lyceum.core.security import get_current_user_id
from lyceum.schemas.collection import (
    CollectionResponse,
    ItemEnhanceResult,
    ItemLevelUpRequest,
    ItemLevelUpResult,
)
from lyceum.schemas.common import APIResponse
from lyceum.services.collection import MAX_ITEM_LEVEL, CollectionService

router = APIRouter(prefix="/collection", tags=["collection"])


@router.get("/")
async def get_collection(
    service: Annotated[CollectionService, Depends()],
    user_id: Annotated[str, Depends(get_current_user_id)],
    rarity: RarityTier | None = None,
    min_level: Annotated[int | None, Query(ge=1, le=MAX_ITEM_LEVEL)] = None,
    max_level: Annotated[int | None, Query(ge=1, le=MAX_ITEM_LEVEL)] = None,
    sort_by: CollectionSort = CollectionSort.LEVEL,
    descending: bool = True,
) -> APIResponse[CollectionResponse]:
    collection = await service.get_collection(
        user_id,
        rarity=rarity,
        min_level=min_level,
        max_level=max_level,
        sort_by=sort_by,
        descending=descending,
    )
    return APIResponse(data=collection)


@router.post("/{item_id}/level-up")
async def level_up_item(
    item_id: str,
    request: ItemLevelUpRequest,
    service: Annotated[CollectionService, Depends()],
    user_id: Annotated[str, Depends(get_current_user_id)],
) -> APIResponse[ItemLevelUpResult]:
    result = await service.add_experience(user_id, item_id, request.experience)
    message = (
        f"Leveled up to {result.new_level}" if result.levels_gained else "Experience added"
    )
    return APIResponse(data=result, message=message)


@router.put("/{item_id}/enhance")
async def enhance_item(
    item_id: str,
    service: Annotated[CollectionService, Depends()],
    user_id: Annotated[str, Depends(get_current_user_id)],
) -> APIResponse[ItemEnhanceResult]:
    """Spend one duplicate for bonus experience."""
    result = await service.consume_duplicate(user_id, item_id)
    return APIResponse(data=result, message="Philosopher enhanced")
