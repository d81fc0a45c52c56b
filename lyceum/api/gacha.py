import datetime
from collections.abc import Sequence
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from lyceum.core.enums import RarityTier
from lyceum.core.security import get_current_user_id, require_admin
from lyceum.models.reward_pool import RewardPool
from lyceum.schemas.common import APIResponse
from lyceum.schemas.gacha import (
    DrawHistoryRead,
    GachaPullOutcome,
    GachaPullRequest,
    PityStatus,
    PullStats,
    TicketBalance,
    TicketGrant,
)
from lyceum.schemas.reward_pool import PoolRates, RewardPoolCreate, RewardPoolUpdate
from lyceum.services.gacha import GachaService
from lyceum.services.history import HistoryLogService
from lyceum.services.reward_pool import STANDARD_POOL_ID, RewardPoolService

router = APIRouter(prefix="/gacha", tags=["gacha"])


@router.get("/pools")
async def get_pools(
    service: Annotated[RewardPoolService, Depends()],
) -> APIResponse[Sequence[RewardPool]]:
    pools = await service.list_pools()
    return APIResponse(data=pools)


@router.get("/pools/{pool_id}/rates")
async def get_pool_rates(
    pool_id: str, service: Annotated[RewardPoolService, Depends()]
) -> APIResponse[PoolRates]:
    rates = await service.get_rates(pool_id)
    return APIResponse(data=rates)


@router.post("/pools")
async def create_pool(
    pool: RewardPoolCreate,
    service: Annotated[RewardPoolService, Depends()],
    _admin: Annotated[str, Depends(require_admin)],
) -> APIResponse[RewardPool]:
    created_pool = await service.create_pool(pool)
    return APIResponse(data=created_pool, message="Pool created successfully")


@router.put("/pools/{pool_id}")
async def update_pool(
    pool_id: str,
    pool: RewardPoolUpdate,
    service: Annotated[RewardPoolService, Depends()],
    _admin: Annotated[str, Depends(require_admin)],
) -> APIResponse[RewardPool]:
    updated_pool = await service.update_pool(pool_id, pool)
    return APIResponse(data=updated_pool, message="Pool updated successfully")


@router.post("/pull")
async def pull(
    request: GachaPullRequest,
    service: Annotated[GachaService, Depends()],
    user_id: Annotated[str, Depends(get_current_user_id)],
) -> APIResponse[GachaPullOutcome]:
    """Pull once or ten times from a pool.

    A 10-pull that stopped part way still answers 200; ``data.error`` tells why
    and replaying the same ``submission_id`` finishes it.
    """
    outcome = await service.pull(user_id, request.pool_id, request.kind, request.submission_id)
    message = outcome.error.message if outcome.error else f"Pulled {outcome.completed} philosophers"
    return APIResponse(data=outcome, message=message)


@router.get("/tickets")
async def get_tickets(
    service: Annotated[GachaService, Depends()],
    user_id: Annotated[str, Depends(get_current_user_id)],
) -> APIResponse[TicketBalance]:
    balance = await service.get_ticket_balance(user_id)
    return APIResponse(data=balance)


@router.post("/tickets/grant")
async def grant_tickets(
    grant: TicketGrant,
    service: Annotated[GachaService, Depends()],
    _admin: Annotated[str, Depends(require_admin)],
) -> APIResponse[TicketBalance]:
    """Grant tickets to a user (admin only)."""
    balance = await service.grant_tickets(grant.user_id, grant.amount, grant.reason)
    return APIResponse(
        data=TicketBalance(current_tickets=balance),
        message=f"Granted {grant.amount} tickets to {grant.user_id}",
    )


@router.get("/history")
async def get_history(
    service: Annotated[HistoryLogService, Depends()],
    user_id: Annotated[str, Depends(get_current_user_id)],
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    pool_id: str | None = None,
    rarity: RarityTier | None = None,
    start: datetime.datetime | None = None,
    end: datetime.datetime | None = None,
    item_id: str | None = None,
) -> APIResponse[list[DrawHistoryRead]]:
    history = await service.get_history(
        user_id,
        limit=limit,
        pool_id=pool_id,
        rarity=rarity,
        start=start,
        end=end,
        item_id=item_id,
    )
    return APIResponse(data=history)


@router.get("/pity-status")
async def get_pity_status(
    service: Annotated[HistoryLogService, Depends()],
    user_id: Annotated[str, Depends(get_current_user_id)],
) -> APIResponse[PityStatus]:
    status = await service.get_pity_status(user_id)
    return APIResponse(data=status)


@router.get("/stats")
async def get_stats(
    service: Annotated[HistoryLogService, Depends()],
    user_id: Annotated[str, Depends(get_current_user_id)],
    pool_id: str = STANDARD_POOL_ID,
) -> APIResponse[PullStats]:
    stats = await service.get_pull_stats(user_id, pool_id)
    return APIResponse(data=stats)
