from typing import List

from fastapi import APIRouter, Depends, Query

from paperworth.domain.services.rewards_service import RewardsService
from paperworth.presentation.dependencies import (
    get_current_identity,
    get_rewards_service,
)
from paperworth.presentation.rewards_api import UserRewardResponse

router = APIRouter(
    prefix="/api/user-rewards",
    tags=["user-rewards"],
    dependencies=[Depends(get_current_identity)],
)


@router.get("/{user_id}", response_model=List[UserRewardResponse])
def get_user_rewards_endpoint(
    user_id: str, service: RewardsService = Depends(get_rewards_service)
):
    return [
        UserRewardResponse.from_domain(u) for u in service.get_redemption_history(user_id)
    ]


@router.get("/{user_id}/status/{status}", response_model=List[UserRewardResponse])
def get_user_rewards_by_status_endpoint(
    user_id: str, status: str, service: RewardsService = Depends(get_rewards_service)
):
    return [
        UserRewardResponse.from_domain(u)
        for u in service.get_user_rewards_by_status(user_id, status)
    ]


@router.get("/{user_id}/recent", response_model=List[UserRewardResponse])
def get_recent_user_rewards_endpoint(
    user_id: str,
    days: int = Query(30, ge=1),
    service: RewardsService = Depends(get_rewards_service),
):
    return [
        UserRewardResponse.from_domain(u)
        for u in service.get_recent_user_rewards(user_id, days)
    ]


@router.get("/{user_id}/expiring", response_model=List[UserRewardResponse])
def get_expiring_user_rewards_endpoint(
    user_id: str,
    days: int = Query(30, ge=1),
    service: RewardsService = Depends(get_rewards_service),
):
    return [
        UserRewardResponse.from_domain(u)
        for u in service.get_expiring_user_rewards(user_id, days)
    ]
