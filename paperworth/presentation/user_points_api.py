from typing import List

from fastapi import APIRouter, Depends

from paperworth.domain.errors import NotFound
from paperworth.domain.services.rewards_service import RewardsService
from paperworth.presentation.dependencies import (
    get_current_identity,
    get_rewards_service,
)
from paperworth.presentation.rewards_api import (
    PointTransactionResponse,
    UserPointsResponse,
)

router = APIRouter(
    prefix="/api/user-points",
    tags=["user-points"],
    dependencies=[Depends(get_current_identity)],
)


@router.get("/{user_id}", response_model=UserPointsResponse)
def get_user_points_endpoint(
    user_id: str, service: RewardsService = Depends(get_rewards_service)
):
    points = service.find_user_points(user_id)
    if points is None:
        raise NotFound(f"No points record for user {user_id}")
    return UserPointsResponse.from_domain(points)


@router.get("/{user_id}/transactions", response_model=List[PointTransactionResponse])
def get_transactions_endpoint(
    user_id: str, service: RewardsService = Depends(get_rewards_service)
):
    return [
        PointTransactionResponse.from_domain(t)
        for t in service.get_point_transactions(user_id)
    ]


@router.get(
    "/{user_id}/transactions/type/{transaction_type}",
    response_model=List[PointTransactionResponse],
)
def get_transactions_by_type_endpoint(
    user_id: str,
    transaction_type: str,
    service: RewardsService = Depends(get_rewards_service),
):
    return [
        PointTransactionResponse.from_domain(t)
        for t in service.get_transactions_by_type(user_id, transaction_type)
    ]


@router.get(
    "/{user_id}/transactions/source/{source}",
    response_model=List[PointTransactionResponse],
)
def get_transactions_by_source_endpoint(
    user_id: str, source: str, service: RewardsService = Depends(get_rewards_service)
):
    return [
        PointTransactionResponse.from_domain(t)
        for t in service.get_transactions_by_source(user_id, source)
    ]
