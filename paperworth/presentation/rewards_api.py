import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from paperworth.domain.errors import BadRequest
from paperworth.domain.models import PointTransaction, Reward, UserPoints, UserReward
from paperworth.domain.services.rewards_service import (
    WELCOME_BONUS_POINTS,
    RewardsService,
)
from paperworth.logging_config import log_action
from paperworth.presentation.dependencies import (
    get_current_identity,
    get_rewards_service,
    require_admin,
)
from paperworth.presentation.schemas import CamelModel, UtcDateTime, to_naive_utc

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/rewards",
    tags=["rewards"],
    dependencies=[Depends(get_current_identity)],
)


class RewardRequest(CamelModel):
    name: str
    description: str = ""
    points_cost: int
    category: str
    image_url: Optional[str] = None
    is_available: bool = True
    quantity: int = 0
    merchant_name: Optional[str] = None
    terms_conditions: Optional[str] = None
    expiry_date: Optional[datetime] = None

    def to_domain(self) -> Reward:
        try:
            return Reward(
                id=None,
                name=self.name,
                description=self.description,
                points_cost=self.points_cost,
                category=self.category,
                image_url=self.image_url,
                is_available=self.is_available,
                quantity=self.quantity,
                merchant_name=self.merchant_name,
                terms_conditions=self.terms_conditions,
                expiry_date=to_naive_utc(self.expiry_date),
            )
        except ValueError as e:
            raise BadRequest(str(e))


class RewardResponse(CamelModel):
    id: str
    name: str
    description: str
    points_cost: int
    category: str
    image_url: Optional[str] = None
    is_available: bool
    quantity: int
    merchant_name: Optional[str] = None
    terms_conditions: Optional[str] = None
    expiry_date: Optional[UtcDateTime] = None

    @staticmethod
    def from_domain(r: Reward) -> "RewardResponse":
        return RewardResponse(
            id=r.id,
            name=r.name,
            description=r.description,
            points_cost=r.points_cost,
            category=r.category,
            image_url=r.image_url,
            is_available=r.is_available,
            quantity=r.quantity,
            merchant_name=r.merchant_name,
            terms_conditions=r.terms_conditions,
            expiry_date=r.expiry_date,
        )


class UserPointsResponse(CamelModel):
    id: Optional[str] = None
    user_id: str
    total_points: int
    available_points: int
    spent_points: int
    last_updated: Optional[UtcDateTime] = None

    @staticmethod
    def from_domain(p: UserPoints) -> "UserPointsResponse":
        return UserPointsResponse(
            id=p.id,
            user_id=p.user_id,
            total_points=p.total_points,
            available_points=p.available_points,
            spent_points=p.spent_points,
            last_updated=p.last_updated,
        )


class PointTransactionResponse(CamelModel):
    id: str
    user_id: str
    points: int
    transaction_type: str
    source: str
    reference_id: Optional[str] = None
    description: str
    transaction_date: UtcDateTime

    @staticmethod
    def from_domain(t: PointTransaction) -> "PointTransactionResponse":
        return PointTransactionResponse(
            id=t.id,
            user_id=t.user_id,
            points=t.points,
            transaction_type=t.transaction_type.value,
            source=t.source.value,
            reference_id=t.reference_id,
            description=t.description,
            transaction_date=t.transaction_date,
        )


class UserRewardResponse(CamelModel):
    id: str
    user_id: str
    reward_id: str
    reward_name: str
    points_spent: int
    redeemed_date: UtcDateTime
    status: str
    redemption_code: Optional[str] = None
    delivery_info: Optional[str] = None
    expiry_date: Optional[UtcDateTime] = None

    @staticmethod
    def from_domain(u: UserReward) -> "UserRewardResponse":
        return UserRewardResponse(
            id=u.id,
            user_id=u.user_id,
            reward_id=u.reward_id,
            reward_name=u.reward_name,
            points_spent=u.points_spent,
            redeemed_date=u.redeemed_date,
            status=u.status.value,
            redemption_code=u.redemption_code,
            delivery_info=u.delivery_info,
            expiry_date=u.expiry_date,
        )


class WelcomeBonusResponse(CamelModel):
    success: bool
    points_awarded: int
    message: str


class StatusRequest(CamelModel):
    status: str


class DeliveryInfoRequest(CamelModel):
    delivery_info: str


# --- Catalog and ledger ---


@router.get("/available", response_model=List[RewardResponse])
def get_available_rewards_endpoint(
    service: RewardsService = Depends(get_rewards_service),
):
    return [RewardResponse.from_domain(r) for r in service.get_available_rewards()]


@router.get("/category/{category}", response_model=List[RewardResponse])
def get_rewards_by_category_endpoint(
    category: str, service: RewardsService = Depends(get_rewards_service)
):
    return [RewardResponse.from_domain(r) for r in service.get_rewards_by_category(category)]


@router.get("/affordable/{user_id}", response_model=List[RewardResponse])
def get_affordable_rewards_endpoint(
    user_id: str, service: RewardsService = Depends(get_rewards_service)
):
    return [RewardResponse.from_domain(r) for r in service.get_affordable_rewards(user_id)]


@router.get("/points/{user_id}", response_model=UserPointsResponse)
def get_user_points_endpoint(
    user_id: str, service: RewardsService = Depends(get_rewards_service)
):
    return UserPointsResponse.from_domain(service.get_user_points(user_id))


@router.get("/history/{user_id}", response_model=List[UserRewardResponse])
def get_redemption_history_endpoint(
    user_id: str, service: RewardsService = Depends(get_rewards_service)
):
    return [
        UserRewardResponse.from_domain(u) for u in service.get_redemption_history(user_id)
    ]


@router.get("/transactions/{user_id}", response_model=List[PointTransactionResponse])
def get_point_transactions_endpoint(
    user_id: str,
    days: Optional[int] = Query(None, description="Only entries from the last N days"),
    service: RewardsService = Depends(get_rewards_service),
):
    return [
        PointTransactionResponse.from_domain(t)
        for t in service.get_point_transactions(user_id, days)
    ]


# --- Points and redemption ---


@router.post("/award-points/{receipt_id}", response_model=PointTransactionResponse)
def award_points_endpoint(
    receipt_id: str, service: RewardsService = Depends(get_rewards_service)
):
    with log_action(logger, "award-points", receipt=receipt_id):
        return PointTransactionResponse.from_domain(
            service.award_points_for_receipt(receipt_id)
        )


@router.post("/redeem/{user_id}/{reward_id}", response_model=UserRewardResponse)
def redeem_reward_endpoint(
    user_id: str, reward_id: str, service: RewardsService = Depends(get_rewards_service)
):
    with log_action(logger, "redeem-reward", user=user_id, reward=reward_id):
        return UserRewardResponse.from_domain(service.redeem_reward(user_id, reward_id))


@router.post("/welcome-bonus/{user_id}", response_model=WelcomeBonusResponse)
def welcome_bonus_endpoint(
    user_id: str, service: RewardsService = Depends(get_rewards_service)
):
    with log_action(logger, "welcome-bonus", user=user_id):
        service.redeem_welcome_bonus(user_id)
        return WelcomeBonusResponse(
            success=True,
            points_awarded=WELCOME_BONUS_POINTS,
            message=f"Welcome bonus of {WELCOME_BONUS_POINTS} points has been added to your account",
        )


# --- Admin ---


@router.post(
    "/admin/add",
    response_model=RewardResponse,
    status_code=201,
    dependencies=[Depends(require_admin)],
)
def add_reward_endpoint(
    req: RewardRequest, service: RewardsService = Depends(get_rewards_service)
):
    with log_action(logger, "add-reward", name=req.name):
        return RewardResponse.from_domain(service.add_reward(req.to_domain()))


@router.put(
    "/admin/redemption/{user_reward_id}",
    response_model=UserRewardResponse,
    dependencies=[Depends(require_admin)],
)
def update_redemption_status_endpoint(
    user_reward_id: str,
    req: StatusRequest,
    service: RewardsService = Depends(get_rewards_service),
):
    with log_action(logger, "update-redemption-status", redemption=user_reward_id):
        return UserRewardResponse.from_domain(
            service.update_redemption_status(user_reward_id, req.status)
        )


@router.put(
    "/admin/redemption/{user_reward_id}/delivery",
    response_model=UserRewardResponse,
    dependencies=[Depends(require_admin)],
)
def add_delivery_info_endpoint(
    user_reward_id: str,
    req: DeliveryInfoRequest,
    service: RewardsService = Depends(get_rewards_service),
):
    with log_action(logger, "add-delivery-info", redemption=user_reward_id):
        return UserRewardResponse.from_domain(
            service.add_delivery_info(user_reward_id, req.delivery_info)
        )


@router.put(
    "/admin/{reward_id}",
    response_model=RewardResponse,
    dependencies=[Depends(require_admin)],
)
def update_reward_endpoint(
    reward_id: str,
    req: RewardRequest,
    service: RewardsService = Depends(get_rewards_service),
):
    with log_action(logger, "update-reward", reward=reward_id):
        return RewardResponse.from_domain(service.update_reward(reward_id, req.to_domain()))


@router.delete(
    "/admin/{reward_id}", status_code=204, dependencies=[Depends(require_admin)]
)
def delete_reward_endpoint(
    reward_id: str, service: RewardsService = Depends(get_rewards_service)
):
    with log_action(logger, "delete-reward", reward=reward_id):
        service.delete_reward(reward_id)
    return Response(status_code=204)


@router.get("/{reward_id}", response_model=RewardResponse)
def get_reward_endpoint(
    reward_id: str, service: RewardsService = Depends(get_rewards_service)
):
    return RewardResponse.from_domain(service.get_reward(reward_id))
