import logging
from typing import List, Union

from fastapi import APIRouter, Depends

from paperworth.domain.models import SavedPromotion
from paperworth.domain.services.saved_promotion_service import SavedPromotionService
from paperworth.logging_config import log_action
from paperworth.presentation.dependencies import (
    get_current_identity,
    get_saved_promotion_service,
)
from paperworth.presentation.promotions_api import PromotionResponse
from paperworth.presentation.schemas import CamelModel, MessageResponse, UtcDateTime

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/promotions/saved",
    tags=["saved-promotions"],
    dependencies=[Depends(get_current_identity)],
)


class SavedPromotionResponse(CamelModel):
    id: str
    user_id: str
    promotion_id: str
    saved_at: UtcDateTime

    @staticmethod
    def from_domain(s: SavedPromotion) -> "SavedPromotionResponse":
        return SavedPromotionResponse(
            id=s.id, user_id=s.user_id, promotion_id=s.promotion_id, saved_at=s.saved_at
        )


class SavedFlagResponse(CamelModel):
    saved: bool


class CountResponse(CamelModel):
    count: int


# Declared before the /{user_id}/{promotion_id} routes so "count" is not taken as a user id.
@router.get("/count/{promotion_id}", response_model=CountResponse)
def get_save_count_endpoint(
    promotion_id: str,
    service: SavedPromotionService = Depends(get_saved_promotion_service),
):
    return CountResponse(count=service.save_count(promotion_id))


@router.get("/{user_id}", response_model=List[PromotionResponse])
def get_saved_promotions_endpoint(
    user_id: str, service: SavedPromotionService = Depends(get_saved_promotion_service)
):
    promotions = service.list_by_user(user_id)
    logger.info("Found %d saved promotions for user=%s", len(promotions), user_id)
    return [PromotionResponse.from_domain(p) for p in promotions]


@router.get("/{user_id}/category/{category}", response_model=List[PromotionResponse])
def get_saved_promotions_by_category_endpoint(
    user_id: str,
    category: str,
    service: SavedPromotionService = Depends(get_saved_promotion_service),
):
    promotions = service.list_by_user_and_category(user_id, category)
    return [PromotionResponse.from_domain(p) for p in promotions]


@router.get("/{user_id}/{promotion_id}", response_model=SavedFlagResponse)
def is_promotion_saved_endpoint(
    user_id: str,
    promotion_id: str,
    service: SavedPromotionService = Depends(get_saved_promotion_service),
):
    return SavedFlagResponse(saved=service.is_saved(user_id, promotion_id))


@router.post(
    "/{user_id}/{promotion_id}",
    response_model=Union[SavedPromotionResponse, MessageResponse],
)
def save_promotion_endpoint(
    user_id: str,
    promotion_id: str,
    service: SavedPromotionService = Depends(get_saved_promotion_service),
):
    with log_action(logger, "save-promotion", user=user_id, promotion=promotion_id):
        saved, created = service.save(user_id, promotion_id)
        if not created:
            return MessageResponse(message="Promotion is already saved")
        return SavedPromotionResponse.from_domain(saved)


@router.delete("/{user_id}/{promotion_id}", response_model=MessageResponse)
def remove_saved_promotion_endpoint(
    user_id: str,
    promotion_id: str,
    service: SavedPromotionService = Depends(get_saved_promotion_service),
):
    with log_action(logger, "unsave-promotion", user=user_id, promotion=promotion_id):
        if not service.unsave(user_id, promotion_id):
            return MessageResponse(message="Promotion was not saved, nothing to remove")
        return MessageResponse(message="Promotion removed successfully")
