import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from paperworth.domain.models import Promotion
from paperworth.domain.services.promotion_service import PromotionService
from paperworth.logging_config import log_action
from paperworth.presentation.dependencies import (
    get_current_identity,
    get_promotion_service,
)
from paperworth.presentation.schemas import CamelModel, UtcDateTime

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/promotions",
    tags=["promotions"],
    dependencies=[Depends(get_current_identity)],
)


class PromotionRequest(CamelModel):
    merchant: str
    description: str = ""
    expiry: Optional[str] = None
    image_url: Optional[str] = None
    location: Optional[str] = None
    code: Optional[str] = None
    conditions: Optional[str] = None
    category: Optional[str] = None
    promotion_id: Optional[int] = None

    def to_domain(self) -> Promotion:
        return Promotion(
            id=None,
            merchant=self.merchant,
            description=self.description,
            expiry=self.expiry,
            image_url=self.image_url,
            location=self.location,
            code=self.code,
            conditions=self.conditions,
            category=self.category,
            promotion_id=self.promotion_id,
        )


class PromotionResponse(PromotionRequest):
    id: str
    saved_at: Optional[UtcDateTime] = None

    @staticmethod
    def from_domain(p: Promotion) -> "PromotionResponse":
        return PromotionResponse(
            id=p.id,
            merchant=p.merchant,
            description=p.description,
            expiry=p.expiry,
            image_url=p.image_url,
            location=p.location,
            code=p.code,
            conditions=p.conditions,
            category=p.category,
            promotion_id=p.promotion_id,
            saved_at=p.saved_at,
        )


def _many(promotions: List[Promotion]) -> List[PromotionResponse]:
    return [PromotionResponse.from_domain(p) for p in promotions]


@router.get("", response_model=List[PromotionResponse])
def get_all_promotions_endpoint(
    service: PromotionService = Depends(get_promotion_service),
):
    return _many(service.get_all_promotions())


@router.get("/category/{category}", response_model=List[PromotionResponse])
def get_promotions_by_category_endpoint(
    category: str, service: PromotionService = Depends(get_promotion_service)
):
    return _many(service.get_promotions_by_category(category))


@router.get("/merchant/{merchant}", response_model=List[PromotionResponse])
def get_promotions_by_merchant_endpoint(
    merchant: str, service: PromotionService = Depends(get_promotion_service)
):
    return _many(service.get_promotions_by_merchant(merchant))


@router.get("/match", response_model=List[PromotionResponse])
def match_promotions_endpoint(
    merchant: Optional[str] = None,
    category: Optional[str] = None,
    service: PromotionService = Depends(get_promotion_service),
):
    return _many(service.match(merchant, category))


@router.get("/receipt/{receipt_id}", response_model=List[PromotionResponse])
def get_promotions_for_receipt_endpoint(
    receipt_id: str, service: PromotionService = Depends(get_promotion_service)
):
    return _many(service.match_for_receipt(receipt_id))


@router.get("/search", response_model=List[PromotionResponse])
def search_promotions_endpoint(
    query: str = Query(..., description="Text in merchant or description"),
    service: PromotionService = Depends(get_promotion_service),
):
    return _many(service.search(query))


@router.get("/active", response_model=List[PromotionResponse])
def get_active_promotions_endpoint(
    service: PromotionService = Depends(get_promotion_service),
):
    return _many(service.get_active_promotions())


@router.get("/id/{promotion_id}", response_model=PromotionResponse)
def get_promotion_by_external_id_endpoint(
    promotion_id: int, service: PromotionService = Depends(get_promotion_service)
):
    return PromotionResponse.from_domain(service.get_promotion_by_external_id(promotion_id))


@router.get("/{id}", response_model=PromotionResponse)
def get_promotion_endpoint(
    id: str, service: PromotionService = Depends(get_promotion_service)
):
    return PromotionResponse.from_domain(service.get_promotion(id))


@router.post("", response_model=PromotionResponse, status_code=201)
def create_promotion_endpoint(
    req: PromotionRequest, service: PromotionService = Depends(get_promotion_service)
):
    with log_action(logger, "create-promotion", merchant=req.merchant):
        return PromotionResponse.from_domain(service.create_promotion(req.to_domain()))


@router.put("/{id}", response_model=PromotionResponse)
def update_promotion_endpoint(
    id: str,
    req: PromotionRequest,
    service: PromotionService = Depends(get_promotion_service),
):
    with log_action(logger, "update-promotion", promotion=id):
        return PromotionResponse.from_domain(service.update_promotion(id, req.to_domain()))


@router.delete("/{id}", status_code=204)
def delete_promotion_endpoint(
    id: str, service: PromotionService = Depends(get_promotion_service)
):
    with log_action(logger, "delete-promotion", promotion=id):
        service.delete_promotion(id)
    return Response(status_code=204)
