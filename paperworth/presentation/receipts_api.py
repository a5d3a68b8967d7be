import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends

from paperworth.domain.models import Receipt
from paperworth.domain.services.receipt_service import ReceiptService
from paperworth.logging_config import log_action
from paperworth.presentation.dependencies import (
    get_current_identity,
    get_receipt_service,
)
from paperworth.presentation.schemas import CamelModel, MessageResponse, UtcDateTime

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/receipts",
    tags=["receipts"],
    dependencies=[Depends(get_current_identity)],
)


class ReceiptResponse(CamelModel):
    id: str
    user_id: Optional[str] = None
    merchant_name: Optional[str] = None
    date_of_purchase: UtcDateTime
    total_expense: float
    category: str
    image_url: Optional[str] = None
    items: Optional[List[str]] = None
    scan_date: Optional[UtcDateTime] = None

    @staticmethod
    def from_domain(r: Receipt) -> "ReceiptResponse":
        return ReceiptResponse(
            id=r.id,
            user_id=r.user_id,
            merchant_name=r.merchant_name,
            date_of_purchase=r.date_of_purchase,
            total_expense=r.total_expense,
            category=r.category,
            image_url=r.image_url,
            items=r.items,
            scan_date=r.scan_date,
        )


class CreateReceiptResponse(CamelModel):
    receipt: ReceiptResponse
    points_awarded: int


@router.post("", response_model=CreateReceiptResponse)
def create_receipt_endpoint(
    payload: Dict[str, Any] = Body(...),
    service: ReceiptService = Depends(get_receipt_service),
):
    with log_action(logger, "create-receipt", user=payload.get("userId")):
        receipt, points = service.create_receipt(payload)
        return CreateReceiptResponse(
            receipt=ReceiptResponse.from_domain(receipt), points_awarded=points
        )


@router.get("/user/{user_id}", response_model=List[ReceiptResponse])
def get_user_receipts_endpoint(
    user_id: str, service: ReceiptService = Depends(get_receipt_service)
):
    return [ReceiptResponse.from_domain(r) for r in service.get_user_receipts(user_id)]


@router.get("/user/{user_id}/recent", response_model=List[ReceiptResponse])
def get_recent_receipts_endpoint(
    user_id: str, service: ReceiptService = Depends(get_receipt_service)
):
    receipts = service.get_user_receipts(user_id, newest_first=True)
    return [ReceiptResponse.from_domain(r) for r in receipts]


@router.get("/{receipt_id}", response_model=ReceiptResponse)
def get_receipt_endpoint(
    receipt_id: str, service: ReceiptService = Depends(get_receipt_service)
):
    return ReceiptResponse.from_domain(service.get_receipt(receipt_id))


@router.delete("/{receipt_id}", response_model=MessageResponse)
def delete_receipt_endpoint(
    receipt_id: str, service: ReceiptService = Depends(get_receipt_service)
):
    with log_action(logger, "delete-receipt", receipt=receipt_id):
        service.delete_receipt(receipt_id)
        return MessageResponse(message="Receipt deleted")
