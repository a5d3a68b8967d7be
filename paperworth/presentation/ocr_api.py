import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, UploadFile

from paperworth.domain.deadline import RequestDeadline
from paperworth.domain.services.ocr_service import OcrService, decode_base64_image
from paperworth.logging_config import log_action
from paperworth.presentation.dependencies import (
    get_current_identity,
    get_deadline,
    get_ocr_service,
)
from paperworth.presentation.schemas import CamelModel

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/ocr", tags=["ocr"], dependencies=[Depends(get_current_identity)]
)


class ScannedItem(CamelModel):
    name: str
    price: float
    quantity: int


class ScanResponse(CamelModel):
    full_text: str
    merchant_name: str
    total_amount: float
    date: str
    category: str
    items: Optional[List[ScannedItem]] = None


class Base64ScanRequest(CamelModel):
    base64_image: str


@router.post(
    "/scan", response_model=ScanResponse, response_model_exclude_none=True
)
def scan_receipt_endpoint(
    file: UploadFile = File(...),
    ocr: OcrService = Depends(get_ocr_service),
    deadline: RequestDeadline = Depends(get_deadline),
):
    with log_action(logger, "ocr-scan", file=file.filename):
        image_bytes = file.file.read()
        return ScanResponse.model_validate(ocr.scan(image_bytes, deadline))


@router.post(
    "/scan/base64", response_model=ScanResponse, response_model_exclude_none=True
)
def scan_receipt_base64_endpoint(
    req: Base64ScanRequest,
    ocr: OcrService = Depends(get_ocr_service),
    deadline: RequestDeadline = Depends(get_deadline),
):
    with log_action(logger, "ocr-scan-base64"):
        image_bytes = decode_base64_image(req.base64_image)
        return ScanResponse.model_validate(ocr.scan(image_bytes, deadline))
