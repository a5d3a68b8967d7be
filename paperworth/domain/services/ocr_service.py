import base64
import binascii
import io
import logging
from typing import Any, Dict, Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from paperworth.domain.deadline import RequestDeadline
from paperworth.domain.errors import BadRequest, InternalError
from paperworth.domain.helpers.receipt_parser import extract_receipt_fields
from paperworth.integrations.vision_client import VisionClient, VisionError

logger = logging.getLogger(__name__)

MAX_DIMENSION = 1500
OCR_TIMEOUT_CAP_SECONDS = 20.0


def preprocess_image(image_bytes: bytes) -> bytes:
    """Shrink to fit 1500x1500, convert to grayscale and re-encode as PNG."""
    try:
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise BadRequest(f"Unsupported or corrupt image: {e}")

    image = ImageOps.exif_transpose(image)
    if image.width > MAX_DIMENSION or image.height > MAX_DIMENSION:
        image.thumbnail((MAX_DIMENSION, MAX_DIMENSION), Image.Resampling.LANCZOS)
    grayscale = image.convert("L")

    out = io.BytesIO()
    grayscale.save(out, format="PNG")
    return out.getvalue()


def decode_base64_image(value: str) -> bytes:
    if not value or not value.strip():
        raise BadRequest("No image data provided")
    value = value.strip()
    if value.startswith("data:") and "," in value:
        value = value.split(",", 1)[1]
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise BadRequest("Image data is not valid base64")


class OcrService:
    def __init__(self, vision: Optional[VisionClient]):
        self.vision = vision

    def scan(self, image_bytes: bytes, deadline: RequestDeadline) -> Dict[str, Any]:
        if not image_bytes:
            raise BadRequest("Please upload an image file")
        if self.vision is None:
            raise InternalError("OCR provider is not configured")

        processed = preprocess_image(image_bytes)
        deadline.check("OCR request")
        try:
            text = self.vision.detect_text(
                processed, timeout=deadline.timeout(OCR_TIMEOUT_CAP_SECONDS)
            )
        except VisionError as e:
            logger.error("OCR provider error: %s", e)
            raise InternalError(f"Error processing image: {e}")

        fields = extract_receipt_fields(text)
        logger.info(
            "Extracted receipt merchant=%s total=%s category=%s",
            fields["merchantName"],
            fields["totalAmount"],
            fields["category"],
        )
        return fields
