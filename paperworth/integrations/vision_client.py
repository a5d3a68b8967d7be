import base64
import logging
from typing import Optional

import requests
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from paperworth.config import Settings, load_credentials_json

logger = logging.getLogger(__name__)

VISION_ANNOTATE_URL = "https://vision.googleapis.com/v1/images:annotate"
VISION_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]


class VisionError(Exception):
    """The OCR provider rejected the request or returned an error."""


class VisionClient:
    """Minimal Google Cloud Vision client for TEXT_DETECTION."""

    def __init__(self, session: requests.Session, api_key: Optional[str] = None):
        self.session = session
        self.api_key = api_key

    def detect_text(self, image_bytes: bytes, timeout: float) -> str:
        body = {
            "requests": [
                {
                    "image": {"content": base64.b64encode(image_bytes).decode("ascii")},
                    "features": [{"type": "TEXT_DETECTION"}],
                }
            ]
        }
        params = {"key": self.api_key} if self.api_key else None
        try:
            resp = self.session.post(
                VISION_ANNOTATE_URL, json=body, params=params, timeout=timeout
            )
        except requests.RequestException as e:
            raise VisionError(f"OCR request failed: {e}") from e

        try:
            payload = resp.json()
        except ValueError:
            raise VisionError(f"OCR provider returned HTTP {resp.status_code}")
        if resp.status_code >= 400:
            message = payload.get("error", {}).get("message") or resp.reason
            raise VisionError(message)

        texts = []
        for res in payload.get("responses", []):
            if res.get("error"):
                raise VisionError(res["error"].get("message", "Unknown OCR error"))
            full = res.get("fullTextAnnotation", {}).get("text")
            if full is None and res.get("textAnnotations"):
                full = res["textAnnotations"][0].get("description")
            if full:
                texts.append(full)
        return "".join(texts)


def build_vision_client(settings: Settings) -> Optional[VisionClient]:
    info = load_credentials_json(settings.google_credentials)
    if info:
        credentials = service_account.Credentials.from_service_account_info(
            info, scopes=VISION_SCOPES
        )
        logger.info("Vision client using service account %s", info.get("client_email"))
        return VisionClient(AuthorizedSession(credentials))
    if settings.vision_api_key:
        logger.info("Vision client using API key")
        return VisionClient(requests.Session(), api_key=settings.vision_api_key)
    logger.warning("No Vision credentials configured, OCR scanning is disabled")
    return None
