from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from paperworth.config import Settings, get_settings
from paperworth.data.base import get_db
from paperworth.data.cache import RedisCache, build_cache
from paperworth.domain.deadline import RequestDeadline
from paperworth.domain.errors import Forbidden, Unauthorized
from paperworth.domain.services.auth_service import Identity, TokenVerifier
from paperworth.domain.services.budget_service import BudgetService
from paperworth.domain.services.ocr_service import OcrService
from paperworth.domain.services.promotion_service import PromotionService
from paperworth.domain.services.receipt_service import ReceiptService
from paperworth.domain.services.rewards_service import RewardsService
from paperworth.domain.services.saved_promotion_service import SavedPromotionService
from paperworth.integrations.firebase_tokens import FirebaseTokenVerifier
from paperworth.integrations.vision_client import VisionClient, build_vision_client

IDENTITY_TIMEOUT_CAP_SECONDS = 10.0

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_cache() -> RedisCache:
    return build_cache(get_settings())


@lru_cache
def get_vision_client() -> Optional[VisionClient]:
    return build_vision_client(get_settings())


@lru_cache
def get_token_verifier() -> TokenVerifier:
    settings = get_settings()
    return TokenVerifier(
        settings, FirebaseTokenVerifier(settings.resolve_firebase_project_id())
    )


def get_deadline(settings: Settings = Depends(get_settings)) -> RequestDeadline:
    return RequestDeadline(settings.request_timeout_seconds)


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    verifier: TokenVerifier = Depends(get_token_verifier),
    deadline: RequestDeadline = Depends(get_deadline),
) -> Identity:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("Missing bearer token")
    return verifier.verify(
        credentials.credentials, timeout=deadline.timeout(IDENTITY_TIMEOUT_CAP_SECONDS)
    )


def require_admin(
    identity: Identity = Depends(get_current_identity),
    settings: Settings = Depends(get_settings),
) -> Identity:
    if not identity.email or identity.email.lower() not in settings.admin_emails:
        raise Forbidden("Administrator access required")
    return identity


# --- Services ---


def get_budget_service(
    db: Session = Depends(get_db), cache: RedisCache = Depends(get_cache)
) -> BudgetService:
    return BudgetService(db, cache)


def get_rewards_service(
    db: Session = Depends(get_db), settings: Settings = Depends(get_settings)
) -> RewardsService:
    return RewardsService(db, settings)


def get_promotion_service(
    db: Session = Depends(get_db), cache: RedisCache = Depends(get_cache)
) -> PromotionService:
    return PromotionService(db, cache)


def get_saved_promotion_service(db: Session = Depends(get_db)) -> SavedPromotionService:
    return SavedPromotionService(db)


def get_ocr_service(
    vision: Optional[VisionClient] = Depends(get_vision_client),
) -> OcrService:
    return OcrService(vision)


def get_receipt_service(
    db: Session = Depends(get_db),
    budgets: BudgetService = Depends(get_budget_service),
    rewards: RewardsService = Depends(get_rewards_service),
    deadline: RequestDeadline = Depends(get_deadline),
) -> ReceiptService:
    return ReceiptService(db, budgets, rewards, deadline)
