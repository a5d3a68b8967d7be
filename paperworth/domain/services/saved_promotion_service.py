import logging
from typing import List, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paperworth.data.repositories.promotion_repository import (
    count_saved_promotion,
    delete_saved_promotion,
    get_promotion,
    get_saved_promotion,
    get_saved_promotions_by_user,
    get_saved_promotions_by_user_and_category,
    insert_saved_promotion,
)
from paperworth.domain.errors import NotFound
from paperworth.domain.models import Promotion, SavedPromotion

logger = logging.getLogger(__name__)


def _with_saved_at(rows: List[Tuple[Promotion, SavedPromotion]]) -> List[Promotion]:
    promotions = []
    for promotion, saved in rows:
        promotion.saved_at = saved.saved_at
        promotions.append(promotion)
    return promotions


class SavedPromotionService:
    def __init__(self, db: Session):
        self.db = db

    def save(self, user_id: str, promotion_id: str) -> Tuple[SavedPromotion, bool]:
        """Returns the saved record and whether it was created by this call."""
        if get_promotion(self.db, promotion_id) is None:
            raise NotFound(f"Promotion not found with ID: {promotion_id}")

        existing = get_saved_promotion(self.db, user_id, promotion_id)
        if existing is not None:
            return existing, False
        try:
            return insert_saved_promotion(self.db, user_id, promotion_id), True
        except IntegrityError:
            self.db.rollback()
            return get_saved_promotion(self.db, user_id, promotion_id), False

    def unsave(self, user_id: str, promotion_id: str) -> bool:
        return delete_saved_promotion(self.db, user_id, promotion_id)

    def is_saved(self, user_id: str, promotion_id: str) -> bool:
        return get_saved_promotion(self.db, user_id, promotion_id) is not None

    def save_count(self, promotion_id: str) -> int:
        return count_saved_promotion(self.db, promotion_id)

    def list_by_user(self, user_id: str) -> List[Promotion]:
        return _with_saved_at(get_saved_promotions_by_user(self.db, user_id))

    def list_by_user_and_category(self, user_id: str, category: str) -> List[Promotion]:
        return _with_saved_at(
            get_saved_promotions_by_user_and_category(self.db, user_id, category)
        )
