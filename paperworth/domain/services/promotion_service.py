import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from paperworth.data.cache import (
    PROMOTIONS_ALL_KEY,
    PROMOTIONS_PATTERN,
    RedisCache,
    promotion_id_key,
    promotions_category_key,
    promotions_merchant_key,
)
from paperworth.data.repositories.promotion_repository import (
    delete_promotion,
    delete_saved_promotions_for_promotion,
    get_all_promotions,
    get_promotion,
    get_promotion_by_external_id,
    get_promotions_by_category,
    get_promotions_by_merchant,
    get_promotions_expiring_after,
    insert_promotion,
    search_promotions,
    update_promotion,
)
from paperworth.data.repositories.receipt_repository import get_receipt
from paperworth.domain.errors import BadRequest, NotFound
from paperworth.domain.models import Promotion, utcnow

logger = logging.getLogger(__name__)

# Sample receipt ids used by the demo client
DEMO_RECEIPT_CATEGORIES: Dict[str, str] = {
    "1": "Groceries",
    "2": "Cafes",
    "3": "Fast Food",
}


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class PromotionService:
    def __init__(self, db: Session, cache: RedisCache):
        self.db = db
        self.cache = cache

    def _cached_list(self, key: str, load) -> List[Promotion]:
        cached = self.cache.get(key)
        if cached is not None:
            return [Promotion.from_dict(p) for p in cached]
        promotions = load()
        self.cache.set(key, [p.to_dict() for p in promotions])
        return promotions

    # --- Queries ---

    def get_all_promotions(self) -> List[Promotion]:
        return self._cached_list(PROMOTIONS_ALL_KEY, lambda: get_all_promotions(self.db))

    def get_promotions_by_category(self, category: str) -> List[Promotion]:
        return self._cached_list(
            promotions_category_key(category),
            lambda: get_promotions_by_category(self.db, category),
        )

    def get_promotions_by_merchant(self, merchant: str) -> List[Promotion]:
        return self._cached_list(
            promotions_merchant_key(merchant),
            lambda: get_promotions_by_merchant(self.db, merchant),
        )

    def get_promotion(self, promotion_id: str) -> Promotion:
        cached = self.cache.get(promotion_id_key(promotion_id))
        if cached is not None:
            return Promotion.from_dict(cached)
        promotion = get_promotion(self.db, promotion_id)
        if promotion is None:
            raise NotFound(f"Promotion {promotion_id} not found")
        self.cache.set(promotion_id_key(promotion_id), promotion.to_dict())
        return promotion

    def get_promotion_by_external_id(self, external_id: int) -> Promotion:
        promotion = get_promotion_by_external_id(self.db, external_id)
        if promotion is None:
            raise NotFound(f"Promotion {external_id} not found")
        return promotion

    def search(self, query: str) -> List[Promotion]:
        if _blank(query):
            raise BadRequest("Search query is required")
        return search_promotions(self.db, query.strip())

    def get_active_promotions(self) -> List[Promotion]:
        return get_promotions_expiring_after(self.db, utcnow().date().isoformat())

    def match(self, merchant: Optional[str], category: Optional[str]) -> List[Promotion]:
        """
        Merchant matches merchant or description by substring; category matches
        exactly but case-insensitively. With both, the result is the union.
        """
        has_merchant = not _blank(merchant)
        has_category = not _blank(category)
        if not has_merchant and not has_category:
            return self.get_all_promotions()
        if has_merchant and not has_category:
            return search_promotions(self.db, merchant.strip())
        if has_category and not has_merchant:
            return get_promotions_by_category(self.db, category.strip())

        seen = set()
        result = []
        for promotion in search_promotions(self.db, merchant.strip()) + get_promotions_by_category(
            self.db, category.strip()
        ):
            if promotion.id not in seen:
                seen.add(promotion.id)
                result.append(promotion)
        return result

    def match_for_receipt(self, receipt_id: str) -> List[Promotion]:
        receipt = get_receipt(self.db, receipt_id)
        if receipt is not None and (
            not _blank(receipt.merchant_name) or not _blank(receipt.category)
        ):
            return self.match(receipt.merchant_name, receipt.category)

        fallback = DEMO_RECEIPT_CATEGORIES.get(receipt_id)
        if fallback:
            return self.get_promotions_by_category(fallback)
        return []

    # --- Admin ---

    def create_promotion(self, promotion: Promotion) -> Promotion:
        created = insert_promotion(self.db, promotion)
        self._invalidate()
        logger.info("Created promotion %s for %s", created.id, created.merchant)
        return created

    def update_promotion(self, promotion_id: str, promotion: Promotion) -> Promotion:
        updated = update_promotion(self.db, promotion_id, promotion)
        if updated is None:
            raise NotFound(f"Promotion {promotion_id} not found")
        self._invalidate()
        return updated

    def delete_promotion(self, promotion_id: str) -> None:
        if not delete_promotion(self.db, promotion_id):
            raise NotFound(f"Promotion {promotion_id} not found")
        removed = delete_saved_promotions_for_promotion(self.db, promotion_id)
        if removed:
            logger.info("Removed %d saved entries of promotion %s", removed, promotion_id)
        self._invalidate()

    def _invalidate(self) -> None:
        self.cache.delete_pattern(PROMOTIONS_PATTERN)
