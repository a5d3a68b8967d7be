import uuid
from typing import List, Optional, Tuple

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint, func, or_

from paperworth.data.base import Base
from paperworth.domain.models import Promotion, SavedPromotion, utcnow


class PromotionORM(Base):
    __tablename__ = "promotions"
    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    merchant = Column(String, index=True, nullable=False)
    description = Column(Text, default="")
    expiry = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    location = Column(String, nullable=True)
    code = Column(String, nullable=True)
    conditions = Column(Text, nullable=True)
    category = Column(String, index=True, nullable=True)
    promotion_id = Column(Integer, index=True, nullable=True)


class SavedPromotionORM(Base):
    __tablename__ = "saved_promotions"
    __table_args__ = (
        UniqueConstraint("user_id", "promotion_id", name="uq_saved_promotion_user"),
    )
    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    user_id = Column(String, index=True, nullable=False)
    promotion_id = Column(String, index=True, nullable=False)
    saved_at = Column(DateTime, nullable=False, default=utcnow)


def promotion_to_domain(promotion_orm: PromotionORM) -> Promotion:
    return Promotion(
        id=promotion_orm.id,
        merchant=promotion_orm.merchant,
        description=promotion_orm.description or "",
        expiry=promotion_orm.expiry,
        image_url=promotion_orm.image_url,
        location=promotion_orm.location,
        code=promotion_orm.code,
        conditions=promotion_orm.conditions,
        category=promotion_orm.category,
        promotion_id=promotion_orm.promotion_id,
    )


def saved_promotion_to_domain(saved_orm: SavedPromotionORM) -> SavedPromotion:
    return SavedPromotion(
        id=saved_orm.id,
        user_id=saved_orm.user_id,
        promotion_id=saved_orm.promotion_id,
        saved_at=saved_orm.saved_at,
    )


def _contains(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


# --- Catalog ---


def get_all_promotions(db) -> List[Promotion]:
    promotions = db.query(PromotionORM).order_by(PromotionORM.merchant.asc()).all()
    return [promotion_to_domain(p) for p in promotions]


def get_promotion(db, promotion_id: str) -> Optional[Promotion]:
    promotion = db.query(PromotionORM).filter(PromotionORM.id == promotion_id).first()
    return promotion_to_domain(promotion) if promotion else None


def get_promotion_by_external_id(db, external_id: int) -> Optional[Promotion]:
    promotion = (
        db.query(PromotionORM).filter(PromotionORM.promotion_id == external_id).first()
    )
    return promotion_to_domain(promotion) if promotion else None


def get_promotions_by_category(db, category: str) -> List[Promotion]:
    promotions = (
        db.query(PromotionORM)
        .filter(func.lower(PromotionORM.category) == category.lower())
        .all()
    )
    return [promotion_to_domain(p) for p in promotions]


def get_promotions_by_merchant(db, merchant: str) -> List[Promotion]:
    promotions = (
        db.query(PromotionORM)
        .filter(PromotionORM.merchant.ilike(_contains(merchant), escape="\\"))
        .all()
    )
    return [promotion_to_domain(p) for p in promotions]


def search_promotions(db, term: str) -> List[Promotion]:
    """Case-insensitive substring match on merchant or description."""
    pattern = _contains(term)
    promotions = (
        db.query(PromotionORM)
        .filter(
            or_(
                PromotionORM.merchant.ilike(pattern, escape="\\"),
                PromotionORM.description.ilike(pattern, escape="\\"),
            )
        )
        .all()
    )
    return [promotion_to_domain(p) for p in promotions]


def get_promotions_expiring_after(db, date_iso: str) -> List[Promotion]:
    # Expiry is an ISO date string, so string order is date order.
    promotions = (
        db.query(PromotionORM)
        .filter(PromotionORM.expiry.isnot(None), PromotionORM.expiry > date_iso)
        .order_by(PromotionORM.expiry.asc())
        .all()
    )
    return [promotion_to_domain(p) for p in promotions]


def insert_promotion(db, promotion: Promotion) -> Promotion:
    db_promotion = PromotionORM(
        id=promotion.id or uuid.uuid4().hex,
        merchant=promotion.merchant,
        description=promotion.description,
        expiry=promotion.expiry,
        image_url=promotion.image_url,
        location=promotion.location,
        code=promotion.code,
        conditions=promotion.conditions,
        category=promotion.category,
        promotion_id=promotion.promotion_id,
    )
    db.add(db_promotion)
    db.commit()
    db.refresh(db_promotion)
    return promotion_to_domain(db_promotion)


def update_promotion(db, promotion_id: str, promotion: Promotion) -> Optional[Promotion]:
    db_promotion = db.query(PromotionORM).filter(PromotionORM.id == promotion_id).first()
    if not db_promotion:
        return None
    db_promotion.merchant = promotion.merchant
    db_promotion.description = promotion.description
    db_promotion.expiry = promotion.expiry
    db_promotion.image_url = promotion.image_url
    db_promotion.location = promotion.location
    db_promotion.code = promotion.code
    db_promotion.conditions = promotion.conditions
    db_promotion.category = promotion.category
    db_promotion.promotion_id = promotion.promotion_id
    db.commit()
    db.refresh(db_promotion)
    return promotion_to_domain(db_promotion)


def delete_promotion(db, promotion_id: str) -> bool:
    deleted = db.query(PromotionORM).filter(PromotionORM.id == promotion_id).delete(
        synchronize_session=False
    )
    db.commit()
    return deleted > 0


# --- Saved promotions ---


def get_saved_promotion(db, user_id: str, promotion_id: str) -> Optional[SavedPromotion]:
    saved = (
        db.query(SavedPromotionORM)
        .filter(
            SavedPromotionORM.user_id == user_id,
            SavedPromotionORM.promotion_id == promotion_id,
        )
        .first()
    )
    return saved_promotion_to_domain(saved) if saved else None


def insert_saved_promotion(db, user_id: str, promotion_id: str) -> SavedPromotion:
    """Raises IntegrityError if the user already saved this promotion."""
    saved = SavedPromotionORM(
        id=uuid.uuid4().hex,
        user_id=user_id,
        promotion_id=promotion_id,
        saved_at=utcnow(),
    )
    db.add(saved)
    db.commit()
    db.refresh(saved)
    return saved_promotion_to_domain(saved)


def delete_saved_promotion(db, user_id: str, promotion_id: str) -> bool:
    deleted = (
        db.query(SavedPromotionORM)
        .filter(
            SavedPromotionORM.user_id == user_id,
            SavedPromotionORM.promotion_id == promotion_id,
        )
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted > 0


def delete_saved_promotions_for_promotion(db, promotion_id: str) -> int:
    deleted = (
        db.query(SavedPromotionORM)
        .filter(SavedPromotionORM.promotion_id == promotion_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


def count_saved_promotion(db, promotion_id: str) -> int:
    return (
        db.query(SavedPromotionORM)
        .filter(SavedPromotionORM.promotion_id == promotion_id)
        .count()
    )


def get_saved_promotions_by_user(db, user_id: str) -> List[Tuple[Promotion, SavedPromotion]]:
    """Saved promotions of a user joined with their promotion, newest save first."""
    rows = (
        db.query(PromotionORM, SavedPromotionORM)
        .join(SavedPromotionORM, SavedPromotionORM.promotion_id == PromotionORM.id)
        .filter(SavedPromotionORM.user_id == user_id)
        .order_by(SavedPromotionORM.saved_at.desc())
        .all()
    )
    return [(promotion_to_domain(p), saved_promotion_to_domain(s)) for p, s in rows]


def get_saved_promotions_by_user_and_category(
    db, user_id: str, category: str
) -> List[Tuple[Promotion, SavedPromotion]]:
    rows = (
        db.query(PromotionORM, SavedPromotionORM)
        .join(SavedPromotionORM, SavedPromotionORM.promotion_id == PromotionORM.id)
        .filter(
            SavedPromotionORM.user_id == user_id,
            func.lower(PromotionORM.category) == category.lower(),
        )
        .order_by(SavedPromotionORM.saved_at.desc())
        .all()
    )
    return [(promotion_to_domain(p), saved_promotion_to_domain(s)) for p, s in rows]
