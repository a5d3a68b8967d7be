import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Column, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Integer, String
from sqlalchemy.exc import IntegrityError

from paperworth.data.base import Base
from paperworth.domain.models import (
    PointSource,
    PointTransaction,
    TransactionType,
    UserPoints,
    utcnow,
)


class UserPointsORM(Base):
    __tablename__ = "user_points"
    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    user_id = Column(String, unique=True, index=True, nullable=False)
    total_points = Column(Integer, nullable=False, default=0)
    available_points = Column(Integer, nullable=False, default=0)
    spent_points = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime, nullable=False, default=utcnow)


class PointTransactionORM(Base):
    __tablename__ = "point_transactions"
    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    user_id = Column(String, index=True, nullable=False)
    points = Column(Integer, nullable=False)
    transaction_type = Column(SAEnum(TransactionType), nullable=False)
    source = Column(SAEnum(PointSource), nullable=False)
    reference_id = Column(String, index=True, nullable=True)
    description = Column(String, default="")
    transaction_date = Column(DateTime, nullable=False, index=True)


def user_points_to_domain(points_orm: UserPointsORM) -> UserPoints:
    return UserPoints(
        id=points_orm.id,
        user_id=points_orm.user_id,
        total_points=points_orm.total_points,
        available_points=points_orm.available_points,
        spent_points=points_orm.spent_points,
        last_updated=points_orm.last_updated,
    )


def transaction_to_domain(tx_orm: PointTransactionORM) -> PointTransaction:
    return PointTransaction(
        id=tx_orm.id,
        user_id=tx_orm.user_id,
        points=tx_orm.points,
        transaction_type=tx_orm.transaction_type,
        source=tx_orm.source,
        reference_id=tx_orm.reference_id,
        description=tx_orm.description or "",
        transaction_date=tx_orm.transaction_date,
    )


def get_user_points(db, user_id: str) -> Optional[UserPoints]:
    points = db.query(UserPointsORM).filter(UserPointsORM.user_id == user_id).first()
    return user_points_to_domain(points) if points else None


def ensure_user_points(db, user_id: str) -> UserPoints:
    """Load the user's points row, creating an empty one if absent."""
    existing = get_user_points(db, user_id)
    if existing:
        return existing
    db.add(UserPointsORM(user_id=user_id, last_updated=utcnow()))
    try:
        db.commit()
    except IntegrityError:
        # Another request created it first.
        db.rollback()
    return get_user_points(db, user_id)


def credit_points(db, user_id: str, points: int) -> None:
    """Add earned points. Does not commit."""
    db.query(UserPointsORM).filter(UserPointsORM.user_id == user_id).update(
        {
            "total_points": UserPointsORM.total_points + points,
            "available_points": UserPointsORM.available_points + points,
            "last_updated": utcnow(),
        },
        synchronize_session=False,
    )


def debit_points(db, user_id: str, points: int) -> bool:
    """Spend points if enough are available. Does not commit."""
    updated = (
        db.query(UserPointsORM)
        .filter(
            UserPointsORM.user_id == user_id,
            UserPointsORM.available_points >= points,
        )
        .update(
            {
                "available_points": UserPointsORM.available_points - points,
                "spent_points": UserPointsORM.spent_points + points,
                "last_updated": utcnow(),
            },
            synchronize_session=False,
        )
    )
    return updated > 0


def add_transaction(db, tx: PointTransaction, commit: bool = True) -> PointTransaction:
    db_tx = PointTransactionORM(
        id=tx.id or uuid.uuid4().hex,
        user_id=tx.user_id,
        points=tx.points,
        transaction_type=tx.transaction_type,
        source=tx.source,
        reference_id=tx.reference_id,
        description=tx.description,
        transaction_date=tx.transaction_date or utcnow(),
    )
    db.add(db_tx)
    if commit:
        db.commit()
        db.refresh(db_tx)
    else:
        db.flush()
    return transaction_to_domain(db_tx)


def get_transactions(
    db, user_id: str, since: Optional[datetime] = None
) -> List[PointTransaction]:
    query = db.query(PointTransactionORM).filter(PointTransactionORM.user_id == user_id)
    if since is not None:
        query = query.filter(PointTransactionORM.transaction_date > since)
    query = query.order_by(PointTransactionORM.transaction_date.desc())
    return [transaction_to_domain(t) for t in query.all()]


def get_transactions_by_type(
    db, user_id: str, transaction_type: TransactionType
) -> List[PointTransaction]:
    txs = (
        db.query(PointTransactionORM)
        .filter(
            PointTransactionORM.user_id == user_id,
            PointTransactionORM.transaction_type == transaction_type,
        )
        .order_by(PointTransactionORM.transaction_date.desc())
        .all()
    )
    return [transaction_to_domain(t) for t in txs]


def get_transactions_by_source(
    db, user_id: str, source: PointSource
) -> List[PointTransaction]:
    txs = (
        db.query(PointTransactionORM)
        .filter(
            PointTransactionORM.user_id == user_id,
            PointTransactionORM.source == source,
        )
        .order_by(PointTransactionORM.transaction_date.desc())
        .all()
    )
    return [transaction_to_domain(t) for t in txs]


def find_transaction_by_reference(
    db, source: PointSource, reference_id: str
) -> Optional[PointTransaction]:
    tx = (
        db.query(PointTransactionORM)
        .filter(
            PointTransactionORM.source == source,
            PointTransactionORM.reference_id == reference_id,
        )
        .first()
    )
    return transaction_to_domain(tx) if tx else None
