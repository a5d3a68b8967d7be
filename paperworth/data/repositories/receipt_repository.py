import json
import uuid
from typing import List, Optional

from sqlalchemy import Column, DateTime, Float, String, Text

from paperworth.data.base import Base
from paperworth.domain.models import Receipt


class ReceiptORM(Base):
    __tablename__ = "receipts"
    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    user_id = Column(String, index=True, nullable=True)
    merchant_name = Column(String, nullable=True)
    date_of_purchase = Column(DateTime, nullable=False)
    total_expense = Column(Float, nullable=False, default=0.0)
    category = Column(String, nullable=False, default="Others")
    image_url = Column(String, nullable=True)
    items_json = Column(Text, nullable=True)
    scan_date = Column(DateTime, nullable=False, index=True)


def receipt_to_domain(receipt_orm: ReceiptORM) -> Receipt:
    return Receipt(
        id=receipt_orm.id,
        user_id=receipt_orm.user_id,
        merchant_name=receipt_orm.merchant_name,
        date_of_purchase=receipt_orm.date_of_purchase,
        total_expense=receipt_orm.total_expense,
        category=receipt_orm.category,
        image_url=receipt_orm.image_url,
        items=json.loads(receipt_orm.items_json) if receipt_orm.items_json else None,
        scan_date=receipt_orm.scan_date,
    )


def insert_receipt(db, receipt: Receipt) -> Receipt:
    db_receipt = ReceiptORM(
        id=receipt.id or uuid.uuid4().hex,
        user_id=receipt.user_id,
        merchant_name=receipt.merchant_name,
        date_of_purchase=receipt.date_of_purchase,
        total_expense=receipt.total_expense,
        category=receipt.category,
        image_url=receipt.image_url,
        items_json=json.dumps(receipt.items) if receipt.items is not None else None,
        scan_date=receipt.scan_date,
    )
    db.add(db_receipt)
    db.commit()
    db.refresh(db_receipt)
    return receipt_to_domain(db_receipt)


def get_receipt(db, receipt_id: str) -> Optional[Receipt]:
    receipt = db.query(ReceiptORM).filter(ReceiptORM.id == receipt_id).first()
    return receipt_to_domain(receipt) if receipt else None


def get_receipts_by_user(db, user_id: str, newest_first: bool = False) -> List[Receipt]:
    query = db.query(ReceiptORM).filter(ReceiptORM.user_id == user_id)
    if newest_first:
        query = query.order_by(ReceiptORM.scan_date.desc())
    else:
        query = query.order_by(ReceiptORM.scan_date.asc())
    return [receipt_to_domain(r) for r in query.all()]


def delete_receipt(db, receipt_id: str) -> bool:
    deleted = db.query(ReceiptORM).filter(ReceiptORM.id == receipt_id).delete(
        synchronize_session=False
    )
    db.commit()
    return deleted > 0
