import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from paperworth.data.repositories.receipt_repository import (
    delete_receipt,
    get_receipt,
    get_receipts_by_user,
    insert_receipt,
)
from paperworth.domain.deadline import RequestDeadline
from paperworth.domain.errors import BadRequest, NotFound
from paperworth.domain.helpers.date_parsing import month_key, parse_purchase_date
from paperworth.domain.helpers.receipt_parser import DEFAULT_CATEGORY
from paperworth.domain.models import Receipt, utcnow
from paperworth.domain.services.budget_service import BudgetService
from paperworth.domain.services.rewards_service import RewardsService

logger = logging.getLogger(__name__)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_amount(payload: Dict[str, Any]) -> float:
    """Read ``totalExpense`` or the older ``totalAmount``; numbers or numeric strings."""
    raw = payload.get("totalExpense")
    if raw is None:
        raw = payload.get("totalAmount")
    if raw is None or raw == "":
        return 0.0
    if isinstance(raw, bool):
        raise BadRequest("Total amount must be a number")
    if isinstance(raw, (int, float)):
        amount = float(raw)
    else:
        try:
            amount = float(str(raw).strip().lstrip("$").replace(",", ""))
        except ValueError:
            raise BadRequest(f"Unparseable total amount: {raw!r}")
    if amount < 0:
        raise BadRequest("Total amount cannot be negative")
    return amount


def parse_items(raw: Any) -> Optional[List[str]]:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise BadRequest("Items must be a list")
    items = []
    for item in raw:
        if isinstance(item, dict):
            items.append(str(item.get("name") or ""))
        elif item is None:
            items.append("")
        else:
            items.append(str(item))
    return items


def receipt_from_payload(payload: Dict[str, Any]) -> Receipt:
    return Receipt(
        id=None,
        user_id=_optional_str(payload.get("userId")),
        merchant_name=_optional_str(payload.get("merchantName")),
        date_of_purchase=parse_purchase_date(_optional_str(payload.get("dateOfPurchase"))),
        total_expense=parse_amount(payload),
        category=_optional_str(payload.get("category")) or DEFAULT_CATEGORY,
        image_url=_optional_str(payload.get("imageUrl")),
        items=parse_items(payload.get("items")),
        scan_date=utcnow(),
    )


class ReceiptService:
    """
    Receipt create and delete flows. The receipt row is the primary effect;
    budget and points updates that follow are best effort.
    """

    def __init__(
        self,
        db: Session,
        budgets: BudgetService,
        rewards: RewardsService,
        deadline: RequestDeadline,
    ):
        self.db = db
        self.budgets = budgets
        self.rewards = rewards
        self.deadline = deadline

    def create_receipt(self, payload: Dict[str, Any]) -> Tuple[Receipt, int]:
        receipt = insert_receipt(self.db, receipt_from_payload(payload))
        logger.info("Saved receipt=%s user=%s total=%.2f", receipt.id, receipt.user_id, receipt.total_expense)

        if not receipt.user_id:
            return receipt, 0

        if receipt.total_expense > 0:
            self.deadline.check("budget update")
            try:
                self.budgets.add_expense(
                    receipt.user_id,
                    month_key(receipt.date_of_purchase),
                    receipt.category,
                    receipt.total_expense,
                )
            except Exception:
                self.db.rollback()
                logger.exception("Budget update failed for receipt=%s", receipt.id)

        self.deadline.check("points award")
        points_awarded = 0
        try:
            tx = self.rewards.award_points_for_receipt(receipt.id)
            points_awarded = tx.points
        except Exception:
            self.db.rollback()
            logger.exception("Points award failed for receipt=%s", receipt.id)
        return receipt, points_awarded

    def get_receipt(self, receipt_id: str) -> Receipt:
        receipt = get_receipt(self.db, receipt_id)
        if receipt is None:
            raise NotFound(f"Receipt {receipt_id} not found")
        return receipt

    def get_user_receipts(self, user_id: str, newest_first: bool = False) -> List[Receipt]:
        return get_receipts_by_user(self.db, user_id, newest_first=newest_first)

    def delete_receipt(self, receipt_id: str) -> None:
        """Delete and revert the budget expense. Awarded points are kept."""
        receipt = self.get_receipt(receipt_id)
        delete_receipt(self.db, receipt_id)
        logger.info("Deleted receipt=%s user=%s", receipt_id, receipt.user_id)

        if receipt.user_id and receipt.total_expense > 0:
            self.deadline.check("budget revert")
            self.budgets.remove_expense(
                receipt.user_id,
                month_key(receipt.date_of_purchase),
                receipt.category,
                receipt.total_expense,
            )
