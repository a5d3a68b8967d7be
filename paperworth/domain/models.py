# paperworth/domain/models.py
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


def utcnow() -> datetime:
    """Naive UTC timestamp; every stored timestamp is UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TransactionType(Enum):
    EARNED = "EARNED"
    SPENT = "SPENT"


class PointSource(Enum):
    RECEIPT_SCAN = "RECEIPT_SCAN"
    REWARD_REDEMPTION = "REWARD_REDEMPTION"
    WELCOME_BONUS = "WELCOME_BONUS"


class RedemptionStatus(Enum):
    PENDING = "PENDING"
    FULFILLED = "FULFILLED"
    CANCELLED = "CANCELLED"


VOUCHER_CATEGORY = "VOUCHER"


@dataclass
class User:
    id: int
    email: str
    name: str
    firebase_id: Optional[str] = None
    password_hash: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Receipt:
    id: Optional[str]
    user_id: Optional[str]
    merchant_name: Optional[str]
    date_of_purchase: datetime
    total_expense: float = 0.0
    category: str = "Others"
    image_url: Optional[str] = None
    items: Optional[List[str]] = None
    scan_date: Optional[datetime] = None

    def __post_init__(self):
        if self.total_expense < 0:
            raise ValueError("Receipt total cannot be negative.")


@dataclass
class BudgetCategory:
    category: str
    budget_amount: float = 0.0
    spent_amount: float = 0.0
    transactions: int = 0

    def add_expense(self, amount: float) -> None:
        self.spent_amount += amount
        self.transactions += 1

    def subtract_expense(self, amount: float) -> None:
        self.spent_amount = max(0.0, self.spent_amount - amount)
        self.transactions = max(0, self.transactions - 1)


@dataclass
class Budget:
    id: Optional[str]
    user_id: str
    month_year: str
    total_budget: float
    total_spent: float = 0.0
    categories: List[BudgetCategory] = field(default_factory=list)
    version: int = 0

    def find_category(self, name: str) -> Optional[BudgetCategory]:
        wanted = (name or "").lower()
        for category in self.categories:
            if category.category.lower() == wanted:
                return category
        return None

    def update_total_spent(self) -> None:
        self.total_spent = sum(c.spent_amount for c in self.categories)

    def to_dict(self) -> dict:
        return asdict(self)

    @staticmethod
    def from_dict(data: dict) -> "Budget":
        categories = [BudgetCategory(**c) for c in data.get("categories", [])]
        return Budget(**{**data, "categories": categories})


@dataclass
class UserPoints:
    user_id: str
    total_points: int = 0
    available_points: int = 0
    spent_points: int = 0
    last_updated: Optional[datetime] = None
    id: Optional[str] = None


@dataclass
class PointTransaction:
    id: Optional[str]
    user_id: str
    points: int
    transaction_type: TransactionType
    source: PointSource
    reference_id: Optional[str]
    description: str = ""
    transaction_date: Optional[datetime] = None


@dataclass
class Reward:
    id: Optional[str]
    name: str
    points_cost: int
    category: str
    description: str = ""
    image_url: Optional[str] = None
    is_available: bool = True
    quantity: int = 0
    merchant_name: Optional[str] = None
    terms_conditions: Optional[str] = None
    expiry_date: Optional[datetime] = None

    def __post_init__(self):
        if self.points_cost <= 0:
            raise ValueError("Reward point cost must be positive.")
        if self.quantity < 0:
            raise ValueError("Reward quantity cannot be negative.")


@dataclass
class UserReward:
    id: Optional[str]
    user_id: str
    reward_id: str
    reward_name: str
    points_spent: int
    status: RedemptionStatus
    redeemed_date: Optional[datetime] = None
    redemption_code: Optional[str] = None
    delivery_info: Optional[str] = None
    expiry_date: Optional[datetime] = None


@dataclass
class Promotion:
    id: Optional[str]
    merchant: str
    description: str = ""
    expiry: Optional[str] = None
    image_url: Optional[str] = None
    location: Optional[str] = None
    code: Optional[str] = None
    conditions: Optional[str] = None
    category: Optional[str] = None
    promotion_id: Optional[int] = None
    # Set only on outgoing saved-promotion views; never stored.
    saved_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("saved_at")
        return data

    @staticmethod
    def from_dict(data: dict) -> "Promotion":
        return Promotion(**data)


@dataclass
class SavedPromotion:
    id: Optional[str]
    user_id: str
    promotion_id: str
    saved_at: Optional[datetime] = None
