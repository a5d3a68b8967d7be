import logging
import math
import uuid
from datetime import timedelta
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paperworth.config import Settings
from paperworth.data.repositories.points_repository import (
    add_transaction,
    credit_points,
    debit_points,
    ensure_user_points,
    find_transaction_by_reference,
    get_transactions,
    get_transactions_by_source,
    get_transactions_by_type,
    get_user_points,
)
from paperworth.data.repositories.receipt_repository import get_receipt
from paperworth.data.repositories.reward_repository import (
    add_user_reward,
    delete_reward,
    get_affordable_rewards,
    get_available_rewards,
    get_available_rewards_by_category,
    get_reward,
    get_user_rewards,
    get_user_rewards_by_status,
    get_user_rewards_expiring,
    get_user_rewards_since,
    insert_reward,
    take_one_from_stock,
    update_reward,
    update_user_reward,
)
from paperworth.domain.errors import BadRequest, Conflict, InsufficientPoints, NotFound
from paperworth.domain.models import (
    VOUCHER_CATEGORY,
    PointSource,
    PointTransaction,
    RedemptionStatus,
    Reward,
    TransactionType,
    UserPoints,
    UserReward,
    utcnow,
)

logger = logging.getLogger(__name__)

WELCOME_BONUS_POINTS = 100
WELCOME_BONUS_NAME = "Welcome Bonus"
WELCOME_BONUS_REWARD_ID = "welcome-bonus"
WELCOME_BONUS_CODE = "WELCOME100"
VOUCHER_VALIDITY = relativedelta(months=6)
# Upper bound for day windows; larger values overflow datetime.
MAX_WINDOW_DAYS = 36500


def generate_voucher_code() -> str:
    return "PW-" + uuid.uuid4().hex[:8].upper()


def window(days: int) -> timedelta:
    return timedelta(days=min(days, MAX_WINDOW_DAYS))


def parse_enum(enum_cls, value: str, what: str):
    try:
        return enum_cls((value or "").strip().upper())
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise BadRequest(f"Invalid {what} '{value}', expected one of: {allowed}")


class RewardsService:
    """Points ledger, reward catalog and redemptions."""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.points_per_dollar = settings.points_per_dollar
        self.base_points = settings.base_points_per_receipt

    def calculate_points(self, total_expense: float) -> int:
        return int(math.floor(total_expense * self.points_per_dollar)) + self.base_points

    # --- Points ---

    def get_user_points(self, user_id: str) -> UserPoints:
        return ensure_user_points(self.db, user_id)

    def find_user_points(self, user_id: str) -> Optional[UserPoints]:
        return get_user_points(self.db, user_id)

    def award_points_for_receipt(self, receipt_id: str) -> PointTransaction:
        """
        Credit the receipt owner. Awarding the same receipt twice returns the
        first ledger entry instead of crediting again.
        """
        receipt = get_receipt(self.db, receipt_id)
        if receipt is None:
            raise NotFound(f"Receipt {receipt_id} not found")
        if not receipt.user_id:
            raise BadRequest("Receipt has no owner to award points to")

        existing = find_transaction_by_reference(
            self.db, PointSource.RECEIPT_SCAN, receipt_id
        )
        if existing is not None:
            return existing

        points = self.calculate_points(receipt.total_expense)
        ensure_user_points(self.db, receipt.user_id)
        try:
            credit_points(self.db, receipt.user_id, points)
            tx = add_transaction(
                self.db,
                PointTransaction(
                    id=f"receipt-{receipt_id}",
                    user_id=receipt.user_id,
                    points=points,
                    transaction_type=TransactionType.EARNED,
                    source=PointSource.RECEIPT_SCAN,
                    reference_id=receipt_id,
                    description=f"Points earned from receipt at {receipt.merchant_name or 'unknown merchant'}",
                ),
                commit=False,
            )
            self.db.commit()
        except IntegrityError:
            # Awarded concurrently; keep the first award.
            self.db.rollback()
            return find_transaction_by_reference(
                self.db, PointSource.RECEIPT_SCAN, receipt_id
            )
        logger.info("Awarded %d points user=%s receipt=%s", points, receipt.user_id, receipt_id)
        return tx

    def get_point_transactions(
        self, user_id: str, days: Optional[int] = None
    ) -> List[PointTransaction]:
        since = utcnow() - window(days) if days and days > 0 else None
        return get_transactions(self.db, user_id, since=since)

    def get_transactions_by_type(self, user_id: str, transaction_type: str):
        return get_transactions_by_type(
            self.db, user_id, parse_enum(TransactionType, transaction_type, "transaction type")
        )

    def get_transactions_by_source(self, user_id: str, source: str):
        return get_transactions_by_source(
            self.db, user_id, parse_enum(PointSource, source, "source")
        )

    # --- Catalog ---

    def get_available_rewards(self) -> List[Reward]:
        return get_available_rewards(self.db)

    def get_rewards_by_category(self, category: str) -> List[Reward]:
        return get_available_rewards_by_category(self.db, category)

    def get_affordable_rewards(self, user_id: str) -> List[Reward]:
        points = self.get_user_points(user_id)
        return get_affordable_rewards(self.db, points.available_points)

    def get_reward(self, reward_id: str) -> Reward:
        reward = get_reward(self.db, reward_id)
        if reward is None:
            raise NotFound(f"Reward {reward_id} not found")
        return reward

    def add_reward(self, reward: Reward) -> Reward:
        created = insert_reward(self.db, reward)
        logger.info("Added reward %s (%s)", created.id, created.name)
        return created

    def update_reward(self, reward_id: str, reward: Reward) -> Reward:
        updated = update_reward(self.db, reward_id, reward)
        if updated is None:
            raise NotFound(f"Reward {reward_id} not found")
        return updated

    def delete_reward(self, reward_id: str) -> None:
        if not delete_reward(self.db, reward_id):
            raise NotFound(f"Reward {reward_id} not found")

    # --- Redemption ---

    def redeem_reward(self, user_id: str, reward_id: str) -> UserReward:
        points = self.get_user_points(user_id)
        reward = get_reward(self.db, reward_id)
        if reward is None:
            raise NotFound(f"Reward {reward_id} not found")
        if not reward.is_available or reward.quantity <= 0:
            raise Conflict("Reward is not available")
        if points.available_points < reward.points_cost:
            raise InsufficientPoints("Not enough points to redeem this reward")

        now = utcnow()
        user_reward = UserReward(
            id=None,
            user_id=user_id,
            reward_id=reward.id,
            reward_name=reward.name,
            points_spent=reward.points_cost,
            status=RedemptionStatus.PENDING,
            redeemed_date=now,
        )
        if reward.category.upper() == VOUCHER_CATEGORY:
            user_reward.redemption_code = generate_voucher_code()
            user_reward.status = RedemptionStatus.FULFILLED
            user_reward.expiry_date = reward.expiry_date or now + VOUCHER_VALIDITY

        # Points, stock, redemption and ledger entry commit together or not at all.
        try:
            if not debit_points(self.db, user_id, reward.points_cost):
                raise InsufficientPoints("Not enough points to redeem this reward")
            if not take_one_from_stock(self.db, reward.id):
                raise Conflict("Reward is not available")
            saved = add_user_reward(self.db, user_reward, commit=False)
            add_transaction(
                self.db,
                PointTransaction(
                    id=None,
                    user_id=user_id,
                    points=reward.points_cost,
                    transaction_type=TransactionType.SPENT,
                    source=PointSource.REWARD_REDEMPTION,
                    reference_id=reward.id,
                    description=f"Redeemed {reward.name}",
                    transaction_date=now,
                ),
                commit=False,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(
            "Redeemed reward=%s user=%s cost=%d status=%s",
            reward.id,
            user_id,
            reward.points_cost,
            saved.status.value,
        )
        return saved

    def redeem_welcome_bonus(self, user_id: str) -> PointTransaction:
        if get_transactions_by_source(self.db, user_id, PointSource.WELCOME_BONUS):
            raise Conflict("Welcome bonus already claimed")

        ensure_user_points(self.db, user_id)
        now = utcnow()
        try:
            credit_points(self.db, user_id, WELCOME_BONUS_POINTS)
            tx = add_transaction(
                self.db,
                PointTransaction(
                    # One welcome bonus per user, enforced by the primary key.
                    id=f"welcome-{user_id}",
                    user_id=user_id,
                    points=WELCOME_BONUS_POINTS,
                    transaction_type=TransactionType.EARNED,
                    source=PointSource.WELCOME_BONUS,
                    reference_id=user_id,
                    description="Welcome bonus",
                    transaction_date=now,
                ),
                commit=False,
            )
            add_user_reward(
                self.db,
                UserReward(
                    id=None,
                    user_id=user_id,
                    reward_id=WELCOME_BONUS_REWARD_ID,
                    reward_name=WELCOME_BONUS_NAME,
                    points_spent=0,
                    status=RedemptionStatus.FULFILLED,
                    redeemed_date=now,
                    redemption_code=WELCOME_BONUS_CODE,
                ),
                commit=False,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Welcome bonus already claimed")
        logger.info("Welcome bonus awarded user=%s", user_id)
        return tx

    # --- Redemption records ---

    def get_redemption_history(self, user_id: str) -> List[UserReward]:
        return get_user_rewards(self.db, user_id)

    def get_user_rewards_by_status(self, user_id: str, status: str) -> List[UserReward]:
        return get_user_rewards_by_status(
            self.db, user_id, parse_enum(RedemptionStatus, status, "status")
        )

    def get_recent_user_rewards(self, user_id: str, days: int = 30) -> List[UserReward]:
        return get_user_rewards_since(self.db, user_id, utcnow() - window(days))

    def get_expiring_user_rewards(self, user_id: str, days: int = 30) -> List[UserReward]:
        now = utcnow()
        return get_user_rewards_expiring(self.db, user_id, now, now + window(days))

    def update_redemption_status(self, user_reward_id: str, status: str) -> UserReward:
        new_status = parse_enum(RedemptionStatus, status, "status")
        updated = update_user_reward(self.db, user_reward_id, status=new_status)
        if updated is None:
            raise NotFound(f"Redemption {user_reward_id} not found")
        return updated

    def add_delivery_info(self, user_reward_id: str, delivery_info: str) -> UserReward:
        updated = update_user_reward(self.db, user_reward_id, delivery_info=delivery_info)
        if updated is None:
            raise NotFound(f"Redemption {user_reward_id} not found")
        return updated
