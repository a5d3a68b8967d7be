import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, Column, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Integer, String, Text, case

from paperworth.data.base import Base
from paperworth.domain.models import RedemptionStatus, Reward, UserReward, utcnow


class RewardORM(Base):
    __tablename__ = "rewards"
    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    name = Column(String, nullable=False)
    description = Column(Text, default="")
    points_cost = Column(Integer, nullable=False)
    category = Column(String, index=True, nullable=False)
    image_url = Column(String, nullable=True)
    is_available = Column(Boolean, nullable=False, default=True)
    quantity = Column(Integer, nullable=False, default=0)
    merchant_name = Column(String, nullable=True)
    terms_conditions = Column(Text, nullable=True)
    expiry_date = Column(DateTime, nullable=True)


class UserRewardORM(Base):
    __tablename__ = "user_rewards"
    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    user_id = Column(String, index=True, nullable=False)
    reward_id = Column(String, index=True, nullable=False)
    reward_name = Column(String, nullable=False)
    points_spent = Column(Integer, nullable=False, default=0)
    redeemed_date = Column(DateTime, nullable=False, index=True)
    status = Column(SAEnum(RedemptionStatus), nullable=False)
    redemption_code = Column(String, nullable=True)
    delivery_info = Column(Text, nullable=True)
    expiry_date = Column(DateTime, nullable=True)


def reward_to_domain(reward_orm: RewardORM) -> Reward:
    return Reward(
        id=reward_orm.id,
        name=reward_orm.name,
        description=reward_orm.description or "",
        points_cost=reward_orm.points_cost,
        category=reward_orm.category,
        image_url=reward_orm.image_url,
        is_available=reward_orm.is_available,
        quantity=reward_orm.quantity,
        merchant_name=reward_orm.merchant_name,
        terms_conditions=reward_orm.terms_conditions,
        expiry_date=reward_orm.expiry_date,
    )


def user_reward_to_domain(ur_orm: UserRewardORM) -> UserReward:
    return UserReward(
        id=ur_orm.id,
        user_id=ur_orm.user_id,
        reward_id=ur_orm.reward_id,
        reward_name=ur_orm.reward_name,
        points_spent=ur_orm.points_spent,
        status=ur_orm.status,
        redeemed_date=ur_orm.redeemed_date,
        redemption_code=ur_orm.redemption_code,
        delivery_info=ur_orm.delivery_info,
        expiry_date=ur_orm.expiry_date,
    )


# --- Catalog ---


def get_reward(db, reward_id: str) -> Optional[Reward]:
    reward = db.query(RewardORM).filter(RewardORM.id == reward_id).first()
    return reward_to_domain(reward) if reward else None


def get_available_rewards(db) -> List[Reward]:
    rewards = (
        db.query(RewardORM)
        .filter(RewardORM.is_available.is_(True), RewardORM.quantity > 0)
        .order_by(RewardORM.points_cost.asc())
        .all()
    )
    return [reward_to_domain(r) for r in rewards]


def get_available_rewards_by_category(db, category: str) -> List[Reward]:
    rewards = (
        db.query(RewardORM)
        .filter(
            RewardORM.category == category.upper(),
            RewardORM.is_available.is_(True),
            RewardORM.quantity > 0,
        )
        .order_by(RewardORM.points_cost.asc())
        .all()
    )
    return [reward_to_domain(r) for r in rewards]


def get_affordable_rewards(db, max_points: int) -> List[Reward]:
    rewards = (
        db.query(RewardORM)
        .filter(
            RewardORM.is_available.is_(True),
            RewardORM.quantity > 0,
            RewardORM.points_cost <= max_points,
        )
        .order_by(RewardORM.points_cost.asc())
        .all()
    )
    return [reward_to_domain(r) for r in rewards]


def insert_reward(db, reward: Reward) -> Reward:
    db_reward = RewardORM(
        id=reward.id or uuid.uuid4().hex,
        name=reward.name,
        description=reward.description,
        points_cost=reward.points_cost,
        category=reward.category.upper(),
        image_url=reward.image_url,
        is_available=reward.is_available and reward.quantity > 0,
        quantity=reward.quantity,
        merchant_name=reward.merchant_name,
        terms_conditions=reward.terms_conditions,
        expiry_date=reward.expiry_date,
    )
    db.add(db_reward)
    db.commit()
    db.refresh(db_reward)
    return reward_to_domain(db_reward)


def update_reward(db, reward_id: str, reward: Reward) -> Optional[Reward]:
    db_reward = db.query(RewardORM).filter(RewardORM.id == reward_id).first()
    if not db_reward:
        return None
    db_reward.name = reward.name
    db_reward.description = reward.description
    db_reward.points_cost = reward.points_cost
    db_reward.category = reward.category.upper()
    db_reward.image_url = reward.image_url
    db_reward.is_available = reward.is_available and reward.quantity > 0
    db_reward.quantity = reward.quantity
    db_reward.merchant_name = reward.merchant_name
    db_reward.terms_conditions = reward.terms_conditions
    db_reward.expiry_date = reward.expiry_date
    db.commit()
    db.refresh(db_reward)
    return reward_to_domain(db_reward)


def delete_reward(db, reward_id: str) -> bool:
    deleted = db.query(RewardORM).filter(RewardORM.id == reward_id).delete(
        synchronize_session=False
    )
    db.commit()
    return deleted > 0


def take_one_from_stock(db, reward_id: str) -> bool:
    """
    Decrement stock of an available reward, clearing availability when the
    last unit goes. Does not commit.
    """
    updated = (
        db.query(RewardORM)
        .filter(
            RewardORM.id == reward_id,
            RewardORM.is_available.is_(True),
            RewardORM.quantity > 0,
        )
        .update(
            {
                "quantity": RewardORM.quantity - 1,
                "is_available": case(
                    (RewardORM.quantity <= 1, False), else_=RewardORM.is_available
                ),
            },
            synchronize_session=False,
        )
    )
    return updated > 0


# --- Redemptions ---


def add_user_reward(db, user_reward: UserReward, commit: bool = True) -> UserReward:
    db_ur = UserRewardORM(
        id=user_reward.id or uuid.uuid4().hex,
        user_id=user_reward.user_id,
        reward_id=user_reward.reward_id,
        reward_name=user_reward.reward_name,
        points_spent=user_reward.points_spent,
        redeemed_date=user_reward.redeemed_date or utcnow(),
        status=user_reward.status,
        redemption_code=user_reward.redemption_code,
        delivery_info=user_reward.delivery_info,
        expiry_date=user_reward.expiry_date,
    )
    db.add(db_ur)
    if commit:
        db.commit()
        db.refresh(db_ur)
    else:
        db.flush()
    return user_reward_to_domain(db_ur)


def get_user_rewards(db, user_id: str) -> List[UserReward]:
    urs = (
        db.query(UserRewardORM)
        .filter(UserRewardORM.user_id == user_id)
        .order_by(UserRewardORM.redeemed_date.desc())
        .all()
    )
    return [user_reward_to_domain(ur) for ur in urs]


def get_user_rewards_by_status(
    db, user_id: str, status: RedemptionStatus
) -> List[UserReward]:
    urs = (
        db.query(UserRewardORM)
        .filter(UserRewardORM.user_id == user_id, UserRewardORM.status == status)
        .order_by(UserRewardORM.redeemed_date.desc())
        .all()
    )
    return [user_reward_to_domain(ur) for ur in urs]


def get_user_rewards_since(db, user_id: str, since: datetime) -> List[UserReward]:
    urs = (
        db.query(UserRewardORM)
        .filter(UserRewardORM.user_id == user_id, UserRewardORM.redeemed_date > since)
        .order_by(UserRewardORM.redeemed_date.desc())
        .all()
    )
    return [user_reward_to_domain(ur) for ur in urs]


def get_user_rewards_expiring(
    db, user_id: str, start: datetime, end: datetime
) -> List[UserReward]:
    urs = (
        db.query(UserRewardORM)
        .filter(
            UserRewardORM.user_id == user_id,
            UserRewardORM.status == RedemptionStatus.FULFILLED,
            UserRewardORM.expiry_date.isnot(None),
            UserRewardORM.expiry_date >= start,
            UserRewardORM.expiry_date <= end,
        )
        .order_by(UserRewardORM.expiry_date.asc())
        .all()
    )
    return [user_reward_to_domain(ur) for ur in urs]


def update_user_reward(db, user_reward_id: str, **fields) -> Optional[UserReward]:
    ur = db.query(UserRewardORM).filter(UserRewardORM.id == user_reward_id).first()
    if not ur:
        return None
    for key, value in fields.items():
        setattr(ur, key, value)
    db.commit()
    db.refresh(ur)
    return user_reward_to_domain(ur)
