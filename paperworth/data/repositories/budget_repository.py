import json
import uuid
from dataclasses import asdict
from typing import List, Optional

from sqlalchemy import Column, Float, Integer, String, Text, UniqueConstraint

from paperworth.data.base import Base
from paperworth.domain.models import Budget, BudgetCategory


class BudgetORM(Base):
    __tablename__ = "budgets"
    __table_args__ = (
        UniqueConstraint("user_id", "month_year", name="uq_budget_user_month"),
    )
    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    user_id = Column(String, index=True, nullable=False)
    month_year = Column(String(7), nullable=False)
    total_budget = Column(Float, nullable=False, default=0.0)
    total_spent = Column(Float, nullable=False, default=0.0)
    categories_json = Column(Text, nullable=False, default="[]")
    version = Column(Integer, nullable=False, default=0)


def _dump_categories(categories: List[BudgetCategory]) -> str:
    return json.dumps([asdict(c) for c in categories])


def budget_to_domain(budget_orm: BudgetORM) -> Budget:
    return Budget(
        id=budget_orm.id,
        user_id=budget_orm.user_id,
        month_year=budget_orm.month_year,
        total_budget=budget_orm.total_budget,
        total_spent=budget_orm.total_spent,
        categories=[
            BudgetCategory(**c) for c in json.loads(budget_orm.categories_json or "[]")
        ],
        version=budget_orm.version,
    )


def get_budget(db, budget_id: str) -> Optional[Budget]:
    budget = db.query(BudgetORM).filter(BudgetORM.id == budget_id).first()
    return budget_to_domain(budget) if budget else None


def get_budget_by_user_and_month(db, user_id: str, month_year: str) -> Optional[Budget]:
    budget = (
        db.query(BudgetORM)
        .filter(BudgetORM.user_id == user_id, BudgetORM.month_year == month_year)
        .first()
    )
    return budget_to_domain(budget) if budget else None


def get_budgets_by_user(db, user_id: str) -> List[Budget]:
    budgets = (
        db.query(BudgetORM)
        .filter(BudgetORM.user_id == user_id)
        .order_by(BudgetORM.month_year.asc())
        .all()
    )
    return [budget_to_domain(b) for b in budgets]


def insert_budget(db, budget: Budget) -> Budget:
    """Insert a new budget; raises IntegrityError if (user, month) already exists."""
    db_budget = BudgetORM(
        id=budget.id or uuid.uuid4().hex,
        user_id=budget.user_id,
        month_year=budget.month_year,
        total_budget=budget.total_budget,
        total_spent=budget.total_spent,
        categories_json=_dump_categories(budget.categories),
        version=0,
    )
    db.add(db_budget)
    db.commit()
    db.refresh(db_budget)
    return budget_to_domain(db_budget)


def compare_and_set_budget(db, budget: Budget) -> bool:
    """
    Write ``budget`` only if the stored row still has ``budget.version``.

    Returns False when another writer got there first. On success the
    domain object's version is advanced to match the row.
    """
    updated = (
        db.query(BudgetORM)
        .filter(BudgetORM.id == budget.id, BudgetORM.version == budget.version)
        .update(
            {
                "total_budget": budget.total_budget,
                "total_spent": budget.total_spent,
                "categories_json": _dump_categories(budget.categories),
                "version": budget.version + 1,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    if updated:
        budget.version += 1
    return updated > 0


def delete_budget(db, budget_id: str) -> Optional[Budget]:
    budget = db.query(BudgetORM).filter(BudgetORM.id == budget_id).first()
    if not budget:
        return None
    removed = budget_to_domain(budget)
    db.delete(budget)
    db.commit()
    return removed
