import logging
import re
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paperworth.data.cache import RedisCache, budget_key, budgets_all_key
from paperworth.data.repositories.budget_repository import (
    compare_and_set_budget,
    delete_budget,
    get_budget_by_user_and_month,
    get_budgets_by_user,
    insert_budget,
)
from paperworth.domain.errors import BadRequest, Conflict, NotFound
from paperworth.domain.helpers.date_parsing import current_month_key
from paperworth.domain.models import Budget, BudgetCategory

logger = logging.getLogger(__name__)

DEFAULT_TOTAL_BUDGET = 1500.0
NEW_CATEGORY_SHARE = 0.05
MAX_WRITE_ATTEMPTS = 3

# Percent of the total, in display order
DEFAULT_CATEGORY_PERCENTAGES = (
    ("Groceries", 30),
    ("Dining", 20),
    ("Fast Food", 10),
    ("Cafes", 5),
    ("Retail", 15),
    ("Shopping", 10),
    ("Healthcare", 5),
    ("Others", 5),
)

MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def normalize_month(month_year: Optional[str]) -> str:
    if not month_year or not month_year.strip():
        return current_month_key()
    month_year = month_year.strip()
    if not MONTH_KEY_RE.match(month_year):
        raise BadRequest(f"Invalid month '{month_year}', expected YYYY-MM")
    return month_year


def build_default_budget(user_id: str, month_year: str) -> Budget:
    categories = [
        BudgetCategory(category=name, budget_amount=DEFAULT_TOTAL_BUDGET * pct / 100.0)
        for name, pct in DEFAULT_CATEGORY_PERCENTAGES
    ]
    return Budget(
        id=None,
        user_id=user_id,
        month_year=month_year,
        total_budget=DEFAULT_TOTAL_BUDGET,
        categories=categories,
    )


def _check_amount(amount: float, what: str) -> None:
    if amount is None or amount < 0:
        raise BadRequest(f"{what} cannot be negative")


def _clean_category(category: Optional[str]) -> str:
    if not category or not category.strip():
        raise BadRequest("Category is required")
    return category.strip()


class BudgetService:
    """
    Monthly budgets. Every mutation is a read-modify-write of one budget row
    guarded by its version column and retried on conflict.
    """

    def __init__(self, db: Session, cache: RedisCache):
        self.db = db
        self.cache = cache

    # --- Reads ---

    def get_user_budget(self, user_id: str, month_year: Optional[str] = None) -> Budget:
        month_year = normalize_month(month_year)
        cached = self.cache.get(budget_key(user_id, month_year))
        if cached is not None:
            return Budget.from_dict(cached)

        budget = self._load_or_create(user_id, month_year)
        self.cache.set(budget_key(user_id, month_year), budget.to_dict())
        return budget

    def get_all_user_budgets(self, user_id: str) -> List[Budget]:
        cached = self.cache.get(budgets_all_key(user_id))
        if cached is not None:
            return [Budget.from_dict(b) for b in cached]
        budgets = get_budgets_by_user(self.db, user_id)
        self.cache.set(budgets_all_key(user_id), [b.to_dict() for b in budgets])
        return budgets

    # --- Mutations ---

    def save_budget(self, budget: Budget) -> Budget:
        """Create or replace the whole budget for (user, month)."""
        budget.month_year = normalize_month(budget.month_year)
        _check_amount(budget.total_budget, "Total budget")
        budget.update_total_spent()

        def replace(current: Budget) -> None:
            current.total_budget = budget.total_budget
            current.categories = budget.categories
            current.update_total_spent()

        existing = get_budget_by_user_and_month(self.db, budget.user_id, budget.month_year)
        if existing is None:
            try:
                saved = insert_budget(self.db, budget)
            except IntegrityError:
                self.db.rollback()
                saved = self._mutate(budget.user_id, budget.month_year, replace)
        else:
            saved = self._mutate(budget.user_id, budget.month_year, replace)
        self._refresh_cache(saved)
        return saved

    def add_expense(
        self, user_id: str, month_year: Optional[str], category: str, amount: float
    ) -> Budget:
        _check_amount(amount, "Expense amount")
        category = _clean_category(category)

        def apply(budget: Budget) -> None:
            existing = budget.find_category(category)
            if existing is not None:
                existing.add_expense(amount)
            else:
                new_category = BudgetCategory(
                    category=category,
                    budget_amount=budget.total_budget * NEW_CATEGORY_SHARE,
                )
                new_category.add_expense(amount)
                budget.categories.append(new_category)
            budget.update_total_spent()

        budget = self._mutate(user_id, normalize_month(month_year), apply)
        self._refresh_cache(budget)
        return budget

    def remove_expense(
        self, user_id: str, month_year: Optional[str], category: str, amount: float
    ) -> Optional[Budget]:
        """Revert an expense. No-op (returns None) when the month has no budget."""
        _check_amount(amount, "Expense amount")
        category = _clean_category(category)
        month_year = normalize_month(month_year)
        if get_budget_by_user_and_month(self.db, user_id, month_year) is None:
            logger.info("No budget for user=%s month=%s, nothing to revert", user_id, month_year)
            return None

        def revert(budget: Budget) -> None:
            existing = budget.find_category(category)
            if existing is not None:
                existing.subtract_expense(amount)
            budget.update_total_spent()

        budget = self._mutate(user_id, month_year, revert)
        self._refresh_cache(budget)
        return budget

    def update_total_budget(
        self, user_id: str, month_year: Optional[str], new_total: float
    ) -> Budget:
        _check_amount(new_total, "Total budget")

        def rescale(budget: Budget) -> None:
            old_total = budget.total_budget
            budget.total_budget = new_total
            for category in budget.categories:
                share = category.budget_amount / old_total if old_total else 0.0
                category.budget_amount = new_total * share

        budget = self._mutate(user_id, normalize_month(month_year), rescale)
        self._refresh_cache(budget)
        return budget

    def update_category_budget(
        self, user_id: str, month_year: Optional[str], category: str, amount: float
    ) -> Budget:
        _check_amount(amount, "Category budget")
        category = _clean_category(category)

        def set_amount(budget: Budget) -> None:
            existing = budget.find_category(category)
            if existing is not None:
                existing.budget_amount = amount
            else:
                budget.categories.append(
                    BudgetCategory(category=category, budget_amount=amount)
                )

        budget = self._mutate(user_id, normalize_month(month_year), set_amount)
        self._refresh_cache(budget)
        return budget

    def delete_budget(self, budget_id: str) -> None:
        removed = delete_budget(self.db, budget_id)
        if removed is None:
            raise NotFound(f"Budget {budget_id} not found")
        self.cache.delete(
            budget_key(removed.user_id, removed.month_year),
            budgets_all_key(removed.user_id),
        )

    # --- Internals ---

    def _load_or_create(self, user_id: str, month_year: str) -> Budget:
        budget = get_budget_by_user_and_month(self.db, user_id, month_year)
        if budget is not None:
            return budget
        try:
            budget = insert_budget(self.db, build_default_budget(user_id, month_year))
            logger.info("Created default budget user=%s month=%s", user_id, month_year)
        except IntegrityError:
            # A concurrent request created it.
            self.db.rollback()
            return get_budget_by_user_and_month(self.db, user_id, month_year)
        self.cache.delete(budgets_all_key(user_id))
        return budget

    def _mutate(
        self, user_id: str, month_year: str, change: Callable[[Budget], None]
    ) -> Budget:
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            budget = self._load_or_create(user_id, month_year)
            change(budget)
            if compare_and_set_budget(self.db, budget):
                return budget
            logger.warning(
                "Concurrent budget update user=%s month=%s, retry %d",
                user_id,
                month_year,
                attempt,
            )
        raise Conflict("Budget was modified concurrently, please retry")

    def _refresh_cache(self, budget: Budget) -> None:
        self.cache.set(budget_key(budget.user_id, budget.month_year), budget.to_dict())
        self.cache.delete(budgets_all_key(budget.user_id))
