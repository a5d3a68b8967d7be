import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Response

from paperworth.domain.models import Budget, BudgetCategory
from paperworth.domain.services.budget_service import BudgetService
from paperworth.logging_config import log_action
from paperworth.presentation.dependencies import (
    get_budget_service,
    get_current_identity,
)
from paperworth.presentation.schemas import CamelModel

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/budgets",
    tags=["budgets"],
    dependencies=[Depends(get_current_identity)],
)


class BudgetCategoryModel(CamelModel):
    category: str
    budget_amount: float = 0.0
    spent_amount: float = 0.0
    transactions: int = 0


class BudgetModel(CamelModel):
    id: Optional[str] = None
    user_id: str
    month_year: str
    total_budget: float
    total_spent: float = 0.0
    categories: List[BudgetCategoryModel] = []

    @staticmethod
    def from_domain(b: Budget) -> "BudgetModel":
        return BudgetModel(
            id=b.id,
            user_id=b.user_id,
            month_year=b.month_year,
            total_budget=b.total_budget,
            total_spent=b.total_spent,
            categories=[
                BudgetCategoryModel(
                    category=c.category,
                    budget_amount=c.budget_amount,
                    spent_amount=c.spent_amount,
                    transactions=c.transactions,
                )
                for c in b.categories
            ],
        )

    def to_domain(self) -> Budget:
        return Budget(
            id=self.id,
            user_id=self.user_id,
            month_year=self.month_year,
            total_budget=self.total_budget,
            total_spent=self.total_spent,
            categories=[
                BudgetCategory(
                    category=c.category,
                    budget_amount=c.budget_amount,
                    spent_amount=max(0.0, c.spent_amount),
                    transactions=max(0, c.transactions),
                )
                for c in self.categories
            ],
        )


class AmountRequest(CamelModel):
    amount: float


class ExpenseRequest(CamelModel):
    category: str
    amount: float


@router.get("/user/{user_id}/month/{month_year}", response_model=BudgetModel)
def get_user_budget_endpoint(
    user_id: str, month_year: str, service: BudgetService = Depends(get_budget_service)
):
    return BudgetModel.from_domain(service.get_user_budget(user_id, month_year))


@router.get("/user/{user_id}", response_model=List[BudgetModel])
def get_all_user_budgets_endpoint(
    user_id: str, service: BudgetService = Depends(get_budget_service)
):
    return [BudgetModel.from_domain(b) for b in service.get_all_user_budgets(user_id)]


@router.post("", response_model=BudgetModel)
def save_budget_endpoint(
    req: BudgetModel, service: BudgetService = Depends(get_budget_service)
):
    with log_action(logger, "save-budget", user=req.user_id, month=req.month_year):
        return BudgetModel.from_domain(service.save_budget(req.to_domain()))


@router.put("/user/{user_id}/month/{month_year}/total", response_model=BudgetModel)
def update_total_budget_endpoint(
    user_id: str,
    month_year: str,
    req: AmountRequest,
    service: BudgetService = Depends(get_budget_service),
):
    with log_action(logger, "update-total-budget", user=user_id, month=month_year):
        budget = service.update_total_budget(user_id, month_year, req.amount)
        return BudgetModel.from_domain(budget)


@router.put(
    "/user/{user_id}/month/{month_year}/category/{category}", response_model=BudgetModel
)
def update_category_budget_endpoint(
    user_id: str,
    month_year: str,
    category: str,
    req: AmountRequest,
    service: BudgetService = Depends(get_budget_service),
):
    with log_action(
        logger, "update-category-budget", user=user_id, month=month_year, category=category
    ):
        budget = service.update_category_budget(user_id, month_year, category, req.amount)
        return BudgetModel.from_domain(budget)


@router.post("/user/{user_id}/month/{month_year}/expense", response_model=BudgetModel)
def add_expense_endpoint(
    user_id: str,
    month_year: str,
    req: ExpenseRequest,
    service: BudgetService = Depends(get_budget_service),
):
    with log_action(logger, "add-expense", user=user_id, month=month_year):
        budget = service.add_expense(user_id, month_year, req.category, req.amount)
        return BudgetModel.from_domain(budget)


@router.delete("/{budget_id}", status_code=204)
def delete_budget_endpoint(
    budget_id: str, service: BudgetService = Depends(get_budget_service)
):
    with log_action(logger, "delete-budget", budget=budget_id):
        service.delete_budget(budget_id)
    return Response(status_code=204)
