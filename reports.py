"""Reporting aggregations over a user's transactions and budgets.

Everything here works on plain rows handed over by a ``ReportRepository``
(see ``repositories``), so the arithmetic can be exercised without a database.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, Optional

from errors import InvalidInputError
from models import TransactionType
from periods import Period, previous_month

if TYPE_CHECKING:  # pragma: no cover
    from repositories import ReportRepository

ZERO = Decimal("0.00")
UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class Summary:
    total_income: Decimal
    total_expense: Decimal
    net_balance: Decimal
    monthly_limit: Decimal
    last_month_expense: Decimal


@dataclass(frozen=True)
class CategoryTotal:
    category_id: Optional[int]
    category_name: Optional[str]
    icon: Optional[str]
    total: Decimal


@dataclass(frozen=True)
class BudgetLine:
    category_id: int
    category_name: str
    icon: Optional[str]
    amount: Decimal


@dataclass
class BudgetProgress:
    category_id: Optional[int]
    category_name: Optional[str]
    icon: Optional[str]
    budget_amount: Decimal
    total_spent: Decimal
    remaining: Decimal = ZERO
    progress: Optional[Decimal] = None


@dataclass(frozen=True)
class PageInfo:
    total_items: int
    total_pages: int
    current_page: int
    offset: int
    limit: int


def build_summary(repo: ReportRepository, user_id: int, period: Period) -> Summary:
    total_income = repo.sum_amount(user_id, TransactionType.income, period)
    total_expense = repo.sum_amount(user_id, TransactionType.expense, period)
    limit = repo.monthly_limit(user_id)
    last_month = previous_month(period.start)
    last_month_expense = repo.sum_amount(user_id, TransactionType.expense, last_month)
    return Summary(
        total_income=total_income,
        total_expense=total_expense,
        net_balance=total_income - total_expense,
        monthly_limit=limit if limit is not None else ZERO,
        last_month_expense=last_month_expense,
    )


def label_uncategorized(rows: Iterable[CategoryTotal]) -> list[CategoryTotal]:
    labelled = []
    for row in rows:
        if row.category_id is None:
            row = CategoryTotal(None, UNCATEGORIZED, None, row.total)
        labelled.append(row)
    labelled.sort(key=lambda r: r.total, reverse=True)
    return labelled


def merge_budget_progress(
    budgets: Iterable[BudgetLine], spending: Iterable[CategoryTotal]
) -> list[BudgetProgress]:
    """Combine budget rows and actual spend into one entry per category.

    Either side may be missing for a category; neither side is dropped.
    """
    by_category: dict[Optional[int], BudgetProgress] = {}
    for budget in budgets:
        by_category[budget.category_id] = BudgetProgress(
            category_id=budget.category_id,
            category_name=budget.category_name,
            icon=budget.icon,
            budget_amount=budget.amount,
            total_spent=ZERO,
        )

    for spent in spending:
        entry = by_category.get(spent.category_id)
        if entry is not None:
            entry.total_spent = spent.total
            continue
        by_category[spent.category_id] = BudgetProgress(
            category_id=spent.category_id,
            category_name=spent.category_name,
            icon=spent.icon,
            budget_amount=ZERO,
            total_spent=spent.total,
        )

    for entry in by_category.values():
        entry.remaining = entry.budget_amount - entry.total_spent
        if entry.budget_amount > 0:
            entry.progress = entry.total_spent / entry.budget_amount
        else:
            entry.progress = None
    return list(by_category.values())


def budget_progress(
    repo: ReportRepository, user_id: int, period: Period
) -> list[BudgetProgress]:
    return merge_budget_progress(
        repo.budgets_within(user_id, period),
        repo.categorized_expense_totals(user_id, period),
    )


def paginate(total_items: int, page: int, limit: int) -> PageInfo:
    if page < 1 or limit < 1:
        raise InvalidInputError("page and limit must be positive integers")
    return PageInfo(
        total_items=total_items,
        total_pages=math.ceil(total_items / limit),
        current_page=page,
        offset=(page - 1) * limit,
        limit=limit,
    )
