from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from models import TransactionType
from periods import Period
from reports import (
    BudgetLine,
    CategoryTotal,
    build_summary,
    label_uncategorized,
    merge_budget_progress,
    paginate,
)


class FakeReportRepository:
    """In-memory stand-in for the SQL repository, keyed by (type, start, end)."""

    def __init__(
        self,
        sums: Optional[dict[tuple[TransactionType, date, date], Decimal]] = None,
        limit: Optional[Decimal] = None,
    ) -> None:
        self.sums = sums or {}
        self.limit = limit
        self.calls: list[tuple[TransactionType, Period]] = []

    def sum_amount(self, user_id, transaction_type, period):
        self.calls.append((transaction_type, period))
        return self.sums.get(
            (transaction_type, period.start, period.end), Decimal("0.00")
        )

    def monthly_limit(self, user_id):
        return self.limit


def test_summary_matches_march_scenario() -> None:
    repo = FakeReportRepository(
        sums={
            (TransactionType.income, date(2025, 3, 1), date(2025, 3, 31)): Decimal(
                "2000000"
            ),
            (TransactionType.expense, date(2025, 3, 1), date(2025, 3, 31)): Decimal(
                "500000"
            ),
            (TransactionType.expense, date(2025, 2, 1), date(2025, 2, 28)): Decimal(
                "420000"
            ),
        },
        limit=Decimal("3000000"),
    )

    summary = build_summary(
        repo, 1, Period("custom", date(2025, 3, 1), date(2025, 3, 31))
    )

    assert summary.total_income == Decimal("2000000")
    assert summary.total_expense == Decimal("500000")
    assert summary.net_balance == Decimal("1500000")
    assert summary.monthly_limit == Decimal("3000000")
    assert summary.last_month_expense == Decimal("420000")


def test_summary_defaults_to_zero_without_data_or_limit() -> None:
    repo = FakeReportRepository()
    summary = build_summary(
        repo, 1, Period("custom", date(2025, 5, 1), date(2025, 5, 31))
    )

    assert summary.total_income == 0
    assert summary.total_expense == 0
    assert summary.net_balance == 0
    assert summary.monthly_limit == 0
    assert summary.last_month_expense == 0


def test_summary_in_january_compares_with_previous_december() -> None:
    repo = FakeReportRepository()
    build_summary(repo, 1, Period("custom", date(2025, 1, 15), date(2025, 1, 31)))

    last_call_type, last_call_period = repo.calls[-1]
    assert last_call_type == TransactionType.expense
    assert last_call_period.start == date(2024, 12, 1)
    assert last_call_period.end == date(2024, 12, 31)


def _by_category(rows):
    return {row.category_id: row for row in rows}


def test_merge_combines_budget_and_spend_for_same_category() -> None:
    budgets = [BudgetLine(1, "Food", "🍜", Decimal("1000000"))]
    spending = [CategoryTotal(1, "Food", "🍜", Decimal("300000"))]

    rows = merge_budget_progress(budgets, spending)

    assert len(rows) == 1
    food = rows[0]
    assert food.category_name == "Food"
    assert food.budget_amount == Decimal("1000000")
    assert food.total_spent == Decimal("300000")
    assert food.remaining == Decimal("700000")
    assert food.progress == Decimal("0.3")


def test_merge_keeps_one_sided_categories() -> None:
    budgets = [BudgetLine(1, "Food", None, Decimal("500"))]
    spending = [CategoryTotal(2, "Taxi", None, Decimal("80"))]

    rows = _by_category(merge_budget_progress(budgets, spending))

    assert rows[1].total_spent == 0
    assert rows[1].remaining == Decimal("500")
    assert rows[1].progress == 0
    assert rows[2].budget_amount == 0
    assert rows[2].remaining == Decimal("-80")
    assert rows[2].progress is None


def test_merge_result_does_not_depend_on_row_order() -> None:
    budgets = [
        BudgetLine(1, "Food", None, Decimal("500")),
        BudgetLine(3, "Rent", None, Decimal("900")),
    ]
    spending = [
        CategoryTotal(1, "Food", None, Decimal("120")),
        CategoryTotal(2, "Taxi", None, Decimal("80")),
    ]

    forward = _by_category(merge_budget_progress(budgets, spending))
    backward = _by_category(
        merge_budget_progress(list(reversed(budgets)), list(reversed(spending)))
    )

    assert forward.keys() == backward.keys() == {1, 2, 3}
    for key in forward:
        assert forward[key] == backward[key]


def test_progress_is_none_whenever_budget_is_zero() -> None:
    budgets = [BudgetLine(1, "Food", None, Decimal("0"))]
    spending = [CategoryTotal(1, "Food", None, Decimal("250"))]

    (row,) = merge_budget_progress(budgets, spending)

    assert row.budget_amount == 0
    assert row.progress is None
    assert row.remaining == Decimal("-250")


def test_uncategorized_rows_are_labelled_and_sorted() -> None:
    rows = label_uncategorized(
        [
            CategoryTotal(1, "Food", "🍜", Decimal("10")),
            CategoryTotal(None, None, None, Decimal("40")),
        ]
    )

    assert [r.category_name for r in rows] == ["Uncategorized", "Food"]
    assert rows[0].category_id is None


@pytest.mark.parametrize(
    ("total", "page", "limit", "pages", "offset"),
    [(0, 1, 10, 0, 0), (23, 3, 10, 3, 20), (20, 2, 10, 2, 10), (23, 5, 10, 3, 40)],
)
def test_paginate(total, page, limit, pages, offset) -> None:
    info = paginate(total, page, limit)
    assert info.total_pages == pages
    assert info.offset == offset
    assert info.current_page == page


@pytest.mark.parametrize(("page", "limit"), [(0, 10), (1, 0), (-1, 5)])
def test_paginate_rejects_non_positive_values(page, limit) -> None:
    with pytest.raises(ValueError):
        paginate(10, page, limit)
