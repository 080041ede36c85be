from __future__ import annotations

from decimal import Decimal
from typing import Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models import Budget, Category, Transaction, TransactionType, User
from periods import Period
from reports import BudgetLine, CategoryTotal


def _money(value: object) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(Decimal("0.01"))


class ReportRepository(Protocol):
    def sum_amount(
        self, user_id: int, transaction_type: TransactionType, period: Period
    ) -> Decimal: ...

    def monthly_limit(self, user_id: int) -> Optional[Decimal]: ...

    def totals_by_category(
        self,
        user_id: int,
        transaction_type: TransactionType,
        period: Optional[Period],
    ) -> list[CategoryTotal]: ...

    def categorized_expense_totals(
        self, user_id: int, period: Period
    ) -> list[CategoryTotal]: ...

    def budgets_within(self, user_id: int, period: Period) -> list[BudgetLine]: ...


class SqlAlchemyReportRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def sum_amount(
        self, user_id: int, transaction_type: TransactionType, period: Period
    ) -> Decimal:
        stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.user_id == user_id,
            Transaction.type == transaction_type,
            Transaction.date.between(period.start, period.end),
        )
        return _money(self.session.execute(stmt).scalar_one())

    def monthly_limit(self, user_id: int) -> Optional[Decimal]:
        value = self.session.scalar(
            select(User.monthly_limit).where(User.id == user_id)
        )
        return _money(value) if value is not None else None

    def totals_by_category(
        self,
        user_id: int,
        transaction_type: TransactionType,
        period: Optional[Period],
    ) -> list[CategoryTotal]:
        total = func.sum(Transaction.amount).label("total")
        stmt = (
            select(
                Transaction.category_id,
                Category.name.label("name"),
                Category.icon.label("icon"),
                total,
            )
            .outerjoin(Category, Category.id == Transaction.category_id)
            .where(
                Transaction.user_id == user_id,
                Transaction.type == transaction_type,
            )
            .group_by(Transaction.category_id, Category.name, Category.icon)
            .order_by(total.desc())
        )
        if period is not None:
            stmt = stmt.where(Transaction.date.between(period.start, period.end))
        return [
            CategoryTotal(row.category_id, row.name, row.icon, _money(row.total))
            for row in self.session.execute(stmt)
        ]

    def categorized_expense_totals(
        self, user_id: int, period: Period
    ) -> list[CategoryTotal]:
        stmt = (
            select(
                Category.id.label("category_id"),
                Category.name.label("name"),
                Category.icon.label("icon"),
                func.sum(Transaction.amount).label("spent"),
            )
            .join(Category, Category.id == Transaction.category_id)
            .where(
                Transaction.user_id == user_id,
                Transaction.type == TransactionType.expense,
                Transaction.date.between(period.start, period.end),
            )
            .group_by(Category.id, Category.name, Category.icon)
        )
        return [
            CategoryTotal(row.category_id, row.name, row.icon, _money(row.spent))
            for row in self.session.execute(stmt)
        ]

    def budgets_within(self, user_id: int, period: Period) -> list[BudgetLine]:
        stmt = (
            select(
                Budget.category_id,
                Category.name.label("name"),
                Category.icon.label("icon"),
                Budget.amount,
            )
            .join(Category, Category.id == Budget.category_id)
            .where(
                Budget.user_id == user_id,
                Budget.start_date >= period.start,
                Budget.end_date <= period.end,
            )
            .order_by(Budget.start_date.asc(), Budget.id.asc())
        )
        return [
            BudgetLine(row.category_id, row.name, row.icon, _money(row.amount))
            for row in self.session.execute(stmt)
        ]
