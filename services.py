from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from errors import AuthenticationError, InvalidInputError, NotFoundError
from models import Budget, Category, Transaction, TransactionType, User
from periods import Period, current_month, month_period, resolve_period
from reports import (
    BudgetProgress,
    CategoryTotal,
    PageInfo,
    Summary,
    budget_progress,
    build_summary,
    label_uncategorized,
    paginate,
)
from repositories import ReportRepository, SqlAlchemyReportRepository
from schemas import (
    BudgetIn,
    CategoryIn,
    CategoryUpdate,
    SignupIn,
    TransactionIn,
    TransactionUpdate,
)
from security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    period: Optional[Period] = None


@dataclass(frozen=True)
class PageResult:
    info: PageInfo
    items: list[Transaction]


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def register(self, data: SignupIn, *, default_currency: str = "VND") -> User:
        clash = self.session.scalar(
            select(User).where(
                or_(
                    User.username == data.username,
                    func.lower(User.email) == data.email.lower(),
                )
            )
        )
        if clash:
            raise InvalidInputError("Username or email is already in use")
        user = User(
            username=data.username,
            email=data.email,
            password_hash=hash_password(data.password),
            default_currency=default_currency,
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_registered: user_id={user.id}")
        return user

    def authenticate(self, username: str, password: str) -> tuple[User, str]:
        user = self.session.scalar(select(User).where(User.username == username))
        if not user:
            raise NotFoundError("User not found")
        if not verify_password(password, user.password_hash):
            logger.info(f"signin_rejected: user_id={user.id}")
            raise AuthenticationError("Invalid password")
        return user, create_access_token(user.id)

    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def set_monthly_limit(self, user_id: int, limit: Decimal) -> User:
        if limit < 0:
            raise InvalidInputError("Monthly limit must be a non-negative number")
        user = self.get(user_id)
        user.monthly_limit = limit
        self.session.commit()
        return user

    def delete(self, user_id: int) -> None:
        user = self.get(user_id)
        self.session.delete(user)
        self.session.commit()


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self, type: Optional[TransactionType] = None) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name.asc(), Category.id.asc())
        )
        if type:
            stmt = stmt.where(Category.type == type)
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.scalar(
            select(Category).where(
                Category.id == category_id, Category.user_id == self.user_id
            )
        )
        if not category:
            raise NotFoundError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            icon=data.icon,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self.get(category_id)
        changes = data.model_dump(exclude_unset=True)
        new_type = changes.get("type")
        if new_type is not None and new_type != category.type:
            in_use = self.session.scalar(
                select(func.count(Transaction.id)).where(
                    Transaction.user_id == self.user_id,
                    Transaction.category_id == category.id,
                )
            )
            if in_use:
                raise InvalidInputError(
                    "Category type cannot change while it has transactions"
                )
        if changes.get("name") is not None:
            category.name = changes["name"].strip()
        if new_type is not None:
            category.type = new_type
        if "icon" in changes:
            category.icon = changes["icon"]
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        """Delete a category, keeping its transactions but dropping its budgets."""
        category = self.get(category_id)
        self.session.execute(
            update(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.category_id == category.id,
            )
            .values(category_id=None)
        )
        self.session.execute(
            delete(Budget).where(
                Budget.user_id == self.user_id, Budget.category_id == category.id
            )
        )
        self.session.delete(category)
        self.session.commit()
        # Loaded transactions still hold the old reference in the identity map.
        self.session.expire_all()


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _check_category(
        self, category_id: Optional[int], txn_type: TransactionType
    ) -> None:
        if category_id is None:
            return
        category = CategoryService(self.session, self.user_id).get(category_id)
        if category.type != txn_type:
            raise InvalidInputError("Category type mismatch")

    def create(self, data: TransactionIn) -> Transaction:
        self._check_category(data.category_id, data.type)
        txn = Transaction(
            user_id=self.user_id,
            description=data.description,
            amount=data.amount,
            date=data.date,
            type=data.type,
            category_id=data.category_id,
        )
        self.session.add(txn)
        self.session.commit()
        logger.info(
            f"transaction_created: user_id={self.user_id} id={txn.id} "
            f"type={txn.type.value} date={txn.date}"
        )
        return self.get(txn.id)

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        changes = data.model_dump(exclude_unset=True)
        for field in ("amount", "date", "type"):
            if field in changes and changes[field] is None:
                raise InvalidInputError(f"{field} cannot be empty")

        new_type = changes.get("type", txn.type)
        new_category_id = changes.get("category_id", txn.category_id)
        if "type" in changes or "category_id" in changes:
            self._check_category(new_category_id, new_type)

        for field, value in changes.items():
            setattr(txn, field, value)
        self.session.commit()
        logger.info(f"transaction_updated: user_id={self.user_id} id={txn.id}")
        self.session.expire(txn, ["category"])
        return self.get(txn.id)

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()
        logger.info(f"transaction_deleted: user_id={self.user_id} id={transaction_id}")

    def _filtered(self, stmt, filters: TransactionFilters):
        stmt = stmt.where(Transaction.user_id == self.user_id)
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.period:
            stmt = stmt.where(
                Transaction.date.between(filters.period.start, filters.period.end)
            )
        return stmt

    def list_page(
        self, filters: TransactionFilters, page: int = 1, limit: int = 10
    ) -> PageResult:
        count_stmt = self._filtered(select(func.count(Transaction.id)), filters)
        total = int(self.session.execute(count_stmt).scalar_one() or 0)
        info = paginate(total, page, limit)
        stmt = (
            self._filtered(
                select(Transaction).options(joinedload(Transaction.category)),
                filters,
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .offset(info.offset)
            .limit(info.limit)
        )
        return PageResult(info=info, items=self.session.scalars(stmt).all())

    def all_for_period(self, period: Period) -> list[Transaction]:
        stmt = (
            self._filtered(
                select(Transaction).options(joinedload(Transaction.category)),
                TransactionFilters(period=period),
            )
            .order_by(Transaction.date.asc(), Transaction.id.asc())
        )
        return self.session.scalars(stmt).all()


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _find(self, data: BudgetIn) -> Optional[Budget]:
        return self.session.scalar(
            select(Budget).where(
                Budget.user_id == self.user_id,
                Budget.category_id == data.category_id,
                Budget.start_date == data.start_date,
                Budget.end_date == data.end_date,
            )
        )

    def upsert(self, data: BudgetIn) -> tuple[Budget, bool]:
        """Create or replace the budget for (category, start, end).

        Returns the row and whether it was newly created. A concurrent insert
        of the same key surfaces as a unique-constraint violation, in which
        case the winner's row is updated instead.
        """
        CategoryService(self.session, self.user_id).get(data.category_id)

        existing = self._find(data)
        created = existing is None
        if created:
            budget = Budget(
                user_id=self.user_id,
                category_id=data.category_id,
                amount=data.amount,
                start_date=data.start_date,
                end_date=data.end_date,
            )
            self.session.add(budget)
            try:
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                existing = self._find(data)
                if existing is None:
                    raise
                created = False
            else:
                existing = budget
        if not created:
            existing.amount = data.amount
            self.session.commit()

        logger.info(
            f"budget_upserted: user_id={self.user_id} id={existing.id} "
            f"category_id={data.category_id} window={data.start_date}..{data.end_date} "
            f"created={created}"
        )
        return self.get(existing.id), created

    def get(self, budget_id: int) -> Budget:
        budget = self.session.scalar(
            select(Budget)
            .options(joinedload(Budget.category))
            .where(Budget.id == budget_id, Budget.user_id == self.user_id)
        )
        if not budget:
            raise NotFoundError("Budget not found")
        return budget

    def list(
        self, *, year: Optional[int] = None, month: Optional[int] = None
    ) -> list[Budget]:
        stmt = (
            select(Budget)
            .options(joinedload(Budget.category))
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.end_date.desc(), Budget.id.desc())
        )
        if year is not None and month is not None:
            window = month_period(year, month)
            stmt = stmt.where(
                Budget.start_date >= window.start, Budget.end_date <= window.end
            )
        return self.session.scalars(stmt).all()

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()


class ReportService:
    def __init__(
        self,
        session: Session,
        user_id: int,
        repository: Optional[ReportRepository] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.repository = repository or SqlAlchemyReportRepository(session)

    def summary(self, start: Optional[date], end: Optional[date]) -> Summary:
        period = resolve_period(start, end, required=True)
        return build_summary(self.repository, self.user_id, period)

    def by_category(
        self,
        transaction_type: TransactionType = TransactionType.expense,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[CategoryTotal]:
        period = resolve_period(start, end)
        rows = self.repository.totals_by_category(
            self.user_id, transaction_type, period
        )
        return label_uncategorized(rows)

    def budget_progress(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[BudgetProgress]:
        period = resolve_period(start, end) or current_month()
        return budget_progress(self.repository, self.user_id, period)

    def export_transactions(
        self, start: Optional[date], end: Optional[date]
    ) -> tuple[Period, list[Transaction]]:
        period = resolve_period(start, end, required=True)
        rows = TransactionService(self.session, self.user_id).all_for_period(period)
        logger.info(
            f"export_requested: user_id={self.user_id} "
            f"period={period.start}to{period.end} rows={len(rows)}"
        )
        return period, rows
