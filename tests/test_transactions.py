from datetime import date, timedelta
from decimal import Decimal

import pytest

from database import Base, create_db_engine, make_sessionmaker
from models import TransactionType, User
from periods import Period
from schemas import CategoryIn, TransactionIn, TransactionUpdate
from services import (
    CategoryService,
    NotFoundError,
    TransactionFilters,
    TransactionService,
)


def make_session():
    engine = create_db_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    return make_sessionmaker(engine)()


def make_user(session, username: str = "alice") -> User:
    user = User(username=username, email=f"{username}@example.com", password_hash="x")
    session.add(user)
    session.commit()
    return user


def expense(amount: str, day: date, category_id=None, description=None) -> TransactionIn:
    return TransactionIn(
        description=description,
        amount=Decimal(amount),
        date=day,
        type=TransactionType.expense,
        category_id=category_id,
    )


def test_pagination_reports_counts_past_last_page() -> None:
    session = make_session()
    user = make_user(session)
    service = TransactionService(session, user.id)
    for i in range(23):
        service.create(expense("10", date(2025, 3, 1) + timedelta(days=i)))

    first = service.list_page(TransactionFilters(), page=1, limit=10)
    assert first.info.total_items == 23
    assert first.info.total_pages == 3
    assert first.items[0].date == date(2025, 3, 23)

    third = service.list_page(TransactionFilters(), page=3, limit=10)
    assert len(third.items) == 3
    assert third.items[-1].date == date(2025, 3, 1)

    beyond = service.list_page(TransactionFilters(), page=4, limit=10)
    assert beyond.items == []
    assert beyond.info.total_items == 23
    assert beyond.info.total_pages == 3
    assert beyond.info.current_page == 4


def test_list_filters_by_type_category_and_period() -> None:
    session = make_session()
    user = make_user(session)
    food = CategoryService(session, user.id).create(
        CategoryIn(name="Food", type=TransactionType.expense)
    )
    service = TransactionService(session, user.id)
    service.create(expense("10", date(2025, 2, 28), food.id))
    service.create(expense("20", date(2025, 3, 2), food.id))
    service.create(expense("30", date(2025, 3, 3)))
    service.create(
        TransactionIn(amount=Decimal("99"), date=date(2025, 3, 4), type=TransactionType.income)
    )

    march = Period("custom", date(2025, 3, 1), date(2025, 3, 31))
    result = service.list_page(
        TransactionFilters(type=TransactionType.expense, period=march)
    )
    assert sorted(t.amount for t in result.items) == [Decimal("20"), Decimal("30")]

    by_food = service.list_page(TransactionFilters(category_id=food.id))
    assert by_food.info.total_items == 2
    assert all(t.category.name == "Food" for t in by_food.items)


def test_other_users_transactions_are_not_found() -> None:
    session = make_session()
    owner = make_user(session, "owner")
    other = make_user(session, "other")
    txn = TransactionService(session, owner.id).create(expense("10", date(2025, 3, 1)))

    intruder = TransactionService(session, other.id)
    with pytest.raises(NotFoundError):
        intruder.get(txn.id)
    with pytest.raises(NotFoundError):
        intruder.update(txn.id, TransactionUpdate(amount=Decimal("1")))
    with pytest.raises(NotFoundError):
        intruder.delete(txn.id)
    assert intruder.list_page(TransactionFilters()).info.total_items == 0


def test_update_changes_only_supplied_fields() -> None:
    session = make_session()
    user = make_user(session)
    food = CategoryService(session, user.id).create(
        CategoryIn(name="Food", type=TransactionType.expense)
    )
    service = TransactionService(session, user.id)
    txn = service.create(expense("10", date(2025, 3, 1), description="Lunch"))

    updated = service.update(
        txn.id, TransactionUpdate(amount=Decimal("12.5"), category_id=food.id)
    )
    assert updated.amount == Decimal("12.50")
    assert updated.description == "Lunch"
    assert updated.date == date(2025, 3, 1)
    assert updated.category.name == "Food"

    with pytest.raises(ValueError):
        service.update(txn.id, TransactionUpdate(date=None))
    with pytest.raises(ValueError):
        service.update(txn.id, TransactionUpdate.model_validate({"amount": None}))


def test_category_must_match_transaction_type() -> None:
    session = make_session()
    user = make_user(session)
    salary = CategoryService(session, user.id).create(
        CategoryIn(name="Salary", type=TransactionType.income)
    )
    service = TransactionService(session, user.id)
    with pytest.raises(ValueError, match="type mismatch"):
        service.create(expense("10", date(2025, 3, 1), salary.id))

    txn = service.create(expense("10", date(2025, 3, 1)))
    with pytest.raises(ValueError, match="type mismatch"):
        service.update(txn.id, TransactionUpdate(category_id=salary.id))


def test_foreign_category_is_rejected() -> None:
    session = make_session()
    owner = make_user(session, "owner")
    other = make_user(session, "other")
    food = CategoryService(session, owner.id).create(
        CategoryIn(name="Food", type=TransactionType.expense)
    )
    with pytest.raises(NotFoundError):
        TransactionService(session, other.id).create(
            expense("10", date(2025, 3, 1), food.id)
        )
