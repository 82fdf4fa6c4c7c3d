from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import Transaction, TransactionType, User
from periods import resolve_month
from schemas import CategoryIn, TransactionIn
from services import (
    CategoryService,
    NotFoundError,
    TransactionFilters,
    TransactionService,
    seed_default_categories,
)


def make_user(session: Session, email: str = "ana@example.com") -> User:
    user = User(name="Ana Cruz", email=email, password_hash="not-used")
    session.add(user)
    session.commit()
    return user


def setup_categories(session: Session, user: User):
    categories = CategoryService(session, user.id)
    salary = categories.create(
        CategoryIn(name="Pay", type=TransactionType.income, icon="Briefcase", color="#2D8B5A")
    )
    food = categories.create(
        CategoryIn(name="Meals", type=TransactionType.expense, icon="Utensils", color="#E07C4F")
    )
    return salary, food


def test_transaction_type_must_match_category_type() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = make_user(session)
        salary, _food = setup_categories(session, user)

        with pytest.raises(ValueError, match="Category type mismatch"):
            TransactionService(session, user.id).create(
                TransactionIn(
                    amount_cents=1_000,
                    description="Misfiled",
                    type=TransactionType.expense,
                    date=datetime(2026, 2, 1, 9, 0),
                    category_id=salary.id,
                )
            )


def test_default_categories_are_usable_but_foreign_custom_ones_are_not() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed_default_categories(session)
        ana = make_user(session)
        ben = make_user(session, email="ben@example.com")
        _salary, ben_food = setup_categories(session, ben)
        transport = next(
            c
            for c in CategoryService(session, ana.id).list_all(TransactionType.expense)
            if c.name == "Transportation"
        )

        txn = TransactionService(session, ana.id).create(
            TransactionIn(
                amount_cents=250,
                description="Jeepney",
                type=TransactionType.expense,
                date=datetime(2026, 2, 2, 7, 0),
                category_id=transport.id,
            )
        )
        assert txn.category.is_default

        with pytest.raises(ValueError, match="Category not found") as excinfo:
            TransactionService(session, ana.id).create(
                TransactionIn(
                    amount_cents=250,
                    description="Lunch",
                    type=TransactionType.expense,
                    date=datetime(2026, 2, 2, 12, 0),
                    category_id=ben_food.id,
                )
            )
        assert not isinstance(excinfo.value, NotFoundError)


def test_other_users_cannot_read_update_or_delete() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ana = make_user(session)
        ben = make_user(session, email="ben@example.com")
        _salary, food = setup_categories(session, ana)
        data = TransactionIn(
            amount_cents=1_500,
            description="Dinner",
            type=TransactionType.expense,
            date=datetime(2026, 2, 3, 19, 0),
            category_id=food.id,
        )
        txn = TransactionService(session, ana.id).create(data)
        intruder = TransactionService(session, ben.id)

        with pytest.raises(NotFoundError):
            intruder.get(txn.id)
        with pytest.raises(NotFoundError):
            intruder.update(txn.id, data)
        with pytest.raises(NotFoundError):
            intruder.delete(txn.id)


def test_update_and_hard_delete() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = make_user(session)
        salary, food = setup_categories(session, user)
        service = TransactionService(session, user.id)
        txn = service.create(
            TransactionIn(
                amount_cents=1_500,
                description="Dinner",
                type=TransactionType.expense,
                date=datetime(2026, 2, 3, 19, 0),
                category_id=food.id,
            )
        )

        updated = service.update(
            txn.id,
            TransactionIn(
                amount_cents=90_000,
                description="  Refund booked as income  ",
                type=TransactionType.income,
                date=datetime(2026, 2, 4, 9, 0),
                category_id=salary.id,
            ),
        )
        assert updated.amount_cents == 90_000
        assert updated.type == TransactionType.income
        assert updated.description == "Refund booked as income"

        txn_id = txn.id
        service.delete(txn_id)
        assert session.get(Transaction, txn_id) is None


def test_list_filters_and_paginates_newest_first() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = make_user(session)
        salary, food = setup_categories(session, user)
        service = TransactionService(session, user.id)
        start = datetime(2026, 1, 25, 12, 0)
        for offset in range(10):
            service.create(
                TransactionIn(
                    amount_cents=100 + offset,
                    description=f"Meal {offset}",
                    type=TransactionType.expense,
                    date=start + timedelta(days=offset),
                    category_id=food.id,
                )
            )
        service.create(
            TransactionIn(
                amount_cents=50_000,
                description="Salary",
                type=TransactionType.income,
                date=datetime(2026, 2, 1, 9, 0),
                category_id=salary.id,
            )
        )

        everything, total = service.list(TransactionFilters(), page=1, limit=4)
        assert total == 11
        assert len(everything) == 4
        assert everything[0].description == "Meal 9"

        last_page, _ = service.list(TransactionFilters(), page=3, limit=4)
        assert len(last_page) == 3

        february = TransactionFilters(
            type=TransactionType.expense, period=resolve_month("2026-02")
        )
        items, total = service.list(february, page=1, limit=20)
        assert total == 3
        assert [t.description for t in items] == ["Meal 9", "Meal 8", "Meal 7"]


def test_transaction_input_validation() -> None:
    with pytest.raises(ValidationError):
        TransactionIn(
            amount_cents=0,
            type=TransactionType.expense,
            date=datetime(2026, 2, 1),
            category_id=1,
        )
    with pytest.raises(ValidationError):
        TransactionIn(
            amount_cents=-500,
            type=TransactionType.expense,
            date=datetime(2026, 2, 1),
            category_id=1,
        )


def test_timezone_aware_dates_are_stored_as_local_time() -> None:
    data = TransactionIn(
        amount_cents=100,
        type=TransactionType.expense,
        date=datetime(2026, 2, 28, 20, 0, tzinfo=timezone.utc),
        category_id=1,
    )

    # Asia/Manila is UTC+8, so this lands on the first of March
    assert data.date == datetime(2026, 3, 1, 4, 0)
    assert data.date.tzinfo is None
