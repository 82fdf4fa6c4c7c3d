from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import Category, TransactionType, User
from schemas import CategoryIn, TransactionIn
from services import (
    DEFAULT_CATEGORIES,
    CategoryService,
    NotFoundError,
    TransactionService,
    seed_default_categories,
)


def make_user(session: Session, email: str = "ana@example.com") -> User:
    user = User(name="Ana Cruz", email=email, password_hash="not-used")
    session.add(user)
    session.commit()
    return user


def expense_in(name: str = "Coffee") -> CategoryIn:
    return CategoryIn(
        name=name, type=TransactionType.expense, icon="Coffee", color="#6F4E37"
    )


def test_seeding_defaults_is_idempotent() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        assert seed_default_categories(session) == len(DEFAULT_CATEGORIES)
        assert seed_default_categories(session) == 0
        user = make_user(session)

        categories = CategoryService(session, user.id).list_all()
        assert len(categories) == 15
        assert all(c.is_default and c.user_id is None for c in categories)
        income = CategoryService(session, user.id).list_all(TransactionType.income)
        assert [c.name for c in income] == [
            "Freelance",
            "Investments",
            "Other Income",
            "Salary",
            "Side Business",
        ]


def test_custom_categories_are_private_and_listed_after_defaults() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed_default_categories(session)
        ana = make_user(session)
        ben = make_user(session, email="ben@example.com")

        coffee = CategoryService(session, ana.id).create(expense_in("Coffee"))

        ana_names = [c.name for c in CategoryService(session, ana.id).list_all()]
        assert ana_names[-1] == "Coffee"
        assert "Coffee" not in [
            c.name for c in CategoryService(session, ben.id).list_all()
        ]
        with pytest.raises(NotFoundError):
            CategoryService(session, ben.id).get_visible(coffee.id)


def test_duplicate_names_are_rejected_against_own_and_default_categories() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed_default_categories(session)
        user = make_user(session)
        service = CategoryService(session, user.id)
        service.create(expense_in("Coffee"))

        with pytest.raises(ValueError, match="already exists"):
            service.create(expense_in("coffee"))
        with pytest.raises(ValueError, match="already exists"):
            service.create(expense_in("Shopping"))

        # same name with the other type is a different category
        service.create(
            CategoryIn(
                name="Shopping",
                type=TransactionType.income,
                icon="ShoppingBag",
                color="#4ECDC4",
            )
        )


def test_default_categories_cannot_be_edited_or_deleted() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed_default_categories(session)
        user = make_user(session)
        default = session.query(Category).filter_by(name="Housing").one()
        service = CategoryService(session, user.id)

        with pytest.raises(NotFoundError, match="cannot be edited"):
            service.update(default.id, expense_in("My Housing"))
        with pytest.raises(NotFoundError, match="cannot be deleted"):
            service.delete(default.id)


def test_update_keeps_type_fixed() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = make_user(session)
        service = CategoryService(session, user.id)
        coffee = service.create(expense_in("Coffee"))

        renamed = service.update(coffee.id, expense_in("Cafe"))
        assert renamed.name == "Cafe"

        with pytest.raises(ValueError, match="type cannot be changed"):
            service.update(
                coffee.id,
                CategoryIn(
                    name="Cafe", type=TransactionType.income, icon="Coffee", color="#6F4E37"
                ),
            )


def test_category_in_use_cannot_be_deleted() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = make_user(session)
        service = CategoryService(session, user.id)
        coffee = service.create(expense_in("Coffee"))
        for day in (1, 2):
            TransactionService(session, user.id).create(
                TransactionIn(
                    amount_cents=450,
                    description="Latte",
                    type=TransactionType.expense,
                    date=datetime(2026, 2, day, 8, 0),
                    category_id=coffee.id,
                )
            )

        with pytest.raises(ValueError, match="Cannot delete: 2 transaction"):
            service.delete(coffee.id)

        unused_id = service.create(expense_in("Snacks")).id
        service.delete(unused_id)
        assert session.get(Category, unused_id) is None


def test_category_input_validation() -> None:
    with pytest.raises(ValueError):
        CategoryIn(name="Bad", type=TransactionType.expense, icon="X", color="red")
    with pytest.raises(ValueError):
        CategoryIn(name="   ", type=TransactionType.expense, icon="X", color="#FFFFFF")
