from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from models import Category, Transaction, TransactionType, User
from periods import (
    Period,
    month_key,
    month_label,
    resolve_month,
    trailing_months,
    trend_window,
)
from schemas import (
    BalanceTrendItem,
    CategoryBreakdownItem,
    CategoryIn,
    DashboardStats,
    MonthlyTrendItem,
    PasswordChangeIn,
    PreferencesIn,
    ProfileIn,
    RegisterIn,
    TransactionIn,
    TransactionOut,
)
from security import hash_password, verify_password

logger = logging.getLogger(__name__)


class NotFoundError(ValueError):
    pass


class EmailInUseError(ValueError):
    pass


class InvalidCredentialsError(ValueError):
    pass


# (name, type, icon, color)
DEFAULT_CATEGORIES: list[tuple[str, TransactionType, str, str]] = [
    ("Food & Dining", TransactionType.expense, "UtensilsCrossed", "#E07C4F"),
    ("Transportation", TransactionType.expense, "Car", "#5B8DEF"),
    ("Housing", TransactionType.expense, "Home", "#8B6FC0"),
    ("Utilities", TransactionType.expense, "Zap", "#F5A623"),
    ("Entertainment", TransactionType.expense, "Film", "#E05B8D"),
    ("Shopping", TransactionType.expense, "ShoppingBag", "#4ECDC4"),
    ("Healthcare", TransactionType.expense, "Heart", "#FF6B6B"),
    ("Education", TransactionType.expense, "GraduationCap", "#45B7D1"),
    ("Personal Care", TransactionType.expense, "Sparkles", "#C8702A"),
    ("Other Expense", TransactionType.expense, "MoreHorizontal", "#8B7E6A"),
    ("Salary", TransactionType.income, "Briefcase", "#2D8B5A"),
    ("Freelance", TransactionType.income, "Laptop", "#45B7D1"),
    ("Investments", TransactionType.income, "TrendingUp", "#8B6FC0"),
    ("Side Business", TransactionType.income, "Store", "#E07C4F"),
    ("Other Income", TransactionType.income, "MoreHorizontal", "#5B8DEF"),
]


def seed_default_categories(session: Session) -> int:
    existing = session.execute(
        select(func.count(Category.id)).where(Category.is_default.is_(True))
    ).scalar_one()
    if existing:
        logger.info(f"seed_default_categories: skipped existing={existing}")
        return 0
    session.add_all(
        [
            Category(
                user_id=None,
                name=name,
                type=txn_type,
                icon=icon,
                color=color,
                is_default=True,
            )
            for name, txn_type, icon, color in DEFAULT_CATEGORIES
        ]
    )
    session.commit()
    logger.info(f"seed_default_categories: created={len(DEFAULT_CATEGORIES)}")
    return len(DEFAULT_CATEGORIES)


def percentage_of(amount_cents: int, total_cents: int) -> int:
    """Whole-number share of ``total_cents``, rounded half up; 0 for a zero total."""
    if not total_cents:
        return 0
    share = Decimal(amount_cents) * 100 / Decimal(total_cents)
    return int(share.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _by_email(self, email: str) -> Optional[User]:
        return self.session.scalar(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )

    def register(self, data: RegisterIn) -> User:
        if self._by_email(data.email):
            raise EmailInUseError("An account with this email already exists")
        user = User(
            name=data.name.strip(),
            email=data.email,
            password_hash=hash_password(data.password),
            currency=get_settings().default_currency,
            hide_amounts=False,
            quick_expense_categories=[],
            quick_income_categories=[],
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_registered: user_id={user.id}")
        return user

    def authenticate(self, email: str, password: str) -> User:
        user = self._by_email(email)
        if not user or not verify_password(password, user.password_hash):
            logger.info("login_failed: reason=bad_credentials")
            raise InvalidCredentialsError("Invalid email or password")
        logger.info(f"login_succeeded: user_id={user.id}")
        return user


class ProfileService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self) -> User:
        user = self.session.get(User, self.user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def update(self, data: ProfileIn) -> User:
        user = self.get()
        clash = self.session.scalar(
            select(User.id).where(
                func.lower(User.email) == data.email, User.id != self.user_id
            )
        )
        if clash:
            raise EmailInUseError("Email is already in use")
        user.name = data.name.strip()
        user.email = data.email
        user.currency = data.currency
        self.session.commit()
        self.session.refresh(user)
        return user

    def change_password(self, data: PasswordChangeIn) -> None:
        user = self.get()
        if not verify_password(data.current_password, user.password_hash):
            raise ValueError("Current password is incorrect")
        user.password_hash = hash_password(data.new_password)
        self.session.commit()
        logger.info(f"password_changed: user_id={user.id}")

    def update_preferences(self, data: PreferencesIn) -> User:
        user = self.get()
        categories = CategoryService(self.session, self.user_id)
        if data.hide_amounts is not None:
            user.hide_amounts = data.hide_amounts
        if data.quick_expense_categories is not None:
            user.quick_expense_categories = categories.validate_quick_picks(
                data.quick_expense_categories, TransactionType.expense
            )
        if data.quick_income_categories is not None:
            user.quick_income_categories = categories.validate_quick_picks(
                data.quick_income_categories, TransactionType.income
            )
        self.session.commit()
        self.session.refresh(user)
        return user


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _visible(self):
        return or_(Category.is_default.is_(True), Category.user_id == self.user_id)

    def list_all(
        self, transaction_type: Optional[TransactionType] = None
    ) -> list[Category]:
        stmt = (
            select(Category)
            .where(self._visible())
            .order_by(Category.is_default.desc(), Category.name.asc(), Category.id)
        )
        if transaction_type:
            stmt = stmt.where(Category.type == transaction_type)
        return self.session.scalars(stmt).all()

    def get_visible(self, category_id: int) -> Category:
        category = self.session.scalar(
            select(Category).where(Category.id == category_id, self._visible())
        )
        if not category:
            raise NotFoundError("Category not found")
        return category

    def _get_custom(self, category_id: int, action: str) -> Category:
        category = self.session.get(Category, category_id)
        if (
            not category
            or category.is_default
            or category.user_id != self.user_id
        ):
            raise NotFoundError(f"Category not found or cannot be {action}")
        return category

    def _ensure_unique(
        self,
        name: str,
        transaction_type: TransactionType,
        exclude_id: Optional[int] = None,
    ) -> None:
        stmt = select(Category.id).where(
            self._visible(),
            Category.type == transaction_type,
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt):
            raise ValueError("A category with this name already exists")

    def create(self, data: CategoryIn) -> Category:
        self._ensure_unique(data.name, data.type)
        category = Category(
            user_id=self.user_id,
            name=data.name,
            type=data.type,
            icon=data.icon,
            color=data.color,
            is_default=False,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryIn) -> Category:
        category = self._get_custom(category_id, "edited")
        if data.type != category.type:
            raise ValueError("Category type cannot be changed")
        self._ensure_unique(data.name, data.type, exclude_id=category.id)
        category.name = data.name
        category.icon = data.icon
        category.color = data.color
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self._get_custom(category_id, "deleted")
        usage = self.session.execute(
            select(func.count(Transaction.id)).where(
                Transaction.category_id == category.id
            )
        ).scalar_one()
        if usage:
            raise ValueError(f"Cannot delete: {usage} transaction(s) use this category")
        self.session.delete(category)
        self.session.commit()
        logger.info(
            f"category_deleted: user_id={self.user_id} category_id={category_id}"
        )

    def validate_quick_picks(
        self, category_ids: list[int], transaction_type: TransactionType
    ) -> list[int]:
        unique_ids = list(dict.fromkeys(category_ids))
        if not unique_ids:
            return []
        found = set(
            self.session.scalars(
                select(Category.id).where(
                    Category.id.in_(unique_ids),
                    Category.type == transaction_type,
                    self._visible(),
                )
            ).all()
        )
        missing = [cid for cid in unique_ids if cid not in found]
        if missing:
            raise ValueError(
                f"Unknown {transaction_type.value.lower()} categories: "
                + ", ".join(str(cid) for cid in missing)
            )
        return unique_ids


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    period: Optional[Period] = None


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _category_for(self, data: TransactionIn) -> Category:
        try:
            category = CategoryService(self.session, self.user_id).get_visible(
                data.category_id
            )
        except NotFoundError as exc:
            # an unknown category is bad input here, not a missing resource
            raise ValueError(str(exc)) from exc
        if category.type != data.type:
            raise ValueError("Category type mismatch")
        return category

    def create(self, data: TransactionIn) -> Transaction:
        category = self._category_for(data)
        txn = Transaction(
            user_id=self.user_id,
            amount_cents=data.amount_cents,
            description=data.description.strip(),
            type=data.type,
            date=data.date,
            category_id=category.id,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        category = self._category_for(data)
        txn.amount_cents = data.amount_cents
        txn.description = data.description.strip()
        txn.type = data.type
        txn.date = data.date
        txn.category_id = category.id
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()
        logger.info(
            f"transaction_deleted: user_id={self.user_id} transaction_id={transaction_id}"
        )

    def list(
        self,
        filters: TransactionFilters,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Transaction], int]:
        conditions = [Transaction.user_id == self.user_id]
        if filters.type:
            conditions.append(Transaction.type == filters.type)
        if filters.period:
            conditions.append(
                Transaction.date.between(filters.period.start_at, filters.period.end_at)
            )
        total = self.session.execute(
            select(func.count(Transaction.id)).where(*conditions)
        ).scalar_one()
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(*conditions)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return self.session.scalars(stmt).all(), int(total or 0)

    def recent(self, limit: int = 5) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()


def _signed(amount_cents: int, txn_type: TransactionType) -> int:
    return amount_cents if txn_type == TransactionType.income else -amount_cents


class DashboardService:
    """Monthly dashboard figures for one user.

    Every read goes through ``self.session`` so the whole computation sees a
    single read transaction. Amounts are integer cents.
    """

    RECENT_LIMIT = 5
    TREND_MONTHS = 6
    TREND_DAYS = 30

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _period_transactions(self, period: Period) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(period.start_at, period.end_at),
            )
            .order_by(Transaction.date.asc(), Transaction.id.asc())
        )
        return self.session.scalars(stmt).all()

    def _amount_rows(self, start: datetime, end: datetime):
        stmt = (
            select(Transaction.amount_cents, Transaction.type, Transaction.date)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(start, end),
            )
            .order_by(Transaction.date.asc(), Transaction.id.asc())
        )
        return self.session.execute(stmt).all()

    def _total_through(self, transaction_type: TransactionType, cutoff: datetime) -> int:
        stmt = select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
            Transaction.user_id == self.user_id,
            Transaction.type == transaction_type,
            Transaction.date <= cutoff,
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def compute(
        self, month: Optional[str] = None, *, now: Optional[datetime] = None
    ) -> DashboardStats:
        now = now or datetime.now()
        today = now.date()
        period = resolve_month(month, today=today)
        window = trend_window(period, self.TREND_DAYS)
        months = trailing_months(period, self.TREND_MONTHS)

        period_txns = self._period_transactions(period)
        recent = TransactionService(self.session, self.user_id).recent(
            self.RECENT_LIMIT
        )
        trend_rows = self._amount_rows(
            datetime.combine(months[0], time.min), period.end_at
        )
        income_to_date = self._total_through(TransactionType.income, period.end_at)
        expenses_to_date = self._total_through(TransactionType.expense, period.end_at)
        window_rows = self._amount_rows(window.start_at, window.end_at)

        total_income = sum(
            t.amount_cents for t in period_txns if t.type == TransactionType.income
        )
        total_expenses = sum(
            t.amount_cents for t in period_txns if t.type == TransactionType.expense
        )
        running_balance = income_to_date - expenses_to_date

        logger.debug(
            f"dashboard_computed: user_id={self.user_id} month={period.slug} "
            f"transactions={len(period_txns)}"
        )
        return DashboardStats(
            month=period.slug,
            as_of=today,
            total_income_cents=total_income,
            total_expenses_cents=total_expenses,
            balance_cents=total_income - total_expenses,
            running_balance_cents=running_balance,
            transaction_count=len(period_txns),
            recent_transactions=[TransactionOut.model_validate(t) for t in recent],
            category_breakdown=self.category_breakdown(period_txns, total_expenses),
            monthly_trend=self.monthly_trend(months, trend_rows),
            balance_trend=self.balance_trend(
                window, window_rows, running_balance, today
            ),
        )

    @staticmethod
    def category_breakdown(
        transactions: list[Transaction], total_expenses: int
    ) -> list[CategoryBreakdownItem]:
        grouped: dict[int, dict[str, object]] = {}
        for txn in transactions:
            if txn.type != TransactionType.expense:
                continue
            entry = grouped.get(txn.category_id)
            if entry is None:
                grouped[txn.category_id] = {
                    "category_id": txn.category_id,
                    "name": txn.category.name,
                    "color": txn.category.color,
                    "icon": txn.category.icon,
                    "amount_cents": txn.amount_cents,
                }
            else:
                entry["amount_cents"] = int(entry["amount_cents"]) + txn.amount_cents
        ordered = sorted(
            grouped.values(), key=lambda e: int(e["amount_cents"]), reverse=True
        )
        return [
            CategoryBreakdownItem(
                **entry,
                percentage=percentage_of(int(entry["amount_cents"]), total_expenses),
            )
            for entry in ordered
        ]

    @staticmethod
    def monthly_trend(months: list[date], rows) -> list[MonthlyTrendItem]:
        income: dict[str, int] = defaultdict(int)
        expenses: dict[str, int] = defaultdict(int)
        for row in rows:
            key = month_key(row.date)
            if row.type == TransactionType.income:
                income[key] += row.amount_cents
            else:
                expenses[key] += row.amount_cents
        return [
            MonthlyTrendItem(
                month=month_label(first),
                income_cents=income.get(month_key(first), 0),
                expense_cents=expenses.get(month_key(first), 0),
            )
            for first in months
        ]

    @staticmethod
    def balance_trend(
        window: Period, rows, running_balance: int, today: date
    ) -> list[BalanceTrendItem]:
        window_net = sum(_signed(row.amount_cents, row.type) for row in rows)
        prior_balance = running_balance - window_net

        deltas: dict[date, int] = defaultdict(int)
        for row in rows:
            deltas[row.date.date()] += _signed(row.amount_cents, row.type)

        out: list[BalanceTrendItem] = []
        balance = prior_balance
        for day in window.days():
            balance += deltas.get(day, 0)
            out.append(
                BalanceTrendItem(date=day, balance_cents=balance, projected=day > today)
            )
        return out
