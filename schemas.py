import datetime as dt
from datetime import date, datetime
from typing import Annotated, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from config import get_settings
from models import TransactionType

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
MAX_QUICK_CATEGORIES = 4

QuickCategoryIds = Annotated[list[int], Field(max_length=MAX_QUICK_CATEGORIES)]


def _to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    tz = ZoneInfo(get_settings().timezone)
    return value.astimezone(tz).replace(tzinfo=None)


class RegisterIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6, max_length=72)
    confirm_password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterIn":
        if self.password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


class LoginIn(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6, max_length=72)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class ProfileIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    currency: str = Field(..., min_length=3, max_length=3)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, value: str) -> str:
        if not value.isalpha():
            raise ValueError("Currency must be a 3-letter code")
        return value.upper()


class PasswordChangeIn(BaseModel):
    current_password: str = Field(..., min_length=6, max_length=72)
    new_password: str = Field(..., min_length=6, max_length=72)
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self) -> "PasswordChangeIn":
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


class PreferencesIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hide_amounts: Optional[bool] = None
    quick_expense_categories: Optional[QuickCategoryIds] = None
    quick_income_categories: Optional[QuickCategoryIds] = None


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    type: TransactionType
    icon: str = Field(..., min_length=1, max_length=50)
    color: str = Field(..., pattern=COLOR_PATTERN)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required")
        return value


class TransactionIn(BaseModel):
    amount_cents: int = Field(..., gt=0)
    description: str = Field(default="", max_length=255)
    type: TransactionType
    date: datetime
    category_id: int

    @field_validator("date")
    @classmethod
    def localize_date(cls, value: datetime) -> datetime:
        return _to_local_naive(value)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    currency: str


class PreferencesOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    hide_amounts: bool
    quick_expense_categories: list[int]
    quick_income_categories: list[int]


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[int]
    name: str
    type: TransactionType
    icon: str
    color: str
    is_default: bool


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount_cents: int
    description: str
    type: TransactionType
    date: datetime
    category_id: int
    category: CategoryOut


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class TransactionPage(BaseModel):
    transactions: list[TransactionOut]
    pagination: Pagination


class CategoryBreakdownItem(BaseModel):
    category_id: int
    name: str
    color: str
    icon: str
    amount_cents: int
    percentage: int


class MonthlyTrendItem(BaseModel):
    month: str
    income_cents: int
    expense_cents: int


class BalanceTrendItem(BaseModel):
    date: dt.date
    balance_cents: int
    # past "today" relative to the injected clock
    projected: bool


class DashboardStats(BaseModel):
    month: str
    as_of: date
    total_income_cents: int
    total_expenses_cents: int
    balance_cents: int
    running_balance_cents: int
    transaction_count: int
    recent_transactions: list[TransactionOut]
    category_breakdown: list[CategoryBreakdownItem]
    monthly_trend: list[MonthlyTrendItem]
    balance_trend: list[BalanceTrendItem]
