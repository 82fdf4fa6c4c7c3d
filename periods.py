import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

MONTH_PATTERN = re.compile(r"(\d{4})-(\d{2})")
MIN_YEAR = 1970
MAX_YEAR = 3000
MONTH_ABBREVIATIONS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.start, time.min)

    @property
    def end_at(self) -> datetime:
        return datetime.combine(self.end, time.max)

    def days(self) -> list[date]:
        count = (self.end - self.start).days + 1
        return [self.start + timedelta(days=offset) for offset in range(count)]


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    first = month_start(d)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return next_month - date.resolution


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def month_label(d: date) -> str:
    """Short English label such as ``Feb 2026``, independent of the OS locale."""
    return f"{MONTH_ABBREVIATIONS[d.month - 1]} {d.year:04d}"


def parse_month(value: str) -> date:
    match = MONTH_PATTERN.fullmatch(value)
    if not match:
        raise ValueError("Month must use the YYYY-MM format")
    year, month = int(match.group(1)), int(match.group(2))
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ValueError(f"Year must be between {MIN_YEAR} and {MAX_YEAR} (YYYY-MM)")
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 01 and 12 (YYYY-MM)")
    return date(year, month, 1)


def resolve_month(month: Optional[str], *, today: Optional[date] = None) -> Period:
    today = today or date.today()
    first = parse_month(month) if month else month_start(today)
    return Period(month_key(first), first, month_end(first))


def trailing_months(period: Period, count: int) -> list[date]:
    """First days of the ``count`` months ending at the period's month, oldest first."""
    anchor = month_start(period.start)
    return [add_months(anchor, offset) for offset in range(-(count - 1), 1)]


def trend_window(period: Period, days: int = 30) -> Period:
    start = period.end - timedelta(days=days - 1)
    return Period("trend", start, period.end)
