from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

MONTHLY = "monthly"
YEARLY = "yearly"


@dataclass(frozen=True)
class Period:
    kind: str
    start: datetime
    end: datetime

    @property
    def title(self) -> str:
        return period_title(self.kind, self.start)

    @property
    def days(self) -> int:
        return calendar_days(self.start, self.end)


def period_title(kind: str, start: datetime) -> str:
    if kind == MONTHLY:
        return f"{start.strftime('%B')} {start.year}"
    return str(start.year)


def _utc(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


def month_period(year: int, month: int) -> Period:
    first = _utc(year, month, 1)
    if month == 12:
        next_month = _utc(year + 1, 1, 1)
    else:
        next_month = _utc(year, month + 1, 1)
    return Period(MONTHLY, first, next_month - timedelta(seconds=1))


def year_period(year: int) -> Period:
    return Period(YEARLY, _utc(year, 1, 1), _utc(year + 1, 1, 1) - timedelta(seconds=1))


def calendar_days(start: datetime, end: datetime) -> int:
    """Calendar difference end - start in whole days, ignoring time of day."""
    return (end.date() - start.date()).days


def resolve_period(
    kind: str,
    year: Optional[int] = None,
    month: Optional[int] = None,
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or datetime.now(timezone.utc).date()
    year = year or today.year
    if kind == YEARLY:
        return year_period(year)
    if kind == MONTHLY:
        return month_period(year, month or today.month)
    raise ValueError(f"Unknown report kind: {kind}")


def months_between(first: date, last: date) -> list[Period]:
    periods: list[Period] = []
    year, month = first.year, first.month
    while (year, month) <= (last.year, last.month):
        periods.append(month_period(year, month))
        if month == 12:
            year, month = year + 1, 1
        else:
            month += 1
    return periods
