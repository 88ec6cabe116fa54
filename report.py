from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Optional

from errors import NotFoundError
from models import Category, Expense, ExpenseType
from money import per_day
from periods import Period, calendar_days, period_title

if TYPE_CHECKING:  # pragma: no cover
    from storage import Storage

UNCATEGORIZED_CHARGE = "uncategorized charge"
UNCATEGORIZED_INCOME = "uncategorized income"


@dataclass
class ReportCategory:
    name: str
    amount: int = 0
    expenses: list[Expense] = field(default_factory=list)
    percentage_of_total: float = 0.0
    last_transaction: Optional[datetime] = None
    avg_amount: int = 0


@dataclass
class Report:
    title: str
    start_date: datetime
    end_date: datetime
    income: int = 0
    spending: int = 0
    savings: int = 0
    savings_pct: float = 0.0
    earnings_per_day: int = 0
    average_spending_per_day: int = 0
    categories: list[ReportCategory] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)


def _bucket_name(expense: Expense, category: Optional[Category]) -> str:
    if category is not None:
        return category.name
    if expense.type == ExpenseType.income:
        return UNCATEGORIZED_INCOME
    return UNCATEGORIZED_CHARGE


def _finish_category(bucket: ReportCategory, income: int, spending: int) -> None:
    if bucket.amount < 0 and spending < 0:
        bucket.percentage_of_total = bucket.amount * -100 / -spending
    elif bucket.amount > 0 and income > 0:
        bucket.percentage_of_total = bucket.amount * 100 / income
    if bucket.expenses:
        bucket.last_transaction = max(e.date for e in bucket.expenses)
        bucket.avg_amount = per_day(bucket.amount, len(bucket.expenses))


def generate(
    start: datetime,
    end: datetime,
    expenses: Iterable[Expense],
    kind: str,
    categories: Iterable[Category],
) -> Report:
    """
    Aggregate one window of expenses. ``categories`` are the owner's
    categories, used to resolve names; expenses in the exclude category
    are left out of every total.
    """
    by_id = {category.id: category for category in categories}
    buckets: dict[str, ReportCategory] = {}
    seen: set[str] = set()
    duplicates: list[str] = []
    income = 0
    spending = 0

    for expense in expenses:
        category = None
        if expense.category_id is not None:
            category = by_id.get(expense.category_id)
            if category is None:
                raise NotFoundError(f"category {expense.category_id} not found")
            if category.is_exclude:
                continue

        if expense.description in seen:
            duplicates.append(expense.description)
        else:
            seen.add(expense.description)

        if expense.type == ExpenseType.charge:
            spending += expense.amount
        else:
            income += expense.amount

        name = _bucket_name(expense, category)
        bucket = buckets.setdefault(name, ReportCategory(name=name))
        bucket.amount += expense.amount
        bucket.expenses.append(expense)

    for bucket in buckets.values():
        _finish_category(bucket, income, spending)

    days = calendar_days(start, end)
    savings = income - (-spending)
    return Report(
        title=period_title(kind, start),
        start_date=start,
        end_date=end,
        income=income,
        spending=spending,
        savings=savings,
        savings_pct=savings / income * 100 if income else 0.0,
        earnings_per_day=per_day(income, days),
        average_spending_per_day=per_day(-spending, days),
        categories=sorted(buckets.values(), key=lambda b: b.amount, reverse=True),
        duplicates=duplicates,
    )


class ReportCache:
    """Generated reports keyed by (user_id, start, end, kind)."""

    def __init__(self) -> None:
        self._reports: dict[tuple[int, datetime, datetime, str], Report] = {}
        self._lock = threading.Lock()

    def get(self, user_id: int, period: Period) -> Optional[Report]:
        with self._lock:
            return self._reports.get((user_id, period.start, period.end, period.kind))

    def put(self, user_id: int, period: Period, report: Report) -> None:
        with self._lock:
            self._reports[(user_id, period.start, period.end, period.kind)] = report

    def invalidate(self, user_id: int) -> None:
        with self._lock:
            for key in [k for k in self._reports if k[0] == user_id]:
                del self._reports[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._reports)


def build_report(
    storage: "Storage",
    user_id: int,
    period: Period,
    cache: Optional[ReportCache] = None,
) -> Report:
    if cache is not None:
        cached = cache.get(user_id, period)
        if cached is not None:
            return cached
    expenses = storage.get_expenses_from_date_range(user_id, period.start, period.end)
    report = generate(
        period.start, period.end, expenses, period.kind, storage.get_categories(user_id)
    )
    if cache is not None:
        cache.put(user_id, period, report)
    return report
