from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from errors import ValidationError
from file_parser import ParsedData
from matcher import CategoryMatcher
from models import Expense, ExpenseType
from money import parse_amount
from schemas import FieldMapping, RowError

# day-first is tried before the US order, so 02/01/2024 is the 2nd of January
DATE_FORMATS = (
    "%d/%m/%Y",
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%Y-%m-%dT%H:%M:%SZ",
)


@dataclass
class MappedExpense:
    expense: Expense
    row_index: int
    category: str = ""


@dataclass
class MappingResult:
    expenses: list[MappedExpense] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)


def parse_date(value: str) -> datetime:
    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    # RFC 3339 timestamps with an explicit offset
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValueError("unable to parse date") from None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _cell(row: list[str], index: int) -> str:
    # ragged CSV rows are shorter than the header
    if index >= len(row):
        raise ValueError(f"row has no column {index}")
    return row[index]


def map_row(
    row: list[str],
    mapping: FieldMapping,
    matcher: CategoryMatcher,
    row_index: int,
) -> MappedExpense:
    if mapping.source_column is not None:
        source = _cell(row, mapping.source_column)
    else:
        source = mapping.source
    date_str = _cell(row, mapping.date_column)
    description = _cell(row, mapping.description_column).lower()
    amount_str = _cell(row, mapping.amount_column)
    currency = _cell(row, mapping.currency_column)

    try:
        date = parse_date(date_str)
    except ValueError as exc:
        raise ValueError(f"invalid date {date_str!r}: {exc}") from exc

    try:
        amount = parse_amount(amount_str)
    except ValueError as exc:
        raise ValueError(f"invalid amount {amount_str!r}: {exc}") from exc

    category_id, category_name = matcher.match(description)
    expense = Expense(
        source=source,
        description=description,
        amount=amount,
        type=ExpenseType.from_amount(amount),
        date=date,
        currency=currency,
        category_id=category_id,
    )
    return MappedExpense(expense=expense, row_index=row_index, category=category_name)


def apply_mapping(
    data: ParsedData,
    mapping: FieldMapping,
    matcher: CategoryMatcher,
    *,
    limit: Optional[int] = None,
) -> MappingResult:
    """
    Turn parsed rows into unsaved expenses. A bad mapping raises
    ValidationError; a bad row is collected into ``errors`` and skipped.
    """
    try:
        mapping.check_columns(len(data.headers))
    except ValidationError as exc:
        raise ValidationError(f"invalid mapping: {exc}", field=exc.field) from exc

    rows = data.rows if limit is None else data.rows[:limit]
    result = MappingResult()
    for index, row in enumerate(rows):
        try:
            mapped = map_row(row, mapping, matcher, index)
        except ValueError as exc:
            result.errors.append(RowError(row_index=index, error=str(exc)))
            continue
        result.expenses.append(mapped)
    return result
