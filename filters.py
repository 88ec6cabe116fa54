from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional

from errors import ValidationError
from money import dollars_to_cents

SORT_FIELDS = ("date", "amount")
SORT_DIRECTIONS = ("asc", "desc")


@dataclass
class ExpenseFilter:
    """Unset fields (None) do not constrain the query; bounds are inclusive."""

    description: Optional[str] = None
    source: Optional[str] = None
    amount_min: Optional[int] = None
    amount_max: Optional[int] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


@dataclass
class SortOptions:
    field: str = "date"
    direction: str = "desc"


def parse_sort(value: str) -> SortOptions:
    parts = value.split(":")
    if len(parts) != 2:
        raise ValueError("invalid sort format, expected field:direction")
    field, direction = parts
    if field not in SORT_FIELDS:
        raise ValueError(f"invalid sort field: {field} (must be date or amount)")
    if direction not in SORT_DIRECTIONS:
        raise ValueError(f"invalid sort direction: {direction} (must be asc or desc)")
    return SortOptions(field=field, direction=direction)


def _parse_day(value: str) -> datetime:
    return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)


def parse_expense_filters(params: Mapping[str, str]) -> tuple[ExpenseFilter, SortOptions]:
    """
    Build a filter and sort order from query-string style parameters.
    Unknown keys are ignored, empty values count as unset.
    """
    expense_filter = ExpenseFilter()
    sort = SortOptions()

    if params.get("description"):
        expense_filter.description = params["description"]
    if params.get("source"):
        expense_filter.source = params["source"]

    parsers = (
        ("amount_min", dollars_to_cents),
        ("amount_max", dollars_to_cents),
        ("date_from", _parse_day),
        ("date_to", _parse_day),
    )
    for key, parse in parsers:
        raw = params.get(key)
        if not raw:
            continue
        try:
            setattr(expense_filter, key, parse(raw))
        except ValueError as exc:
            raise ValidationError(f"invalid {key}: {exc}", field=key) from exc

    if params.get("sort"):
        try:
            sort = parse_sort(params["sort"])
        except ValueError as exc:
            raise ValidationError(f"invalid sort: {exc}", field="sort") from exc

    return expense_filter, sort
