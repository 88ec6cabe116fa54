from datetime import datetime, timezone

import pytest

from errors import ValidationError
from filters import ExpenseFilter, SortOptions, parse_expense_filters, parse_sort


def test_defaults_when_nothing_is_given() -> None:
    expense_filter, sort = parse_expense_filters({})
    assert expense_filter == ExpenseFilter()
    assert sort == SortOptions(field="date", direction="desc")


def test_all_parameters() -> None:
    expense_filter, sort = parse_expense_filters(
        {
            "description": "coffee",
            "source": "Visa",
            "amount_min": "-20.50",
            "amount_max": "10",
            "date_from": "2024-02-01",
            "date_to": "2024-02-28",
            "sort": "amount:asc",
            "page": "3",
        }
    )
    assert expense_filter == ExpenseFilter(
        description="coffee",
        source="Visa",
        amount_min=-2050,
        amount_max=1000,
        date_from=datetime(2024, 2, 1, tzinfo=timezone.utc),
        date_to=datetime(2024, 2, 28, tzinfo=timezone.utc),
    )
    assert sort == SortOptions(field="amount", direction="asc")


def test_empty_values_are_unset() -> None:
    expense_filter, _ = parse_expense_filters({"description": "", "amount_min": ""})
    assert expense_filter.description is None
    assert expense_filter.amount_min is None


def test_invalid_values_name_the_parameter() -> None:
    with pytest.raises(ValidationError, match="invalid amount_min") as exc:
        parse_expense_filters({"amount_min": "lots"})
    assert exc.value.field == "amount_min"

    with pytest.raises(ValidationError, match="invalid date_to"):
        parse_expense_filters({"date_to": "28/02/2024"})

    with pytest.raises(ValidationError, match="invalid sort"):
        parse_expense_filters({"sort": "description:asc"})

    with pytest.raises(ValidationError, match="invalid amount_min: amount out of range") as exc:
        parse_expense_filters({"amount_min": "1e30"})
    assert exc.value.field == "amount_min"


def test_parse_sort() -> None:
    assert parse_sort("date:asc") == SortOptions("date", "asc")
    with pytest.raises(ValueError, match="expected field:direction"):
        parse_sort("date")
    with pytest.raises(ValueError, match="must be asc or desc"):
        parse_sort("amount:up")
