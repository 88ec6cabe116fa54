import csv
from io import StringIO
from typing import Iterable, Mapping, TextIO

from models import Category, Expense, ExpenseType
from money import format_amount

EXPORT_HEADER = (
    "ID",
    "Source",
    "Date",
    "Description",
    "Amount",
    "Type",
    "Currency",
    "Category",
)


def expense_to_row(expense: Expense, categories: Mapping[int, Category]) -> list[str]:
    category_name = ""
    if expense.category_id is not None:
        category = categories.get(expense.category_id)
        if category is not None:
            category_name = category.name

    return [
        str(expense.id),
        expense.source or "",
        expense.date.strftime("%Y-%m-%d"),
        expense.description,
        format_amount(expense.amount),
        "income" if expense.type == ExpenseType.income else "charge",
        expense.currency,
        category_name,
    ]


def write_expenses_csv(
    out: TextIO, expenses: Iterable[Expense], categories: Iterable[Category]
) -> int:
    """
    Write expenses in the export format. Category names are resolved from
    ``categories``; an unknown id leaves the column empty. Returns the
    number of data rows written.
    """
    by_id = {category.id: category for category in categories}
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    count = 0
    for expense in expenses:
        writer.writerow(expense_to_row(expense, by_id))
        count += 1
    return count


def expenses_to_csv(expenses: Iterable[Expense], categories: Iterable[Category]) -> str:
    buffer = StringIO()
    write_expenses_csv(buffer, expenses, categories)
    return buffer.getvalue()
