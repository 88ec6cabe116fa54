import io
from datetime import datetime, timezone

from csv_utils import EXPORT_HEADER, expenses_to_csv, write_expenses_csv
from models import Category, Expense, ExpenseType


def _expense(expense_id: int, description: str, amount: int, category_id=None) -> Expense:
    return Expense(
        id=expense_id,
        source="TestBank",
        description=description,
        amount=amount,
        type=ExpenseType.from_amount(amount),
        date=datetime(2024, 1, 2, 15, 30, tzinfo=timezone.utc),
        currency="USD",
        category_id=category_id,
    )


def test_export_rows() -> None:
    categories = [Category(id=4, name="Transport", pattern="uber")]
    content = expenses_to_csv(
        [
            _expense(1, "uber ride", -5000, category_id=4),
            _expense(2, "salary, january", 500000),
            _expense(3, "mystery", -5, category_id=99),
        ],
        categories,
    )
    assert content.splitlines() == [
        "ID,Source,Date,Description,Amount,Type,Currency,Category",
        "1,TestBank,2024-01-02,uber ride,-50.00,charge,USD,Transport",
        '2,TestBank,2024-01-02,"salary, january",5000.00,income,USD,',
        "3,TestBank,2024-01-02,mystery,-0.05,charge,USD,",
    ]


def test_write_counts_rows() -> None:
    out = io.StringIO()
    assert write_expenses_csv(out, [], []) == 0
    assert out.getvalue() == ",".join(EXPORT_HEADER) + "\n"
