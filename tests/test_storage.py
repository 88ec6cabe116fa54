from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from config import DBSettings
from errors import ConflictError, NotFoundError, ValidationError
from filters import ExpenseFilter, SortOptions, parse_expense_filters
from models import EXCLUDE_CATEGORY, Expense, ExpenseType
from storage import Storage

ADMIN_ID = 1


def _storage(tmp_path: Path) -> Storage:
    storage = Storage.open(DBSettings(source=str(tmp_path / "expenses.db")))
    storage.apply_migrations()
    return storage


def _expense(
    description: str,
    amount: int,
    day: datetime,
    category_id=None,
    source: str = "TestBank",
) -> Expense:
    return Expense(
        source=source,
        description=description,
        amount=amount,
        type=ExpenseType.from_amount(amount),
        date=day,
        currency="USD",
        category_id=category_id,
    )


def _utc(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


def test_insert_skips_duplicates(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    rows = [
        _expense("restaurant bill", -123456, _utc(2024, 1, 1)),
        _expense("salary", 500000, _utc(2024, 1, 3)),
    ]
    assert storage.insert_expenses(ADMIN_ID, rows) == 2
    assert storage.insert_expenses(ADMIN_ID, rows) == 0
    assert storage.insert_expenses(ADMIN_ID, []) == 0

    stored = storage.get_all_expenses(ADMIN_ID)
    assert [e.description for e in stored] == ["restaurant bill", "salary"]
    assert stored[0].date == _utc(2024, 1, 1)
    assert stored[0].type == ExpenseType.charge
    assert stored[0].user_id == ADMIN_ID
    assert [e.description for e in storage.get_expenses(ADMIN_ID)] == ["restaurant bill"]


def test_same_row_for_two_users_is_not_a_duplicate(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    bob = storage.create_user("bob", "hash")
    row = _expense("coffee", -300, _utc(2024, 1, 1))
    assert storage.insert_expenses(ADMIN_ID, [row]) == 1
    assert storage.insert_expenses(bob.id, [row]) == 1


def test_users_only_see_their_own_rows(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    bob = storage.create_user("bob", "hash")
    storage.insert_expenses(ADMIN_ID, [_expense("coffee", -300, _utc(2024, 1, 1))])
    expense = storage.get_all_expenses(ADMIN_ID)[0]
    food = storage.create_category(ADMIN_ID, "Food", "coffee")

    assert storage.get_all_expenses(bob.id) == []
    assert storage.search_expenses(bob.id, "coffee") == []
    with pytest.raises(NotFoundError):
        storage.get_expense_by_id(bob.id, expense.id)
    with pytest.raises(NotFoundError):
        storage.get_category(bob.id, food.id)
    with pytest.raises(NotFoundError):
        storage.get_first_expense(bob.id)

    # an update scoped to bob leaves the row alone
    moved = _expense("coffee", -300, _utc(2024, 1, 1), category_id=food.id)
    moved.id = expense.id
    assert storage.update_expenses(bob.id, [moved]) == 0
    assert storage.update_expense(bob.id, moved) == 0
    assert storage.delete_expense(bob.id, expense.id) == 0
    assert storage.get_expense_by_id(ADMIN_ID, expense.id).category_id is None


def test_update_expenses_replaces_rows(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    storage.insert_expenses(ADMIN_ID, [_expense("coffee", -300, _utc(2024, 1, 1))])
    food = storage.create_category(ADMIN_ID, "Food", "coffee")
    expense = storage.get_all_expenses(ADMIN_ID)[0]

    updated = _expense("coffee", -300, _utc(2024, 1, 1), category_id=food.id)
    updated.id = expense.id
    assert storage.update_expenses(ADMIN_ID, [updated]) == 1
    assert storage.get_expense_by_id(ADMIN_ID, expense.id).category_id == food.id
    assert [e.id for e in storage.get_expenses_by_category(ADMIN_ID, food.id)] == [expense.id]

    assert storage.delete_expense(ADMIN_ID, expense.id) == 1
    assert storage.count_expenses(ADMIN_ID) == 0


def test_queries_by_category_range_and_keyword(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    storage.insert_expenses(
        ADMIN_ID,
        [
            _expense("uber ride", -5000, _utc(2024, 1, 2)),
            _expense("coffee shop", -300, _utc(2023, 12, 30)),
            _expense("salary", 500000, _utc(2024, 1, 3)),
        ],
    )

    uncategorized = storage.get_expenses_without_category(ADMIN_ID)
    assert [e.description for e in uncategorized] == ["uber ride", "coffee shop"]
    assert [e.description for e in storage.get_expenses_without_category(ADMIN_ID, "uber")] == [
        "uber ride"
    ]

    january = storage.get_expenses_from_date_range(
        ADMIN_ID, _utc(2024, 1, 1), _utc(2024, 1, 31)
    )
    assert {e.description for e in january} == {"uber ride", "salary"}
    assert storage.get_first_expense(ADMIN_ID).description == "coffee shop"
    assert [e.description for e in storage.search_expenses_by_description(ADMIN_ID, "salary")] == [
        "salary"
    ]


def test_filtered_query_by_date_window(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    storage.insert_expenses(
        ADMIN_ID,
        [
            _expense("jan", -100, _utc(2024, 1, 15)),
            _expense("feb", -200, _utc(2024, 2, 15)),
            _expense("mar", -300, _utc(2024, 3, 15)),
        ],
    )
    expense_filter, sort = parse_expense_filters(
        {"date_from": "2024-02-01", "date_to": "2024-02-28", "sort": "date:asc"}
    )
    rows = storage.get_expenses_filtered(ADMIN_ID, expense_filter, sort)
    assert [e.description for e in rows] == ["feb"]


def test_filtered_query_amounts_text_and_sort(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    storage.insert_expenses(
        ADMIN_ID,
        [
            _expense("coffee", -300, _utc(2024, 1, 1), source="Visa"),
            _expense("coffee beans", -1500, _utc(2024, 1, 2), source="Amex"),
            _expense("rent", -90000, _utc(2024, 1, 3), source="Visa"),
        ],
    )

    rows = storage.get_expenses_filtered(
        ADMIN_ID, ExpenseFilter(description="coffee"), SortOptions("amount", "asc")
    )
    assert [e.amount for e in rows] == [-1500, -300]

    rows = storage.get_expenses_filtered(
        ADMIN_ID, ExpenseFilter(amount_min=-2000, amount_max=-300), SortOptions()
    )
    assert [e.description for e in rows] == ["coffee beans", "coffee"]

    rows = storage.get_expenses_filtered(
        ADMIN_ID, ExpenseFilter(source="visa"), SortOptions("date", "desc")
    )
    assert [e.description for e in rows] == ["rent", "coffee"]


def test_create_user_adds_exclude_category(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    bob = storage.create_user("bob", "hash")

    assert storage.get_user_by_username("bob").id == bob.id
    assert storage.get_user_by_id(bob.id).password_hash == "hash"
    categories = storage.get_categories(bob.id)
    assert [c.name for c in categories] == [EXCLUDE_CATEGORY]
    assert storage.get_exclude_category(bob.id).pattern == "$a"

    with pytest.raises(ConflictError):
        storage.create_user("bob", "other")


def test_seeded_admin_owns_an_exclude_category(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    assert storage.get_user_by_id(ADMIN_ID).username == "admin"
    assert storage.get_exclude_category(ADMIN_ID).user_id == ADMIN_ID


def test_update_user_fields(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    bob = storage.create_user("bob", "hash")
    storage.update_username(bob.id, "robert")
    storage.update_password(bob.id, "new-hash")
    user = storage.get_user_by_id(bob.id)
    assert (user.username, user.password_hash) == ("robert", "new-hash")

    with pytest.raises(NotFoundError):
        storage.update_username(999, "ghost")
    with pytest.raises(NotFoundError):
        storage.get_user_by_username("bob")


def test_category_names_are_unique_per_user(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    bob = storage.create_user("bob", "hash")
    storage.create_category(ADMIN_ID, "Food", "food")
    storage.create_category(bob.id, "Food", "food")
    with pytest.raises(ConflictError):
        storage.create_category(ADMIN_ID, "Food", "restaurant")


def test_update_category(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    food = storage.create_category(ADMIN_ID, "Food", "food")
    storage.update_category(ADMIN_ID, food.id, "Groceries", "market")
    category = storage.get_category(ADMIN_ID, food.id)
    assert (category.name, category.pattern) == ("Groceries", "market")
    with pytest.raises(NotFoundError):
        storage.update_category(ADMIN_ID, 999, "x", "y")


def test_delete_category_uncategorizes_expenses(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    food = storage.create_category(ADMIN_ID, "Food", "food")
    storage.insert_expenses(
        ADMIN_ID, [_expense("food", -300, _utc(2024, 1, 1), category_id=food.id)]
    )

    assert storage.delete_category(ADMIN_ID, food.id) == 1
    assert storage.get_all_expenses(ADMIN_ID)[0].category_id is None
    with pytest.raises(NotFoundError):
        storage.delete_category(ADMIN_ID, food.id)

    exclude = storage.get_exclude_category(ADMIN_ID)
    with pytest.raises(ValidationError, match="exclude category"):
        storage.delete_category(ADMIN_ID, exclude.id)


def test_delete_categories_keeps_exclude(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    exclude = storage.get_exclude_category(ADMIN_ID)
    food = storage.create_category(ADMIN_ID, "Food", "food")
    travel = storage.create_category(ADMIN_ID, "Travel", "train")
    storage.insert_expenses(
        ADMIN_ID,
        [
            _expense("food", -300, _utc(2024, 1, 1), category_id=food.id),
            _expense("train", -900, _utc(2024, 1, 2), category_id=travel.id),
            _expense("transfer", -100000, _utc(2024, 1, 3), category_id=exclude.id),
        ],
    )

    assert storage.delete_categories(ADMIN_ID) == 2
    assert [c.id for c in storage.get_categories(ADMIN_ID)] == [exclude.id]
    assert [e.category_id for e in storage.get_all_expenses(ADMIN_ID)] == [
        None,
        None,
        exclude.id,
    ]


def test_sessions_expire(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    now = datetime.now(timezone.utc)
    storage.create_session(ADMIN_ID, "live", now + timedelta(hours=1))
    storage.create_session(ADMIN_ID, "stale", now - timedelta(seconds=1))

    assert storage.get_session("live").user_id == ADMIN_ID
    with pytest.raises(NotFoundError):
        storage.get_session("stale")

    assert storage.delete_expired_sessions() == 1
    storage.delete_session("live")
    with pytest.raises(NotFoundError):
        storage.get_session("live")


def test_category_patterns_must_compile(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    with pytest.raises(ValidationError, match="invalid pattern"):
        storage.create_category(ADMIN_ID, "Broken", "(unclosed")
    food = storage.create_category(ADMIN_ID, "Food", "food")
    with pytest.raises(ValidationError, match="invalid pattern"):
        storage.update_category(ADMIN_ID, food.id, "Food", "[a-")
    assert storage.get_category(ADMIN_ID, food.id).pattern == "food"
