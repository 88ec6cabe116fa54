from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterator, Optional, Sequence

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

import migrations
from config import DBSettings
from database import create_db_engine, make_session_factory, session_scope
from errors import (
    ConflictError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from matcher import compile_pattern
from models import (
    EXCLUDE_CATEGORY,
    EXCLUDE_PATTERN,
    Category,
    Expense,
    ExpenseType,
    User,
    UserSession,
)

if TYPE_CHECKING:  # pragma: no cover
    from filters import ExpenseFilter, SortOptions

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _expense_values(user_id: int, expense: Expense) -> dict[str, object]:
    # keys are column names: the mapped ``type`` attribute is ``expense_type``
    return {
        "source": expense.source,
        "amount": expense.amount,
        "description": expense.description,
        "expense_type": ExpenseType(expense.type),
        "date": expense.date,
        "currency": expense.currency,
        "category_id": expense.category_id,
        "user_id": user_id,
    }


class Storage:
    """
    The single persistence handle of a process. Every expense, category
    and session query is scoped by ``user_id``; results are detached ORM
    objects that stay readable after the session closes.
    """

    def __init__(self, engine: Engine, log: Optional[logging.Logger] = None) -> None:
        self.engine = engine
        self.log = log or logger
        self._factory = make_session_factory(engine)

    @classmethod
    def open(cls, settings: DBSettings, log: Optional[logging.Logger] = None) -> "Storage":
        return cls(create_db_engine(settings), log)

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        try:
            with session_scope(self._factory) as session:
                yield session
        except IntegrityError as exc:
            self.log.warning(f"storage_conflict: operation={operation} error={exc.orig}")
            raise ConflictError(f"{operation}: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            self.log.error(f"storage_error: operation={operation} error={exc}")
            raise StorageError(operation, str(exc)) from exc

    def close(self) -> None:
        self.engine.dispose()

    # schema

    def apply_migrations(self) -> int:
        return migrations.apply_migrations(self.engine, self.log)

    def current_schema_version(self) -> int:
        return migrations.current_version(self.engine)

    def drop_tables(self) -> None:
        try:
            migrations.drop_tables(self.engine)
        except SQLAlchemyError as exc:
            raise StorageError("drop tables", str(exc)) from exc
        self.log.info("tables_dropped")

    # expenses

    def insert_expenses(self, user_id: int, expenses: Sequence[Expense]) -> int:
        """Insert new rows; duplicates of the uniqueness tuple are skipped."""
        if not expenses:
            return 0
        stmt = insert(Expense.__table__).prefix_with("OR IGNORE")
        inserted = 0
        with self._session("insert expenses") as session:
            for expense in expenses:
                result = session.execute(stmt, _expense_values(user_id, expense))
                inserted += result.rowcount
        self.log.debug(
            f"expenses_inserted: user_id={user_id} given={len(expenses)} inserted={inserted}"
        )
        return inserted

    def update_expenses(self, user_id: int, expenses: Sequence[Expense]) -> int:
        """
        Replace rows by id. Ids that belong to another user (or do not
        exist) are skipped rather than created.
        """
        if not expenses:
            return 0
        ids = [expense.id for expense in expenses if expense.id is not None]
        stmt = insert(Expense.__table__).prefix_with("OR REPLACE")
        replaced = 0
        with self._session("update expenses") as session:
            owned = set(
                session.scalars(
                    select(Expense.id).where(
                        Expense.user_id == user_id, Expense.id.in_(ids)
                    )
                )
            )
            for expense in expenses:
                if expense.id not in owned:
                    continue
                values = _expense_values(user_id, expense)
                values["id"] = expense.id
                replaced += session.execute(stmt, values).rowcount
        return replaced

    def get_expense_by_id(self, user_id: int, expense_id: int) -> Expense:
        with self._session("get expense") as session:
            expense = session.scalar(
                select(Expense).where(Expense.id == expense_id, Expense.user_id == user_id)
            )
        if expense is None:
            raise NotFoundError("expense not found")
        return expense

    def update_expense(self, user_id: int, expense: Expense) -> int:
        stmt = (
            update(Expense)
            .where(Expense.id == expense.id, Expense.user_id == user_id)
            .values(
                source=expense.source,
                amount=expense.amount,
                description=expense.description,
                type=expense.type,
                date=expense.date,
                currency=expense.currency,
                category_id=expense.category_id,
            )
            .execution_options(synchronize_session=False)
        )
        with self._session("update expense") as session:
            return session.execute(stmt).rowcount

    def delete_expense(self, user_id: int, expense_id: int) -> int:
        stmt = delete(Expense).where(Expense.id == expense_id, Expense.user_id == user_id)
        with self._session("delete expense") as session:
            return session.execute(
                stmt.execution_options(synchronize_session=False)
            ).rowcount

    def _expenses(self, operation: str, *conditions) -> list[Expense]:
        stmt = select(Expense).where(*conditions).order_by(Expense.id)
        with self._session(operation) as session:
            return list(session.scalars(stmt))

    def get_expenses(self, user_id: int) -> list[Expense]:
        """Charges only."""
        return self._expenses(
            "get expenses",
            Expense.user_id == user_id,
            Expense.type == ExpenseType.charge,
        )

    def get_all_expenses(self, user_id: int) -> list[Expense]:
        return self._expenses("get all expenses", Expense.user_id == user_id)

    def get_expenses_from_date_range(
        self, user_id: int, start: datetime, end: datetime
    ) -> list[Expense]:
        return self._expenses(
            "get expenses from date range",
            Expense.user_id == user_id,
            Expense.date.between(start, end),
        )

    def get_expenses_without_category(
        self, user_id: int, keyword: Optional[str] = None
    ) -> list[Expense]:
        conditions = [
            Expense.user_id == user_id,
            Expense.category_id.is_(None),
            Expense.type == ExpenseType.charge,
        ]
        if keyword:
            conditions.append(Expense.description.like(f"%{keyword}%"))
        return self._expenses("get expenses without category", *conditions)

    def get_expenses_by_category(self, user_id: int, category_id: int) -> list[Expense]:
        return self._expenses(
            "get expenses by category",
            Expense.user_id == user_id,
            Expense.category_id == category_id,
        )

    def get_first_expense(self, user_id: int) -> Expense:
        stmt = (
            select(Expense)
            .where(Expense.user_id == user_id)
            .order_by(Expense.date.asc(), Expense.id.asc())
            .limit(1)
        )
        with self._session("get first expense") as session:
            expense = session.scalar(stmt)
        if expense is None:
            raise NotFoundError("no expenses")
        return expense

    def search_expenses(self, user_id: int, keyword: str) -> list[Expense]:
        return self._expenses(
            "search expenses",
            Expense.user_id == user_id,
            Expense.description.like(f"%{keyword}%"),
        )

    def search_expenses_by_description(
        self, user_id: int, description: str
    ) -> list[Expense]:
        return self._expenses(
            "search expenses by description",
            Expense.user_id == user_id,
            Expense.description == description,
        )

    def get_expenses_filtered(
        self, user_id: int, expense_filter: "ExpenseFilter", sort: "SortOptions"
    ) -> list[Expense]:
        stmt = select(Expense).where(Expense.user_id == user_id)
        if expense_filter.description is not None:
            stmt = stmt.where(Expense.description.like(f"%{expense_filter.description}%"))
        if expense_filter.source is not None:
            stmt = stmt.where(Expense.source.like(f"%{expense_filter.source}%"))
        if expense_filter.amount_min is not None:
            stmt = stmt.where(Expense.amount >= expense_filter.amount_min)
        if expense_filter.amount_max is not None:
            stmt = stmt.where(Expense.amount <= expense_filter.amount_max)
        if expense_filter.date_from is not None:
            stmt = stmt.where(Expense.date >= expense_filter.date_from)
        if expense_filter.date_to is not None:
            stmt = stmt.where(Expense.date <= expense_filter.date_to)

        column = Expense.amount if sort.field == "amount" else Expense.date
        stmt = stmt.order_by(column.asc() if sort.direction == "asc" else column.desc())

        with self._session("get expenses filtered") as session:
            return list(session.scalars(stmt))

    # categories

    def create_category(self, user_id: int, name: str, pattern: str) -> Category:
        compile_pattern(pattern)
        category = Category(name=name, pattern=pattern, user_id=user_id)
        with self._session("create category") as session:
            session.add(category)
            session.flush()
        self.log.info(f"category_created: user_id={user_id} id={category.id} name={name!r}")
        return category

    def get_categories(self, user_id: int) -> list[Category]:
        stmt = select(Category).where(Category.user_id == user_id).order_by(Category.id)
        with self._session("get categories") as session:
            return list(session.scalars(stmt))

    def get_category(self, user_id: int, category_id: int) -> Category:
        with self._session("get category") as session:
            category = session.scalar(
                select(Category).where(
                    Category.id == category_id, Category.user_id == user_id
                )
            )
        if category is None:
            raise NotFoundError("category not found")
        return category

    def get_exclude_category(self, user_id: int) -> Category:
        with self._session("get exclude category") as session:
            category = session.scalar(
                select(Category).where(
                    Category.name == EXCLUDE_CATEGORY, Category.user_id == user_id
                )
            )
        if category is None:
            raise NotFoundError("exclude category not found")
        return category

    def update_category(
        self, user_id: int, category_id: int, name: str, pattern: str
    ) -> None:
        compile_pattern(pattern)
        stmt = (
            update(Category)
            .where(Category.id == category_id, Category.user_id == user_id)
            .values(name=name, pattern=pattern)
            .execution_options(synchronize_session=False)
        )
        with self._session("update category") as session:
            if session.execute(stmt).rowcount == 0:
                raise NotFoundError("category not found")

    def delete_category(self, user_id: int, category_id: int) -> int:
        """Delete one category; its expenses become uncategorized."""
        with self._session("delete category") as session:
            category = session.scalar(
                select(Category).where(
                    Category.id == category_id, Category.user_id == user_id
                )
            )
            if category is None:
                raise NotFoundError("category not found")
            if category.is_exclude:
                raise ValidationError("the exclude category cannot be deleted")
            session.execute(
                update(Expense)
                .where(Expense.category_id == category_id, Expense.user_id == user_id)
                .values(category_id=None)
                .execution_options(synchronize_session=False)
            )
            session.delete(category)
        self.log.info(f"category_deleted: user_id={user_id} id={category_id}")
        return 1

    def delete_categories(self, user_id: int) -> int:
        """Delete every category except the exclude one. Returns rows deleted."""
        with self._session("delete categories") as session:
            exclude_id = session.scalar(
                select(Category.id).where(
                    Category.name == EXCLUDE_CATEGORY, Category.user_id == user_id
                )
            )
            if exclude_id is None:
                raise NotFoundError("exclude category not found")
            session.execute(
                update(Expense)
                .where(
                    Expense.user_id == user_id,
                    Expense.category_id.is_not(None),
                    Expense.category_id != exclude_id,
                )
                .values(category_id=None)
                .execution_options(synchronize_session=False)
            )
            deleted = session.execute(
                delete(Category)
                .where(Category.user_id == user_id, Category.id != exclude_id)
                .execution_options(synchronize_session=False)
            ).rowcount
        self.log.info(f"categories_deleted: user_id={user_id} count={deleted}")
        return deleted

    # users

    def create_user(self, username: str, password_hash: str) -> User:
        """Create a user and their exclude category in one transaction."""
        user = User(username=username, password_hash=password_hash, created_at=_utcnow())
        with self._session("create user") as session:
            session.add(user)
            session.flush()
            session.add(
                Category(name=EXCLUDE_CATEGORY, pattern=EXCLUDE_PATTERN, user_id=user.id)
            )
        self.log.info(f"user_created: id={user.id} username={username!r}")
        return user

    def get_user_by_id(self, user_id: int) -> User:
        with self._session("get user") as session:
            user = session.get(User, user_id)
        if user is None:
            raise NotFoundError("user not found")
        return user

    def get_user_by_username(self, username: str) -> User:
        with self._session("get user") as session:
            user = session.scalar(select(User).where(User.username == username))
        if user is None:
            raise NotFoundError("user not found")
        return user

    def _update_user(self, operation: str, user_id: int, **values) -> None:
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self._session(operation) as session:
            if session.execute(stmt).rowcount == 0:
                raise NotFoundError("user not found")

    def update_username(self, user_id: int, username: str) -> None:
        self._update_user("update username", user_id, username=username)

    def update_password(self, user_id: int, password_hash: str) -> None:
        self._update_user("update password", user_id, password_hash=password_hash)

    # auth sessions

    def create_session(
        self, user_id: int, session_id: str, expires_at: datetime
    ) -> UserSession:
        record = UserSession(
            id=session_id, user_id=user_id, expires_at=expires_at, created_at=_utcnow()
        )
        with self._session("create session") as session:
            session.add(record)
        return record

    def get_session(self, session_id: str) -> UserSession:
        """Unexpired session by id; an expired row is reported as missing."""
        stmt = select(UserSession).where(
            UserSession.id == session_id, UserSession.expires_at > _utcnow()
        )
        with self._session("get session") as session:
            record = session.scalar(stmt)
        if record is None:
            raise NotFoundError("session not found")
        return record

    def delete_session(self, session_id: str) -> None:
        with self._session("delete session") as session:
            session.execute(
                delete(UserSession)
                .where(UserSession.id == session_id)
                .execution_options(synchronize_session=False)
            )

    def delete_expired_sessions(self) -> int:
        stmt = (
            delete(UserSession)
            .where(UserSession.expires_at <= _utcnow())
            .execution_options(synchronize_session=False)
        )
        with self._session("delete expired sessions") as session:
            return session.execute(stmt).rowcount

    def count_expenses(self, user_id: int) -> int:
        with self._session("count expenses") as session:
            return session.scalar(
                select(func.count()).select_from(Expense).where(Expense.user_id == user_id)
            )
