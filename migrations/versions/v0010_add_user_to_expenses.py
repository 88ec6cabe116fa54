"""add user_id to expenses table

Version: 10
Previous: 9

Existing expenses are assigned to user 1.

"""

from __future__ import annotations

from alembic.operations import Operations

version = 10
name = "Add user_id to expenses table"
rebuild = True


def upgrade(op: Operations) -> None:
    op.execute(
        """
        CREATE TABLE expenses_new (
            id INTEGER PRIMARY KEY,
            source TEXT,
            amount INTEGER NOT NULL,
            description TEXT NOT NULL,
            expense_type INTEGER NOT NULL,
            date INTEGER NOT NULL,
            currency TEXT NOT NULL,
            category_id INTEGER,
            user_id INTEGER NOT NULL DEFAULT 1,
            UNIQUE(source, date, description, amount, user_id) ON CONFLICT FAIL,
            FOREIGN KEY(category_id) REFERENCES categories(id),
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        ) STRICT
        """
    )
    op.execute(
        """
        INSERT INTO expenses_new (
            id, source, amount, description, expense_type, date, currency,
            category_id, user_id
        )
        SELECT id, source, amount, description, expense_type, date, currency,
               category_id, 1
        FROM expenses
        """
    )
    op.execute("DROP TABLE expenses")
    op.execute("ALTER TABLE expenses_new RENAME TO expenses")
