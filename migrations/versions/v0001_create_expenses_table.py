"""create expenses table

Version: 1
Previous: none

"""

from __future__ import annotations

from alembic.operations import Operations

version = 1
name = "Create expenses table"
rebuild = False


def upgrade(op: Operations) -> None:
    # category_id = 0 meant "uncategorized" until version 3
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS expenses (
            id INTEGER PRIMARY KEY,
            source TEXT,
            amount INTEGER NOT NULL,
            description TEXT NOT NULL,
            expense_type INTEGER NOT NULL,
            date INTEGER NOT NULL,
            currency TEXT NOT NULL,
            category_id INTEGER,
            UNIQUE(source, date, description, amount) ON CONFLICT FAIL
        ) STRICT
        """
    )
