"""add user_id to categories table

Version: 11
Previous: 10

Categories are rebuilt with a per-user unique name. expenses references
categories, so it is rebuilt alongside and pointed at the new table before
the old pair is dropped.

"""

from __future__ import annotations

from alembic.operations import Operations

version = 11
name = "Add user_id to categories table"
rebuild = True


def upgrade(op: Operations) -> None:
    op.execute(
        """
        CREATE TABLE categories_new (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            pattern TEXT NOT NULL,
            user_id INTEGER NOT NULL,
            UNIQUE(name, user_id) ON CONFLICT FAIL,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        ) STRICT
        """
    )
    op.execute(
        """
        INSERT INTO categories_new (id, name, pattern, user_id)
        SELECT id, name, pattern, 1 FROM categories
        """
    )
    op.execute(
        """
        CREATE TABLE expenses_temp (
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
            FOREIGN KEY(category_id) REFERENCES categories_new(id),
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        ) STRICT
        """
    )
    op.execute("INSERT INTO expenses_temp SELECT * FROM expenses")
    op.execute("DROP TABLE expenses")
    op.execute("DROP TABLE categories")
    op.execute("ALTER TABLE categories_new RENAME TO categories")
    op.execute("ALTER TABLE expenses_temp RENAME TO expenses")
