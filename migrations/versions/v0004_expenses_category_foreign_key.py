"""rebuild expenses with a foreign key to categories

Version: 4
Previous: 3

"""

from __future__ import annotations

from alembic.operations import Operations

version = 4
name = "Set foreign key constraints expenses <-> categories"
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
            UNIQUE(source, date, description, amount) ON CONFLICT FAIL,
            FOREIGN KEY(category_id) REFERENCES categories(id)
        ) STRICT
        """
    )
    op.execute("INSERT INTO expenses_new SELECT * FROM expenses")
    op.execute("DROP TABLE expenses")
    op.execute("ALTER TABLE expenses_new RENAME TO expenses")
