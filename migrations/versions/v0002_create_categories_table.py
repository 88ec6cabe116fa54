"""create categories table

Version: 2
Previous: 1

"""

from __future__ import annotations

from alembic.operations import Operations

version = 2
name = "Create categories table"
rebuild = False


def upgrade(op: Operations) -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS categories (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            pattern TEXT NOT NULL,
            UNIQUE(name) ON CONFLICT FAIL
        ) STRICT
        """
    )
