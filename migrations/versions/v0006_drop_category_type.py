"""remove type column from categories

Version: 6
Previous: 5

"""

from __future__ import annotations

from alembic.operations import Operations

version = 6
name = "Remove column from categories"
rebuild = False


def upgrade(op: Operations) -> None:
    op.execute("ALTER TABLE categories DROP COLUMN type")
