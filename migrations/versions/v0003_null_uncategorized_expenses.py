"""set category_id to NULL for uncategorized expenses

Version: 3
Previous: 2

"""

from __future__ import annotations

from alembic.operations import Operations

version = 3
name = "Set category_id to NULL"
rebuild = False


def upgrade(op: Operations) -> None:
    op.execute("UPDATE expenses SET category_id = NULL WHERE category_id = 0")
