"""add exclude category

Version: 7
Previous: 6

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic.operations import Operations

version = 7
name = "Add exclude category"
rebuild = False

# frozen copies: later renames of the constants must not change this step
EXCLUDE_CATEGORY = "🚫 Exclude"
EXCLUDE_PATTERN = "$a"


def upgrade(op: Operations) -> None:
    op.get_bind().execute(
        sa.text("INSERT INTO categories (name, pattern) VALUES (:name, :pattern)"),
        {"name": EXCLUDE_CATEGORY, "pattern": EXCLUDE_PATTERN},
    )
