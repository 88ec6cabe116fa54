"""add type column to categories

Version: 5
Previous: 4

A category whose expenses sum to a positive total is income (1), anything
else is a charge (0). Dropped again by version 6.

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic.operations import Operations

version = 5
name = "Add type column to categories"
rebuild = False


def upgrade(op: Operations) -> None:
    op.add_column(
        "categories",
        sa.Column("type", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )

    bind = op.get_bind()
    category_ids = bind.execute(sa.text("SELECT id FROM categories")).scalars().all()
    for category_id in category_ids:
        total = bind.execute(
            sa.text("SELECT SUM(amount) FROM expenses WHERE category_id = :id"),
            {"id": category_id},
        ).scalar()
        category_type = 1 if (total or 0) > 0 else 0
        bind.execute(
            sa.text("UPDATE categories SET type = :type WHERE id = :id"),
            {"type": category_type, "id": category_id},
        )
