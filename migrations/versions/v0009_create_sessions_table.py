"""create sessions table

Version: 9
Previous: 8

"""

from __future__ import annotations

from alembic.operations import Operations

version = 9
name = "Create sessions table"
rebuild = False


def upgrade(op: Operations) -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS sessions (
            id TEXT PRIMARY KEY,
            user_id INTEGER NOT NULL,
            expires_at INTEGER NOT NULL,
            created_at INTEGER NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        ) STRICT
        """
    )
