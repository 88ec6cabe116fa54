"""create users table

Version: 8
Previous: 7

Seeds user 1 ("admin", password "admin") so rows written before accounts
existed keep an owner.

"""

from __future__ import annotations

import time

import sqlalchemy as sa
from alembic.operations import Operations

version = 8
name = "Create users table"
rebuild = False

ADMIN_PASSWORD_HASH = "$2a$10$1DMMhCw0qMlNedcIxHpVjeJzGCjIN1JWyR.QLz7YzljbzEj4Jgsem"


def upgrade(op: Operations) -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY,
            username TEXT NOT NULL,
            password_hash TEXT NOT NULL,
            created_at INTEGER NOT NULL,
            UNIQUE(username) ON CONFLICT FAIL
        ) STRICT
        """
    )
    op.get_bind().execute(
        sa.text(
            "INSERT INTO users (id, username, password_hash, created_at) "
            "VALUES (1, 'admin', :password_hash, :created_at)"
        ),
        {"password_hash": ADMIN_PASSWORD_HASH, "created_at": int(time.time())},
    )
