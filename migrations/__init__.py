"""
Ordered schema steps for the expenses database.

Each module in ``migrations.versions`` exposes ``version``, ``name``,
``rebuild`` and ``upgrade(op)``. The list below is append-only: a released
step is never edited, a schema change gets a new module.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from types import ModuleType
from typing import Optional

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import inspect, insert, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from errors import MigrationError
from migrations.versions import (
    v0001_create_expenses_table,
    v0002_create_categories_table,
    v0003_null_uncategorized_expenses,
    v0004_expenses_category_foreign_key,
    v0005_add_category_type,
    v0006_drop_category_type,
    v0007_add_exclude_category,
    v0008_create_users_table,
    v0009_create_sessions_table,
    v0010_add_user_to_expenses,
    v0011_add_user_to_categories,
)
from models import SchemaMigration

logger = logging.getLogger(__name__)

MIGRATIONS: tuple[ModuleType, ...] = (
    v0001_create_expenses_table,
    v0002_create_categories_table,
    v0003_null_uncategorized_expenses,
    v0004_expenses_category_foreign_key,
    v0005_add_category_type,
    v0006_drop_category_type,
    v0007_add_exclude_category,
    v0008_create_users_table,
    v0009_create_sessions_table,
    v0010_add_user_to_expenses,
    v0011_add_user_to_categories,
)

LATEST_VERSION = MIGRATIONS[-1].version

# child tables first so foreign keys never dangle mid-drop
DROP_ORDER = ("expenses", "categories", "sessions", "users", "schema_migrations")


class ForeignKeyViolation(Exception):
    pass


def _create_migrations_table(engine: Engine) -> None:
    with engine.begin() as conn:
        conn.exec_driver_sql(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            )
            """
        )


def current_version(engine: Engine) -> int:
    if not inspect(engine).has_table("schema_migrations"):
        return 0
    with engine.connect() as conn:
        return conn.execute(
            text("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
        ).scalar_one()


def _check_foreign_keys(conn: Connection) -> None:
    violation = conn.exec_driver_sql("PRAGMA foreign_key_check").first()
    if violation is not None:
        table, rowid, parent, fkid = violation
        raise ForeignKeyViolation(
            "foreign key constraint violation: "
            f"table={table}, rowid={rowid}, parent={parent}, fkid={fkid}"
        )


def _set_foreign_keys(conn: Connection, enabled: bool) -> None:
    # the pragma is ignored inside a transaction, so it goes straight to the
    # driver connection before BEGIN / after COMMIT
    state = "ON" if enabled else "OFF"
    conn.connection.driver_connection.execute(f"PRAGMA foreign_keys={state}")


def _apply_step(engine: Engine, step: ModuleType) -> None:
    with engine.connect() as conn:
        if step.rebuild:
            _set_foreign_keys(conn, False)
        try:
            with conn.begin():
                op = Operations(MigrationContext.configure(conn))
                step.upgrade(op)
                if step.rebuild:
                    _check_foreign_keys(conn)
                conn.execute(
                    insert(SchemaMigration.__table__).values(
                        version=step.version,
                        applied_at=datetime.now(timezone.utc),
                    )
                )
        finally:
            if step.rebuild:
                _set_foreign_keys(conn, True)


def apply_migrations(
    engine: Engine,
    log: Optional[logging.Logger] = None,
    target: Optional[int] = None,
) -> int:
    """
    Bring the schema up to ``target`` (default LATEST_VERSION). Every
    pending step runs in its own transaction; the first failure rolls that
    step back and stops. Returns the number of steps applied.
    """
    log = log or logger
    try:
        _create_migrations_table(engine)
        version = current_version(engine)
    except SQLAlchemyError as exc:
        raise MigrationError(0, "Create migrations table", str(exc)) from exc

    applied = 0
    for step in MIGRATIONS:
        if step.version <= version:
            continue
        if target is not None and step.version > target:
            break
        log.info(f"migration_apply: version={step.version} name={step.name!r}")
        try:
            _apply_step(engine, step)
        except (SQLAlchemyError, ForeignKeyViolation) as exc:
            log.error(
                f"migration_failed: version={step.version} name={step.name!r} error={exc}"
            )
            raise MigrationError(step.version, step.name, str(exc)) from exc
        applied += 1
        log.info(f"migration_applied: version={step.version}")

    if applied == 0:
        log.debug(f"migrations_up_to_date: version={version}")
    return applied


def drop_tables(engine: Engine) -> None:
    with engine.begin() as conn:
        for table in DROP_ORDER:
            conn.exec_driver_sql(f"DROP TABLE IF EXISTS {table}")
