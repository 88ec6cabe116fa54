from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import DBSettings


def create_db_engine(settings: DBSettings) -> Engine:
    engine_args: dict[str, object] = {
        "connect_args": {"check_same_thread": False},
    }
    if settings.source != ":memory:":
        if settings.max_open_conns > 0:
            engine_args["pool_size"] = settings.max_open_conns
        if settings.max_idle_conns > 0:
            engine_args["max_overflow"] = settings.max_idle_conns
        if settings.conn_max_lifetime > 0:
            engine_args["pool_recycle"] = settings.conn_max_lifetime

    eng = create_engine(settings.url, **engine_args)

    def _on_connect(dbapi_conn, _record):
        _enable_sqlite_pragmas(dbapi_conn, settings)

    event.listen(eng, "connect", _on_connect)
    event.listen(eng, "begin", _emit_begin)
    return eng


def _enable_sqlite_pragmas(dbapi_conn, settings: DBSettings) -> None:
    # pysqlite only opens transactions before DML; take over so DDL is
    # transactional too (see _emit_begin).
    dbapi_conn.isolation_level = None
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    if settings.journal_mode:
        cursor.execute(f"PRAGMA journal_mode={settings.journal_mode};")
    if settings.synchronous:
        cursor.execute(f"PRAGMA synchronous={settings.synchronous};")
    if settings.cache_size:
        cursor.execute(f"PRAGMA cache_size={int(settings.cache_size)};")
    if settings.busy_timeout > 0:
        cursor.execute(f"PRAGMA busy_timeout={int(settings.busy_timeout)};")
    if settings.wal_autocheckpoint > 0:
        cursor.execute(
            f"PRAGMA wal_autocheckpoint={int(settings.wal_autocheckpoint)};"
        )
    if settings.temp_store:
        cursor.execute(f"PRAGMA temp_store={settings.temp_store};")
    cursor.close()


def _emit_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN")


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
