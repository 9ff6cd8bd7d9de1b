import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings


logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_sessionmaker: Optional[sessionmaker] = None
_lock = threading.Lock()


def _create_engine() -> Engine:
    settings = get_settings()
    connect_args: dict[str, object] = {}
    if settings.database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    eng = create_engine(settings.database_url, connect_args=connect_args)
    if settings.database_url.startswith("sqlite"):
        event.listen(eng, "connect", _enable_sqlite_pragmas)
    logger.info(f"engine_created: dialect={eng.dialect.name}")
    return eng


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use.

    Concurrent first callers block on the lock and all receive the engine
    built by whichever caller got there first.
    """
    global _engine
    if _engine is not None:
        return _engine
    with _lock:
        if _engine is None:
            _engine = _create_engine()
    return _engine


def get_sessionmaker() -> sessionmaker:
    global _sessionmaker
    if _sessionmaker is not None:
        return _sessionmaker
    engine = get_engine()
    with _lock:
        if _sessionmaker is None:
            _sessionmaker = sessionmaker(
                bind=engine, autoflush=False, expire_on_commit=False
            )
    return _sessionmaker


def dispose_engine() -> None:
    global _engine, _sessionmaker
    with _lock:
        if _engine is not None:
            _engine.dispose()
            logger.info("engine_disposed")
        _engine = None
        _sessionmaker = None


class Base(DeclarativeBase):
    pass


@contextmanager
def session_scope() -> Iterator[Session]:
    session: Session = get_sessionmaker()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
