import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.core.config import settings
from app.core.errors import ConflictError, InternalError, LedgerError

logger = logging.getLogger(__name__)

# lock_not_available, deadlock_detected
_PG_LOCK_SQLSTATES = {"55P03", "40P01"}


class Base(DeclarativeBase):
    pass


def build_engine(database_url: str, *, lock_timeout_ms: int | None = None, echo: bool = False) -> Engine:
    timeout_ms = lock_timeout_ms if lock_timeout_ms is not None else settings.lock_timeout_ms
    is_sqlite = database_url.startswith("sqlite")

    connect_args = (
        {"check_same_thread": False, "timeout": timeout_ms / 1000}
        if is_sqlite
        else {}
    )
    engine = create_engine(
        database_url,
        connect_args=connect_args,
        echo=echo,
        pool_pre_ping=not is_sqlite,
        pool_recycle=1800 if not is_sqlite else -1,
    )

    if is_sqlite:
        # pysqlite defers BEGIN until the first write; take the write lock up
        # front so concurrent read-modify-write transactions serialize.
        @event.listens_for(engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    elif engine.dialect.name == "postgresql":

        @event.listens_for(engine, "begin")
        def _pg_lock_timeout(conn):
            conn.exec_driver_sql(f"SET LOCAL lock_timeout = '{int(timeout_ms)}ms'")

    return engine


engine = build_engine(settings.database_url, echo=settings.database_echo)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_lock_timeout(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _PG_LOCK_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or roll all of it back.

    Driver lock timeouts surface as ConflictError: the caller has to retry
    the whole business operation, not only the statement that waited.
    """
    try:
        yield db
        db.commit()
    except LedgerError:
        db.rollback()
        raise
    except OperationalError as exc:
        db.rollback()
        if is_lock_timeout(exc):
            logger.warning("lock_wait_timeout", extra={"error": str(exc.orig)})
            raise ConflictError("Stock row is busy, retry the operation") from exc
        logger.exception("store_operational_error")
        raise InternalError("Unexpected storage failure") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("store_error")
        raise InternalError("Unexpected storage failure") from exc
    except Exception:
        db.rollback()
        raise
