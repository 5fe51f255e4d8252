from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import DATABASE_URL, SQLITE_BUSY_TIMEOUT


def make_engine(url: str) -> Engine:
    """
    Build an engine for `url`.

    SQLite gets two connection hooks:
    - foreign keys ON, so ON DELETE CASCADE actually fires
    - every transaction starts with BEGIN IMMEDIATE, so writers are
      serialized from the first statement (count-then-insert can't interleave)
    Other backends rely on SELECT ... FOR UPDATE in the services.

    On SQLite this also applies to read-only transactions: a session holds
    the database write lock from its first query until it commits, rolls
    back or closes. Services therefore finish their reads inside the
    transaction() block, and get_db closes every request session.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    engine = create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
    )

    @event.listens_for(engine, "connect")
    def _sqlite_on_connect(dbapi_connection, connection_record):
        # take BEGIN away from pysqlite, we emit our own below
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


@contextmanager
def transaction(db: Session):
    """
    Run a unit of work: commit on success, roll back on any exception.

    Everything a service checks and writes inside the block is one
    transaction, so a failed precondition never leaves partial writes.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
