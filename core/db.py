from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

from core.config import settings


class Base(DeclarativeBase):
    pass


def configure_sqlite(engine: Engine) -> Engine:
    """Foreign keys on, and let SQLAlchemy own BEGIN so SAVEPOINT works.

    pysqlite defers BEGIN until the first DML statement, which breaks
    nested transactions (order number retries run inside one).
    """
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


# Configure engine based on database type
if settings.DATABASE_URL.startswith("sqlite"):
    # For SQLite, use StaticPool for in-memory databases
    engine = configure_sqlite(
        create_engine(
            settings.DATABASE_URL,
            echo=settings.SQLALCHEMY_ECHO,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool if ":memory:" in settings.DATABASE_URL else None,
        )
    )
else:
    # For PostgreSQL and other databases
    engine = create_engine(
        settings.DATABASE_URL,
        echo=settings.SQLALCHEMY_ECHO,
        future=True,
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_unique_violation(exc: IntegrityError, *markers: str) -> bool:
    """True when ``exc`` comes from a unique constraint matching one of ``markers``.

    SQLite reports the offending columns ("UNIQUE constraint failed: t.col"),
    PostgreSQL reports the constraint name, so constraints are named after
    the column they guard and a column name matches both.
    """
    message = str(getattr(exc, "orig", exc)).lower()
    if "unique" not in message and "duplicate" not in message:
        return False
    return any(marker.lower() in message for marker in markers)
