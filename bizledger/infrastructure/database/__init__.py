"""
Database initialization and session management.
"""

from collections.abc import Generator
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlmodel import SQLModel

from bizledger.core.config import get_settings
from bizledger.infrastructure.database import models  # noqa: F401  registers tables


def build_engine(url: str, **kwargs) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url, echo=False, pool_pre_ping=True, **kwargs)

    connect_args = kwargs.pop("connect_args", {})
    connect_args.setdefault("check_same_thread", False)
    sqlite_engine = create_engine(url, echo=False, connect_args=connect_args, **kwargs)

    # pysqlite needs explicit BEGIN for SAVEPOINT and transactional DDL to work.
    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return sqlite_engine


DATABASE_URL = get_settings().database_url

engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency - Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Initialize database - create all tables."""
    target = bind or engine
    if target.url.get_backend_name() == "sqlite" and target.url.database not in (None, "", ":memory:"):
        Path(target.url.database).parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(bind=target)


if __name__ == "__main__":
    init_db()
    print("Database initialized successfully!")
