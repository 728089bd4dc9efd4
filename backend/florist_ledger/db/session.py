"""Engine, session factory and the per-request session dependency."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from florist_ledger.core.config import settings


def is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def enable_sqlite_foreign_keys(target_engine: Engine) -> None:
    """Order lines and transfers reference orders; SQLite only checks that with the pragma on."""

    @event.listens_for(target_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(database_url: str) -> Engine:
    if is_sqlite(database_url):
        # Sessions cross threads under FastAPI's threadpool
        ledger_engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=settings.debug and settings.log_level == "DEBUG",
        )
        enable_sqlite_foreign_keys(ledger_engine)
        return ledger_engine

    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        echo=settings.debug and settings.log_level == "DEBUG",
    )


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """One session per request; every stock change commits on its own."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


DbSession = Annotated[Session, Depends(get_db)]
