"""Database engine, declarative base and session helpers."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import Engine, create_engine, event, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import get_settings
from app.exceptions import StoreError
from app.infra.logging_config import get_logger

logger = get_logger("db")

Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, pool_size: int = 10, max_overflow: int = 20) -> Engine:
    """
    Create an engine for the given URL.

    SQLite always gets FK enforcement. An in-memory database is one shared
    connection; a file database gets a connection per checkout.
    """
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False, "timeout": 30}}
        if make_url(database_url).database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
        engine = create_engine(database_url, **options)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
    )


class DatabaseManager:
    """Lazily builds the engine and session factory from settings."""

    def __init__(self, database_url: Optional[str] = None) -> None:
        self._database_url = database_url
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            settings = get_settings()
            self._engine = build_engine(
                self._database_url or settings.database_url,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
            )
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine, autoflush=False, expire_on_commit=False
            )
        return self._session_factory

    @contextmanager
    def db_session(self) -> Iterator[Session]:
        """Yield a session; roll back on error and always close."""
        session = self.session_factory()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


db_manager = DatabaseManager()


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a database session."""
    with db_manager.db_session() as db:
        yield db


@contextmanager
def store_errors(db: Session, action: str) -> Iterator[None]:
    """Roll back and re-raise driver failures as StoreError (original chained)."""
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Store failure while trying to %s: %s", action, e)
        raise StoreError(f"Failed to {action}") from e
