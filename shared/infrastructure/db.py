"""
Store handle: SQLAlchemy engine and session management.

The store is constructed once per process from configuration, passed to the
components that need it and disposed explicitly on shutdown. There is no
module-level engine.

Usage:
    store = Store.from_settings(settings)
    with store.transaction() as db:
        db.execute(...)
    store.close()
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from shared.config.logging import get_logger

if TYPE_CHECKING:
    from shared.config.settings import Settings

logger = get_logger(__name__)


class StoreUnavailable(Exception):
    """The durable store could not complete the operation. Retryable."""


def _calculate_pool_size() -> int:
    """(2 * CPU cores) + 1, capped at 20."""
    cores = os.cpu_count() or 4
    return min(cores * 2 + 1, 20)


def _use_immediate_transactions(engine: Engine) -> None:
    """
    Make every SQLite transaction start with BEGIN IMMEDIATE.

    pysqlite defers locking until the first write; two writers that both
    read first would then fail on lock upgrade instead of waiting.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Store:
    """Process-scoped handle over the relational store."""

    def __init__(self, url: str, **engine_options: Any):
        self.engine = create_engine(url, **engine_options)
        if self.engine.dialect.name == "sqlite":
            _use_immediate_transactions(self.engine)
        self._sessionmaker = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Store":
        url = settings.database_url
        if url.startswith("sqlite"):
            return cls(url, connect_args={"check_same_thread": False})

        return cls(
            url,
            pool_pre_ping=True,  # Verify connections before using
            pool_size=_calculate_pool_size(),
            max_overflow=15,
            pool_timeout=30,  # Wait max 30s for connection from pool
            pool_recycle=1800,  # Recycle connections after 30 minutes
            connect_args={"connect_timeout": 10},
        )

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Session for reads. Nothing is committed."""
        db = self._sessionmaker()
        try:
            yield db
        except SQLAlchemyError as exc:
            raise StoreUnavailable(str(exc)) from exc
        finally:
            db.close()

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """
        One atomic unit of work: committed on exit, rolled back on any error.

        Store failures surface as StoreUnavailable; other exceptions raised by
        the caller propagate unchanged after the rollback.
        """
        try:
            with self._sessionmaker.begin() as db:
                yield db
        except SQLAlchemyError as exc:
            logger.error("Store transaction failed", error=str(exc))
            raise StoreUnavailable(str(exc)) from exc

    def create_all(self) -> None:
        from pix_api.models import Base

        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(str(exc)) from exc

    def ping(self) -> None:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise StoreUnavailable(str(exc)) from exc

    def close(self) -> None:
        self.engine.dispose()
        logger.info("Store closed")
