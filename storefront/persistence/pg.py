from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from storefront.core.config import get_settings
from storefront.domain.orders.errors import PersistenceFailure
from storefront.persistence.models import Base


def _connect_args(url: str, timeout_seconds: int) -> dict:
    if url.startswith("sqlite"):
        return {"timeout": timeout_seconds, "check_same_thread": False}
    if url.startswith("postgresql"):
        return {"connect_timeout": timeout_seconds, "options": f"-c statement_timeout={timeout_seconds * 1000}"}
    return {}


def enable_sqlite_savepoints(engine) -> None:
    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT; let
    # SQLAlchemy emit BEGIN itself.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine_from_url(url: str, timeout_seconds: int | None = None):
    timeout = timeout_seconds or get_settings().database_timeout_seconds
    engine = create_engine(url, future=True, pool_pre_ping=True, connect_args=_connect_args(url, timeout))
    if engine.dialect.name == "sqlite":
        enable_sqlite_savepoints(engine)
    return engine


settings = get_settings()
engine = create_engine_from_url(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def init_db() -> None:
    Base.metadata.create_all(bind=engine)


def commit_or_fail(session: Session) -> None:
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceFailure("failed to commit transaction") from exc


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
        commit_or_fail(session)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session() -> Generator[Session, None, None]:
    with session_scope() as session:
        yield session
