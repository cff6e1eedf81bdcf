"""
Database Utilities

Engine/session construction and the decorator that maps SQLAlchemy failures
onto API errors.
"""

from contextlib import contextmanager
from functools import wraps
from typing import Iterator, Tuple

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .exceptions import ApplicationNotFoundError, EventStoreUnavailableError

logger = structlog.get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_session_factory(database_url: str, timeout_seconds: float = 5.0, pool_size: int = 10) -> Tuple[Engine, sessionmaker]:
    """
    Build the engine and session factory for the event store.

    timeout_seconds bounds connection checkout from the pool and, on
    PostgreSQL, every statement (statement_timeout).
    """
    engine_kwargs = {"pool_pre_ping": True}

    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            # One shared connection, or every session would see its own empty database
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_size"] = pool_size
        engine_kwargs["pool_timeout"] = timeout_seconds
        if database_url.startswith("postgresql"):
            engine_kwargs["connect_args"] = {
                "connect_timeout": max(1, int(timeout_seconds)),
                "options": f"-c statement_timeout={int(timeout_seconds * 1000)}",
            }

    engine = create_engine(database_url, **engine_kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    logger.info("SQLAlchemy engine and session factory created.", dialect=engine.dialect.name)
    return engine, factory


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """Session that is always closed; commit is left to the caller."""
    session = session_factory()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def handle_store_errors(func):
    """
    Decorator translating SQLAlchemy exceptions raised by store methods.

    A foreign key IntegrityError (missing application) becomes
    ApplicationNotFoundError; other integrity errors propagate unchanged.
    Any other SQLAlchemyError, including pool and statement timeouts, becomes
    EventStoreUnavailableError. API errors raised by the method itself pass
    through untouched.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except IntegrityError as e:
            func_name = func.__name__
            logger.warning(f"Integrity error in {func_name}", error=str(e.orig))
            error_str = str(e.orig).upper()
            if "FOREIGN KEY" in error_str:
                raise ApplicationNotFoundError("Referenced application does not exist") from e
            raise
        except SQLAlchemyError as e:
            func_name = func.__name__
            logger.error(f"SQLAlchemyError in {func_name}", error=str(e), exc_info=True)
            raise EventStoreUnavailableError(f"Event store operation failed in {func_name}") from e
    return wrapper
