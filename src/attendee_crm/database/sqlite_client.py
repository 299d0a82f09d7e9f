from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .schema import create_all


def get_engine(database_url: str) -> Engine:
    """
    Create an engine for the URL and make sure the schema exists.

    In-memory SQLite URLs get a single shared connection, so they are only
    safe from one thread at a time.
    """
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        # One shared connection, otherwise every checkout sees an empty database
        engine = create_engine(
            database_url,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    elif database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            future=True,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(database_url, future=True)
    create_all(engine)
    return engine


def get_session_factory(database_url: str) -> sessionmaker:
    engine = get_engine(database_url)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def get_session(database_url: str) -> Session:
    """Get a SQLAlchemy session (caller must close it)."""
    return get_session_factory(database_url)()


@contextmanager
def session_context(database_url: str) -> Generator[Session, None, None]:
    """
    Context manager for SQLAlchemy sessions.

    Rolls back on error and always closes. Commits stay explicit:
    repository functions never commit on their own.

    Usage:
        with session_context(database_url) as session:
            create_list(session, "Speakers")
            session.commit()
    """
    session = get_session(database_url)
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
