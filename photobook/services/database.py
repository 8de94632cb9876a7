"""Database engine and session management.

Derivation jobs run on worker threads, so the photo directory uses
the synchronous SQLAlchemy engine with one short session per call.
"""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


def make_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine suitable for use from several threads.

    In-memory SQLite gets a single shared connection so every thread
    sees the same database.

    Args:
        database_url: SQLAlchemy database URL.
        echo: Log all SQL statements.

    Returns:
        Configured SQLAlchemy engine.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, **kwargs)

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory with attributes kept readable after commit."""
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
    )
