from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import Config


class Base(DeclarativeBase):
    pass


def make_engine(database_url: str = None):
    url = database_url or Config.DATABASE_URL
    kwargs = {"future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url == "sqlite://":
            kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)

    if url.startswith("sqlite"):
        # SQLite only honours ON DELETE CASCADE with foreign keys switched on
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def make_session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True)


def init_db(engine):
    from . import models  # noqa: F401

    Base.metadata.create_all(engine)


@contextmanager
def session_scope(session_factory):
    """Provide a transactional scope for DB work and always close the session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
