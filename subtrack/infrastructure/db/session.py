"""
Database engine and session factory (SQLAlchemy)

DATABASE_URL points at the managed backend's Postgres (psycopg driver);
tests hand create_app() their own factory bound to SQLite.
"""
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from subtrack.config import get_settings


class Base(DeclarativeBase):
    """Declarative base for every table of the row store"""


_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def get_engine() -> Engine:
    """Engine built from DATABASE_URL (singleton)"""
    global _engine
    if _engine is None:
        url = get_settings().get_sqlalchemy_url()
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args)
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), autoflush=False, autocommit=False)
    return _session_factory


def check_db_connection(session_factory: sessionmaker | None = None) -> None:
    """
    Readiness probe: SELECT 1 through the given (or default) session factory

    Raises:
        sqlalchemy.exc.SQLAlchemyError: if the database is unreachable
    """
    factory = session_factory or get_session_factory()
    with factory() as db:
        db.execute(text("SELECT 1"))
