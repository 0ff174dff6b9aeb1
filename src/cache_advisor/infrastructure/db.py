from __future__ import annotations
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from cache_advisor.config import get_settings


class Base(DeclarativeBase):
    pass


def _dsn() -> str:
    return get_settings().database_url


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # Observed statements may be flushed from any application thread
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(_dsn(), **_engine_kwargs(_dsn()))
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def override_engine(e):  # test helper
    global engine, SessionLocal
    engine = e
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_session_factory():
    """Return the current session factory (honours override_engine)."""
    return SessionLocal


def init_db() -> None:
    """Create advisor tables if missing (dev convenience; production uses Alembic)."""
    from cache_advisor.models import tables  # noqa: F401  register mappers

    Base.metadata.create_all(bind=engine)


def healthcheck(session_factory=None) -> bool:
    session = (session_factory or SessionLocal)()
    try:
        session.execute(text("SELECT 1"))
        return True
    finally:
        session.close()
