from __future__ import annotations

from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from portal.settings import get_settings


_settings = get_settings()

engine = create_engine(
    _settings.resolved_db_url(),
    connect_args={"check_same_thread": False} if _settings.resolved_db_url().startswith("sqlite") else {},
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)


def get_db() -> Generator[Session, None, None]:
    """
    Main DB dependency: one session per request.

    Resolution reads everything it needs through this one session, so a
    request sees a single consistent view of grants and catalog.
    """

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Commit everything written inside the block as one unit, or nothing.

    Used by admin mutations that touch several rows (e.g. replacing a
    report's departments). Any exception rolls the whole unit back.
    """

    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
