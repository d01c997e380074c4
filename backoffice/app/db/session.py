from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from backoffice.app.core.config import settings

DATABASE_URL = settings.database_url_normalized

if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
else:
    engine = create_engine(
        DATABASE_URL,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Commit everything done in the block, or roll all of it back.

    Locks taken with FOR UPDATE inside the block are held until the commit.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
