from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from fieldops.config import settings


def build_engine(url: str, *, echo: bool = False):
    if url.startswith('sqlite'):
        # In-memory SQLite must share one connection across threads.
        kwargs = {'connect_args': {'check_same_thread': False}}
        if url in {'sqlite://', 'sqlite:///:memory:'}:
            kwargs['poolclass'] = StaticPool
        return create_engine(url, echo=echo, **kwargs)
    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=5,
        max_overflow=5,
        pool_timeout=30,
    )


engine = build_engine(settings.database_url_normalized, echo=settings.database_echo)
SessionLocal = sessionmaker(bind=engine, autoflush=True, expire_on_commit=False)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
