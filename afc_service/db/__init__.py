# afc_service/db/__init__.py

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def init_engine(database_url: str) -> Engine:
    """Buat engine sekali saja; SQLite in-memory dibagi lewat StaticPool."""
    global _engine, _SessionLocal
    kwargs = {"future": True, "pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        kwargs = {
            "future": True,
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    _engine = create_engine(database_url, **kwargs)
    _SessionLocal = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
    return _engine


def create_all() -> None:
    from . import models  # noqa: F401  (registrasi tabel)

    if _engine is None:
        raise RuntimeError("Database engine belum diinisialisasi.")
    Base.metadata.create_all(_engine)


def get_engine() -> Optional[Engine]:
    return _engine


@contextmanager
def get_session() -> Iterator[Session]:
    if _SessionLocal is None:
        raise RuntimeError("Database belum diinisialisasi. Set DATABASE_URL dan STORE_BACKEND=sql.")
    s = _SessionLocal()
    try:
        yield s
    finally:
        s.close()
