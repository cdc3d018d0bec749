import os
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from taskboard_api.errors import DuplicateKey


def _database_url() -> str:
    url = os.environ.get("DATABASE_URL", "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is required")
    if url.startswith("postgres://"):
        return "postgresql+psycopg://" + url[len("postgres://") :]
    if url.startswith("postgresql://"):
        return "postgresql+psycopg://" + url[len("postgresql://") :]
    return url


def _build_engine():
    url = _database_url()
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite:"):
            # one shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
    return create_engine(url, future=True, pool_pre_ping=True, **kwargs)


engine = _build_engine()
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


def get_db():
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session):
    """Run a block as one unit of work: commit on success, roll back on any error.

    Position shifts and the row update that caused them must land together, so
    every mutation in the engine goes through here.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if "status_key" in str(exc.orig):
            raise DuplicateKey("A status with this key already exists in the project") from exc
        raise
    except Exception:
        db.rollback()
        raise
