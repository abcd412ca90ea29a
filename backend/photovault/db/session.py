"""Database engine and sessions

Request handlers get a session per request through `get_db`. Work that runs
after the response (failure logs, churn tracking) opens its own through
`session_scope`, since the request session is closed by then.
"""
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from photovault.core.config import settings
from photovault.models.base import Base


def _engine_options(database_url: str) -> dict:
    if make_url(database_url).get_backend_name() == "sqlite":
        # Background threads share the connection with the request thread
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 3600}


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """FastAPI dependency: one session per webhook delivery"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope():
    """Session for detached work. SessionLocal is looked up at call time so tests can rebind it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create any missing tables"""
    import photovault.models  # noqa: F401  registers every model with Base.metadata
    Base.metadata.create_all(bind=engine)
