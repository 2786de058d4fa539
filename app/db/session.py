from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from app.core.config import settings


class Base(DeclarativeBase):
    pass


def _connect_args(url: str, timeout_s: int) -> dict:
    # statement_timeout bounds every store call; SQLite (tests) has no equivalent
    if url.startswith("postgresql") and timeout_s > 0:
        return {"options": f"-c statement_timeout={timeout_s * 1000}"}
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def make_engine(url: str, timeout_s: int = 10, **kwargs):
    return create_engine(url, pool_pre_ping=True, connect_args=_connect_args(url, timeout_s), **kwargs)


engine = make_engine(settings.DATABASE_URL, settings.STORE_TIMEOUT_SECONDS)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
