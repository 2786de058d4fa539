import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import StoreError

logger = logging.getLogger(__name__)


def _error_code(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    # psycopg2 exposes the SQLSTATE as pgcode
    return getattr(orig, "pgcode", None) or exc.__class__.__name__


@contextmanager
def store_call(db: Session, operation: str, passthrough: tuple = ()):
    """Run a store operation, rolling back and raising StoreError on failure.

    Exceptions listed in ``passthrough`` (e.g. IntegrityError for unique
    constraints the caller interprets) are rolled back and re-raised as-is.
    """
    try:
        yield
    except passthrough:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        code = _error_code(e)
        detail = str(getattr(e, "orig", None) or e)
        logger.error("store operation failed: op=%s code=%s detail=%s", operation, code, detail, exc_info=True)
        raise StoreError(f"{operation} failed", detail=detail, code="store_error") from e


def commit(db: Session, operation: str, passthrough: tuple = (IntegrityError,)) -> None:
    with store_call(db, operation, passthrough=passthrough):
        db.commit()


class Repository:
    def __init__(self, db: Session):
        self.db = db
