import logging
import os
import time
from urllib.parse import urlparse

import psycopg2

logger = logging.getLogger("wait_for_db")


def wait(database_url: str, timeout_s: int | None = None) -> None:
    """Block until PostgreSQL accepts connections. Non-PostgreSQL URLs return at once."""
    if not database_url.startswith(("postgres", "postgresql")):
        return
    timeout_s = int(os.getenv("DB_WAIT_TIMEOUT", "60")) if timeout_s is None else timeout_s

    # SQLAlchemy URL may start with postgresql+psycopg2://
    p = urlparse(database_url.replace("postgresql+psycopg2://", "postgresql://"))
    params = dict(
        host=p.hostname or "db",
        port=p.port or 5432,
        user=p.username or "carpool",
        password=p.password or "carpool",
        dbname=(p.path or "/carpool").lstrip("/") or "carpool",
    )

    logger.info("waiting for postgres at %s:%s db=%s (timeout=%ss)", params["host"], params["port"], params["dbname"], timeout_s)
    start = time.time()
    while True:
        try:
            psycopg2.connect(**params).close()
            logger.info("postgres is ready")
            return
        except psycopg2.OperationalError as e:
            if time.time() - start > timeout_s:
                logger.error("timed out waiting for postgres: %s", e)
                raise
            time.sleep(1)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    url = os.getenv("DATABASE_URL")
    if not url:
        raise SystemExit("DATABASE_URL is not set")
    wait(url)
