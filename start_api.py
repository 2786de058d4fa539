#!/usr/bin/env python3
"""
Run migrations (same process, same DATABASE_URL), then seed, then uvicorn.
"""
import os
import sys

import wait_for_db

from alembic import command
from alembic.config import Config

from app.core.config import settings
from app.core.log_config import configure_logging

configure_logging(settings.LOG_LEVEL)

wait_for_db.wait(settings.DATABASE_URL)

alembic_cfg = Config(os.path.join(os.path.dirname(__file__), "alembic.ini"))
alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
command.upgrade(alembic_cfg, "head")

from app.seed import run as run_seed  # noqa: E402  (engine built after migrations)
run_seed()

os.execv(
    sys.executable,
    [sys.executable, "-m", "uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", os.getenv("PORT", "8000")],
)
