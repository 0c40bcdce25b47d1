#!/usr/bin/env python3
"""Bring the database schema to the latest Alembic revision.

Run before starting the API server or Celery workers; waits for the
database to accept connections first.
"""
import logging
import sys
import time
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import OperationalError

# Add parent directory to path so we can import catalog_import modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from catalog_import.core.config import get_settings
from catalog_import.core.logging import configure_logging

logger = logging.getLogger(__name__)

ALEMBIC_INI = Path(__file__).parent.parent / "alembic.ini"


def wait_for_db(database_url: str, max_retries: int = 30, retry_interval: int = 2) -> bool:
    """Poll the database until it answers ``SELECT 1``.

    Returns:
        True if database is available, False after ``max_retries`` failures
    """
    logger.info("Waiting for database to become available...")
    engine = create_engine(database_url, pool_pre_ping=True)
    try:
        for attempt in range(1, max_retries + 1):
            try:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                logger.info("Database connection established")
                return True
            except OperationalError as e:
                if attempt == max_retries:
                    logger.error(f"Failed to connect to database after {max_retries} attempts: {e}")
                    return False
                logger.warning(f"Attempt {attempt}/{max_retries} failed, retrying in {retry_interval}s...")
                time.sleep(retry_interval)
    finally:
        engine.dispose()
    return False


def current_revision(database_url: str) -> str | None:
    engine = create_engine(database_url)
    try:
        with engine.connect() as conn:
            if not inspect(conn).has_table("alembic_version"):
                return None
            return conn.execute(text("SELECT version_num FROM alembic_version")).scalar()
    finally:
        engine.dispose()


def run_migrations(database_url: str) -> bool:
    """Upgrade to ``head``; returns False (after logging) on any failure."""

    if not ALEMBIC_INI.exists():
        logger.error(f"Alembic config not found at {ALEMBIC_INI}")
        return False

    alembic_cfg = Config(str(ALEMBIC_INI))
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)

    try:
        logger.info(f"Current database revision: {current_revision(database_url) or '<none>'}")
        for rev in ScriptDirectory.from_config(alembic_cfg).walk_revisions():
            logger.info(f"  available: {rev.revision} - {rev.doc}")

        command.upgrade(alembic_cfg, "head")
    except Exception as e:
        logger.error(f"Migration failed: {e}", exc_info=True)
        return False

    logger.info("Migrations completed successfully")
    return True


def main() -> int:
    settings = get_settings()
    configure_logging(settings.log_level)

    if not wait_for_db(settings.database_url):
        logger.error("Database is not available. Exiting.")
        return 1
    if not run_migrations(settings.database_url):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
