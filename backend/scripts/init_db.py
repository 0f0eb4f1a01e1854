#!/usr/bin/env python3
"""
Automatic database initialization script.
Waits for the database and creates the livability tables on first startup.
"""

import sys
import time
import logging
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import text, inspect
from sqlalchemy.exc import OperationalError
from app.core.database import engine, init_db

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

REQUIRED_TABLES = ["users", "addresses", "livability_scores", "reports"]


def wait_for_db(max_retries=30, delay=2):
    """Wait for database to be ready."""
    logger.info("Waiting for database to be ready...")

    for i in range(max_retries):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("✓ Database is ready")
            return True
        except OperationalError as e:
            if i < max_retries - 1:
                logger.info(f"Database not ready yet, waiting... ({i+1}/{max_retries})")
                time.sleep(delay)
            else:
                logger.error(f"Database not ready after {max_retries} attempts: {e}")

    return False


def missing_tables():
    """Names of required tables not present in the database."""
    tables = inspect(engine).get_table_names()
    return [t for t in REQUIRED_TABLES if t not in tables]


def main():
    """Main initialization function."""
    logger.info("=" * 60)
    logger.info("TranquilTaiwan - Database Initialization")
    logger.info("=" * 60)

    if not wait_for_db():
        logger.error("Failed to connect to database")
        return 1

    missing = missing_tables()
    if missing:
        logger.info(f"Missing tables: {missing}")
        init_db()
        logger.info("✓ Tables created")
    else:
        logger.info("✓ All required tables exist")

    logger.info("=" * 60)
    logger.info("✓ Initialization complete")
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
