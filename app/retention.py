"""
CLI entrypoint for the session retention job. Run from cron, e.g.:

  python -m app.retention

Or hourly: 0 * * * * cd /path/to/homescreen && .venv/bin/python -m app.retention
"""

import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.core.logging_setup import configure_logging
from app.services.retention import run_retention

logger = logging.getLogger(__name__)


def main() -> int:
    """Run retention: delete expired session tokens."""
    settings = get_settings()
    configure_logging(settings)
    db = SessionLocal()
    try:
        sessions_deleted = run_retention(db, settings)
        logger.info("Retention completed: sessions_deleted=%s", sessions_deleted)
        return 0
    except SQLAlchemyError as e:
        logger.exception("Retention job failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
