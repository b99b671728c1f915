"""Session retention: delete session tokens past their expiry."""

import logging
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.services.tokens import TokenAuthenticator

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)


def run_retention(session: Session, settings: "Settings") -> int:
    """
    Purge expired session tokens. Returns the number deleted.

    Expired sessions are also removed lazily when presented; this catches the
    ones that never come back. Idempotent: safe to run repeatedly.
    """
    if not settings.RETENTION_ENABLED:
        logger.info("Retention is disabled (RETENTION_ENABLED=false); skipping.")
        return 0

    deleted_count = TokenAuthenticator(session, settings).purge_expired_sessions()
    if deleted_count > 0:
        logger.info("Retention run: sessions_deleted=%s", deleted_count)
    return deleted_count
