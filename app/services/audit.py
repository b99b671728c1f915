"""Security audit trail: structured log line plus an optional audit_logs row."""

import logging
from enum import StrEnum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models import AuditLog

logger = logging.getLogger("app.audit")


class AuditAction(StrEnum):
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"
    REGISTER = "REGISTER"
    SESSION_IP_MISMATCH = "SESSION_IP_MISMATCH"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    API_TOKEN_CREATED = "API_TOKEN_CREATED"
    API_TOKEN_DELETED = "API_TOKEN_DELETED"
    API_TOKEN_DELETED_ALL = "API_TOKEN_DELETED_ALL"
    CONFIG_CREATED = "CONFIG_CREATED"
    CONFIG_UPDATED = "CONFIG_UPDATED"
    CONFIG_IMPORTED = "CONFIG_IMPORTED"
    CONFIG_EXPORTED = "CONFIG_EXPORTED"
    VERSION_CREATED = "VERSION_CREATED"
    VERSION_RESTORED = "VERSION_RESTORED"


class AuditResource(StrEnum):
    USER = "USER"
    SESSION = "SESSION"
    API_TOKEN = "API_TOKEN"
    CONFIG = "CONFIG"
    VERSION = "VERSION"


def record_audit_event(
    db: Session,
    action: AuditAction,
    resource_type: AuditResource,
    *,
    user_id: int | None = None,
    resource_id: str | int | None = None,
    ip_address: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """
    Log an audit event and, when AUDIT_LOG_TO_DATABASE is on, persist it.

    Runs in its own commit after the audited operation; a failure to persist
    is logged and does not fail the request.
    """
    log_extra = {
        "audit_action": str(action),
        "resource_type": str(resource_type),
        "user_id": user_id,
        "resource_id": None if resource_id is None else str(resource_id),
        "ip_address": ip_address,
    }
    logger.info("audit %s", action, extra=log_extra)

    if not settings.AUDIT_LOG_TO_DATABASE:
        return
    try:
        db.add(
            AuditLog(
                user_id=user_id,
                action=str(action),
                resource_type=str(resource_type),
                resource_id=None if resource_id is None else str(resource_id),
                ip_address=ip_address,
                details=details,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to persist audit event", extra=log_extra)
