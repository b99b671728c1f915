"""SQLAlchemy ORM models."""

from app.models.audit import AuditLog
from app.models.base import Base
from app.models.configuration import Configuration, ConfigVersion
from app.models.tokens import ApiToken, SessionToken
from app.models.user import User

__all__ = [
    "ApiToken",
    "AuditLog",
    "Base",
    "ConfigVersion",
    "Configuration",
    "SessionToken",
    "User",
]
