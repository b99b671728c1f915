"""ORM models for live configurations and their version snapshots."""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB

from app.models.base import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class Configuration(Base):
    """
    Live configuration document for one (user, config_id).

    updated_at strictly increases on every write and doubles as the
    optimistic-concurrency fence. loaded_version points at the snapshot the
    live document currently reflects, or is NULL after an unversioned edit.
    """

    __tablename__ = "configurations"
    __table_args__ = (UniqueConstraint("user_id", "config_id", name="uq_configurations_user_config"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    config_id = Column(String(50), nullable=False)
    schema_version = Column(Integer, nullable=False)
    data = Column(JsonDocument, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    loaded_version = Column(Integer, nullable=True)


class ConfigVersion(Base):
    """Immutable snapshot; numbers per configuration are gapless from 1."""

    __tablename__ = "configuration_versions"
    __table_args__ = (
        UniqueConstraint("configuration_id", "version", name="uq_configuration_versions_number"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    configuration_id = Column(
        Integer,
        ForeignKey("configurations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version = Column(Integer, nullable=False)
    data = Column(JsonDocument, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
