"""
Persistence for live configurations and their version snapshots.

Every mutating method runs in one transaction. Writes to an existing row go
through a conditional UPDATE guarded by the updated_at value that was read,
so a concurrent writer can never be silently overwritten; version numbers are
assigned under the configuration row lock and the (configuration_id, version)
unique constraint, retrying when another writer took the number first.
"""

import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import AppError, ErrorCode
from app.core.timeutils import as_utc, parse_timestamp, utcnow
from app.models import Configuration, ConfigVersion, User
from app.services.schema_migrations import CURRENT_SCHEMA_VERSION
from app.services.validation import (
    DEFAULT_CONFIG_ID,
    default_config,
    require_valid_config_id,
    validate_document,
)

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 5
MAX_VERSION_ASSIGN_ATTEMPTS = 10
DEFAULT_VERSION_LIST_LIMIT = 20
MAX_VERSION_LIST_LIMIT = 100


class ConfigNotFoundError(AppError):
    status_code = 404
    code = ErrorCode.CONFIG_NOT_FOUND

    def __init__(self, config_id: str) -> None:
        super().__init__("Configuration not found", details=f"No configuration named '{config_id}'")
        self.config_id = config_id


class ConfigAlreadyExistsError(AppError):
    status_code = 409
    code = ErrorCode.CONFIG_ALREADY_EXISTS

    def __init__(self, config_id: str) -> None:
        super().__init__("Configuration already exists", details=f"'{config_id}' is already in use")
        self.config_id = config_id


class StaleDataError(AppError):
    """The caller's view of the configuration is out of date."""

    status_code = 409
    code = ErrorCode.STALE_DATA

    def __init__(self, expected: datetime | None, current: datetime | None) -> None:
        expected_text = expected.isoformat() if expected else "none"
        current_text = current.isoformat() if current else "none"
        super().__init__(
            "Configuration was modified by another request. Reload and try again.",
            details=f"Expected: {expected_text}, Current: {current_text}",
        )
        self.expected = expected
        self.current = current


class UserNotFoundError(AppError):
    status_code = 404
    code = ErrorCode.USER_NOT_FOUND

    def __init__(self) -> None:
        super().__init__("User not found")


@dataclass(frozen=True)
class ConfigSummary:
    config_id: str
    updated_at: datetime
    schema_version: int
    version_count: int
    loaded_version: int | None


@dataclass(frozen=True)
class SavedVersion:
    updated_at: datetime
    version_number: int
    loaded_version: int


def next_timestamp(previous: datetime | None) -> datetime:
    """Current UTC time, bumped past previous so updated_at always moves forward."""
    now = utcnow()
    if previous is not None:
        floor = as_utc(previous) + timedelta(microseconds=1)
        if now < floor:
            return floor
    return now


class ConfigStore:
    """Configurations and versions of one database session, always scoped by user id."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _select_row(self, user_id: int, config_id: str, *, lock: bool = False) -> Configuration | None:
        stmt = select(Configuration).where(
            Configuration.user_id == user_id,
            Configuration.config_id == config_id,
        )
        if lock:
            # FOR UPDATE is a no-op on SQLite, where writes are serialized anyway.
            stmt = stmt.with_for_update()
        stmt = stmt.execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def _conditional_update(self, row: Configuration, values: dict[str, Any]) -> bool:
        """Apply values only if nobody has written the row since it was read."""
        result = self.db.execute(
            update(Configuration)
            .where(
                Configuration.id == row.id,
                Configuration.updated_at == row.updated_at,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _max_version(self, configuration_id: int) -> int:
        stmt = select(func.coalesce(func.max(ConfigVersion.version), 0)).where(
            ConfigVersion.configuration_id == configuration_id
        )
        return int(self.db.execute(stmt).scalar_one())

    def get(self, user_id: int, config_id: str) -> Configuration | None:
        return self._select_row(user_id, config_id)

    def save(
        self,
        user_id: int,
        config_id: str,
        document: Any,
        schema_version: int = CURRENT_SCHEMA_VERSION,
        expected_updated_at: str | datetime | None = None,
        require_existing: bool = False,
    ) -> datetime:
        """
        Validate, normalize and upsert the live document; return the new updated_at.

        With expected_updated_at, the write only happens if the stored
        updated_at still equals it (StaleDataError otherwise). Saving clears
        loaded_version: the live document no longer matches a snapshot.
        """
        updated_at, _number = self._write(
            user_id,
            config_id,
            document,
            schema_version=schema_version,
            expected_updated_at=expected_updated_at,
            require_existing=require_existing,
            with_version=False,
        )
        return updated_at

    def save_with_version(
        self,
        user_id: int,
        config_id: str,
        document: Any,
        expected_updated_at: str | datetime | None = None,
        require_existing: bool = False,
    ) -> SavedVersion:
        """
        Save the live document and snapshot exactly that document in the same
        transaction. loaded_version points at the new snapshot.
        """
        updated_at, number = self._write(
            user_id,
            config_id,
            document,
            expected_updated_at=expected_updated_at,
            require_existing=require_existing,
            with_version=True,
        )
        return SavedVersion(updated_at=updated_at, version_number=number, loaded_version=number)

    def _write(
        self,
        user_id: int,
        config_id: str,
        document: Any,
        *,
        schema_version: int = CURRENT_SCHEMA_VERSION,
        expected_updated_at: str | datetime | None,
        require_existing: bool,
        with_version: bool,
    ) -> tuple[datetime, int | None]:
        require_valid_config_id(config_id)
        normalized = validate_document(document)
        try:
            fence = parse_timestamp(expected_updated_at) if expected_updated_at is not None else None
        except ValueError as e:
            raise AppError(
                "Invalid expectedUpdatedAt",
                code=ErrorCode.VALIDATION_ERROR,
                details="Expected an ISO-8601 timestamp",
            ) from e

        for _ in range(MAX_WRITE_ATTEMPTS):
            try:
                row = self._select_row(user_id, config_id, lock=True)
                if row is None:
                    if require_existing:
                        raise ConfigNotFoundError(config_id)
                    if fence is not None:
                        raise StaleDataError(fence, None)
                    updated_at = next_timestamp(None)
                    row = Configuration(
                        user_id=user_id,
                        config_id=config_id,
                        schema_version=schema_version,
                        data=normalized,
                        updated_at=updated_at,
                        loaded_version=None,
                    )
                    self.db.add(row)
                    self.db.flush()
                    number = self._append_snapshot(row.id, normalized) if with_version else None
                    self.db.commit()
                    return updated_at, number

                current = as_utc(row.updated_at)
                if fence is not None and fence != current:
                    raise StaleDataError(fence, current)
                updated_at = next_timestamp(current)
                written = self._conditional_update(
                    row,
                    {
                        "data": normalized,
                        "schema_version": schema_version,
                        "updated_at": updated_at,
                        "loaded_version": None,
                    },
                )
                if written:
                    number = self._append_snapshot(row.id, normalized) if with_version else None
                    self.db.commit()
                    return updated_at, number
                self.db.rollback()
                if fence is not None:
                    raise StaleDataError(fence, None)
            except IntegrityError:
                # Same key inserted or same version number taken concurrently; retry.
                self.db.rollback()
            except (AppError, SQLAlchemyError):
                self.db.rollback()
                raise
        logger.warning(
            "Configuration write gave up after concurrent modifications",
            extra={"user_id": user_id, "config_id": config_id},
        )
        raise StaleDataError(fence, None)

    def _append_snapshot(self, configuration_id: int, document: dict[str, Any]) -> int:
        """Add the next version of a row already written in this transaction and point loaded_version at it."""
        number = self._max_version(configuration_id) + 1
        self.db.add(
            ConfigVersion(configuration_id=configuration_id, version=number, data=copy.deepcopy(document))
        )
        self.db.flush()
        self.db.execute(
            update(Configuration)
            .where(Configuration.id == configuration_id)
            .values(loaded_version=number)
            .execution_options(synchronize_session=False)
        )
        return number

    def create(
        self,
        user_id: int,
        config_id: str,
        document: Any,
        schema_version: int = CURRENT_SCHEMA_VERSION,
    ) -> Configuration:
        """Insert a new configuration together with its version 1 snapshot."""
        require_valid_config_id(config_id)
        normalized = validate_document(document)
        try:
            if self._select_row(user_id, config_id) is not None:
                raise ConfigAlreadyExistsError(config_id)
            row = Configuration(
                user_id=user_id,
                config_id=config_id,
                schema_version=schema_version,
                data=normalized,
                updated_at=next_timestamp(None),
                loaded_version=1,
            )
            self.db.add(row)
            self.db.flush()
            self.db.add(
                ConfigVersion(
                    configuration_id=row.id,
                    version=1,
                    data=copy.deepcopy(normalized),
                )
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConfigAlreadyExistsError(config_id) from e
        except (AppError, SQLAlchemyError):
            self.db.rollback()
            raise
        return row

    def initialize_default(self, user_id: int) -> bool:
        """Make sure the user has a "default" configuration. True if one was created."""
        if self.get(user_id, DEFAULT_CONFIG_ID) is not None:
            return False
        try:
            self.create(user_id, DEFAULT_CONFIG_ID, default_config())
        except ConfigAlreadyExistsError:
            return False
        return True

    def list_for_user(self, user_id: int) -> list[ConfigSummary]:
        counts = (
            select(
                ConfigVersion.configuration_id,
                func.count(ConfigVersion.id).label("version_count"),
            )
            .group_by(ConfigVersion.configuration_id)
            .subquery()
        )
        stmt = (
            select(Configuration, func.coalesce(counts.c.version_count, 0))
            .outerjoin(counts, counts.c.configuration_id == Configuration.id)
            .where(Configuration.user_id == user_id)
            .order_by(Configuration.config_id)
        )
        return [
            ConfigSummary(
                config_id=row.config_id,
                updated_at=as_utc(row.updated_at),
                schema_version=row.schema_version,
                version_count=int(count),
                loaded_version=row.loaded_version,
            )
            for row, count in self.db.execute(stmt).all()
        ]

    def create_version(self, user_id: int, config_id: str, document: Any = None) -> int:
        """
        Append a snapshot and return its number (previous max + 1, starting at 1).

        document defaults to the live document. When the snapshot equals the
        live document, loaded_version is moved to the new number.
        """
        snapshot = validate_document(document) if document is not None else None
        for _ in range(MAX_VERSION_ASSIGN_ATTEMPTS):
            try:
                row = self._select_row(user_id, config_id, lock=True)
                if row is None:
                    raise ConfigNotFoundError(config_id)
                data = snapshot if snapshot is not None else copy.deepcopy(row.data)
                number = self._max_version(row.id) + 1
                self.db.add(ConfigVersion(configuration_id=row.id, version=number, data=data))
                self.db.flush()
                if data == row.data:
                    row.loaded_version = number
                self.db.commit()
                return number
            except IntegrityError:
                # Version number taken by a concurrent snapshot; read the new max.
                self.db.rollback()
            except (AppError, SQLAlchemyError):
                self.db.rollback()
                raise
        logger.error(
            "Could not assign a version number",
            extra={"user_id": user_id, "config_id": config_id},
        )
        raise AppError(
            "Could not create version, please retry",
            code=ErrorCode.STALE_DATA,
            status_code=409,
        )

    def _version_query(self, user_id: int, config_id: str):
        return (
            select(ConfigVersion)
            .join(Configuration, Configuration.id == ConfigVersion.configuration_id)
            .where(
                Configuration.user_id == user_id,
                Configuration.config_id == config_id,
            )
        )

    def list_versions(
        self,
        user_id: int,
        config_id: str,
        limit: int = DEFAULT_VERSION_LIST_LIMIT,
    ) -> list[ConfigVersion]:
        """Newest first."""
        limit = max(1, min(limit, MAX_VERSION_LIST_LIMIT))
        stmt = self._version_query(user_id, config_id).order_by(ConfigVersion.version.desc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def get_version(self, user_id: int, config_id: str, version_number: int) -> ConfigVersion | None:
        stmt = self._version_query(user_id, config_id).where(ConfigVersion.version == version_number)
        return self.db.execute(stmt).scalar_one_or_none()

    def latest_version_number(self, user_id: int, config_id: str) -> int:
        stmt = (
            select(func.coalesce(func.max(ConfigVersion.version), 0))
            .join(Configuration, Configuration.id == ConfigVersion.configuration_id)
            .where(
                Configuration.user_id == user_id,
                Configuration.config_id == config_id,
            )
        )
        return int(self.db.execute(stmt).scalar_one())

    def restore_version(self, user_id: int, config_id: str, version_number: int) -> bool:
        """Copy a snapshot into the live document. False if the version does not exist."""
        for _ in range(MAX_WRITE_ATTEMPTS):
            try:
                row = self._select_row(user_id, config_id, lock=True)
                version = None
                if row is not None:
                    version = self.db.execute(
                        select(ConfigVersion).where(
                            ConfigVersion.configuration_id == row.id,
                            ConfigVersion.version == version_number,
                        )
                    ).scalar_one_or_none()
                if row is None or version is None:
                    self.db.rollback()
                    return False
                written = self._conditional_update(
                    row,
                    {
                        "data": copy.deepcopy(version.data),
                        "schema_version": CURRENT_SCHEMA_VERSION,
                        "updated_at": next_timestamp(row.updated_at),
                        "loaded_version": version_number,
                    },
                )
                if written:
                    self.db.commit()
                    return True
                self.db.rollback()
            except SQLAlchemyError:
                self.db.rollback()
                raise
        raise StaleDataError(None, None)

    def set_loaded_version(self, user_id: int, config_id: str, version_number: int | None) -> bool:
        """Point loaded_version at an existing snapshot, or clear it with None."""
        try:
            row = self._select_row(user_id, config_id, lock=True)
            if row is None:
                self.db.rollback()
                return False
            if version_number is not None and self.get_version(user_id, config_id, version_number) is None:
                self.db.rollback()
                return False
            row.loaded_version = version_number
            self.db.commit()
            return True
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def import_document(
        self,
        user_id: int,
        config_id: str,
        document: Any,
        schema_version: int = CURRENT_SCHEMA_VERSION,
    ) -> Configuration:
        """Overwrite (or create) the live document from an import; no version is created."""
        self.save(user_id, config_id, document, schema_version=schema_version)
        row = self.get(user_id, config_id)
        if row is None:
            raise ConfigNotFoundError(config_id)
        return row

    def get_last_config_id(self, user_id: int) -> str:
        user = self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError()
        return user.last_config_id

    def set_last_config(self, user_id: int, config_id: str) -> None:
        """Remember which configuration the user last worked on."""
        if self.get(user_id, config_id) is None:
            raise ConfigNotFoundError(config_id)
        user = self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError()
        user.last_config_id = config_id
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
