"""Import and export of configurations as self-describing JSON envelopes."""

import copy
import json
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from app.core.errors import AppError, ErrorCode
from app.core.request_utils import sanitize_filename
from app.core.timeutils import as_utc, utcnow
from app.models import Configuration
from app.services.config_store import ConfigStore
from app.services.schema_migrations import (
    CURRENT_SCHEMA_VERSION,
    migrate,
    require_schema_version,
)
from app.services.validation import require_valid_config_id

logger = logging.getLogger(__name__)

# Identifier keys accepted in import files, in order of preference.
CONFIG_ID_KEYS = ("configId", "config_id", "id")


class ImportFileError(AppError):
    status_code = 400
    code = ErrorCode.INVALID_IMPORT_FILE

    def __init__(self, details: str) -> None:
        super().__init__("Invalid import file", details=details)


@dataclass(frozen=True)
class ImportEnvelope:
    config_id: str
    schema_version: int
    updated_at: str
    data: dict[str, Any]


@dataclass(frozen=True)
class ImportResult:
    configuration: Configuration
    migrated_from: int


def parse_import_envelope(payload: Any) -> ImportEnvelope:
    """Check an uploaded envelope has configId, schemaVersion, updatedAt and data."""
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ImportFileError(f"Invalid JSON: {e!s}") from e
    if not isinstance(payload, dict):
        raise ImportFileError("Import file must be a JSON object")

    config_id = next((payload[k] for k in CONFIG_ID_KEYS if payload.get(k) is not None), None)
    fields = {
        "configId": config_id,
        "schemaVersion": payload.get("schemaVersion"),
        "updatedAt": payload.get("updatedAt"),
        "data": payload.get("data"),
    }
    missing = [name for name, value in fields.items() if value is None]
    if missing:
        raise ImportFileError(f"Missing required fields: {', '.join(missing)}")

    config_id = require_valid_config_id(config_id)
    schema_version = require_schema_version(fields["schemaVersion"])
    if not isinstance(fields["updatedAt"], str):
        raise ImportFileError("updatedAt must be a string timestamp")
    if not isinstance(fields["data"], dict):
        raise ImportFileError("data must be an object")

    return ImportEnvelope(
        config_id=config_id,
        schema_version=schema_version,
        updated_at=fields["updatedAt"],
        data=fields["data"],
    )


def import_configuration(store: ConfigStore, user_id: int, payload: Any) -> ImportResult:
    """
    Parse, migrate, validate and store an import; the user's last config switches to it.

    The stored updatedAt is a fresh write time, not the one in the file, and
    no version snapshot is created.
    """
    envelope = parse_import_envelope(payload)
    migrated = migrate(envelope.data, envelope.schema_version)
    row = store.import_document(user_id, envelope.config_id, migrated, CURRENT_SCHEMA_VERSION)
    store.set_last_config(user_id, envelope.config_id)
    logger.info(
        "Imported configuration",
        extra={
            "user_id": user_id,
            "config_id": envelope.config_id,
            "migrated_from": envelope.schema_version,
        },
    )
    return ImportResult(configuration=row, migrated_from=envelope.schema_version)


def build_export_envelope(config: Configuration) -> dict[str, Any]:
    return {
        "configId": config.config_id,
        "schemaVersion": config.schema_version,
        "updatedAt": as_utc(config.updated_at).isoformat(),
        "data": copy.deepcopy(config.data),
    }


def export_filename(username: str, config_id: str, today: date | None = None) -> str:
    day = (today or utcnow().date()).isoformat()
    return sanitize_filename(f"config-export-{username}-{config_id}-{day}.json")
