"""
Schema versioning for configuration documents.

History:
  v1  carousel, textSection, cta
  v2  adds sectionOrder (render order of the three sections)

Each migration is a pure function registered under the version it produces;
migrate() applies them in order from the document's version to the current one.
"""

import copy
import logging
import re
from collections.abc import Callable
from typing import Any

from app.core.errors import AppError, ErrorCode
from app.schemas.config import DEFAULT_SECTION_ORDER
from app.services.validation import DEFAULT_CONFIG

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 2
MIN_SUPPORTED_SCHEMA_VERSION = 1

Migration = Callable[[dict[str, Any]], dict[str, Any]]

_VERSION_TAG_RE = re.compile(r"[vV]?(\d+)")


class SchemaVersionError(AppError):
    status_code = 400
    code = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str) -> None:
        super().__init__("Unsupported schema version", details=message)


def _add_section_order(document: dict[str, Any]) -> dict[str, Any]:
    migrated = dict(document)
    migrated.setdefault("sectionOrder", list(DEFAULT_SECTION_ORDER))
    return migrated


MIGRATIONS: dict[int, Migration] = {
    2: _add_section_order,
}


def parse_schema_version(tag: Any) -> int | None:
    """Accept 2, "2" or "v2"; anything else is None."""
    if isinstance(tag, bool):
        return None
    if isinstance(tag, int):
        return tag
    if isinstance(tag, str):
        match = _VERSION_TAG_RE.fullmatch(tag.strip())
        if match:
            return int(match.group(1))
    return None


def validate_schema_version(tag: Any) -> str | None:
    """Return an error message for an unusable version tag, or None if it can be migrated."""
    version = parse_schema_version(tag)
    if version is None or version < 1:
        return "Schema version must be a positive integer"
    if version < MIN_SUPPORTED_SCHEMA_VERSION:
        return (
            f"Schema version {version} is too old. "
            f"Minimum supported version is {MIN_SUPPORTED_SCHEMA_VERSION}"
        )
    if version > CURRENT_SCHEMA_VERSION:
        return (
            f"Schema version {version} is too new. "
            f"Current version is {CURRENT_SCHEMA_VERSION}. Please update the application"
        )
    return None


def require_schema_version(tag: Any) -> int:
    """Parse a version tag that must be migratable; SchemaVersionError otherwise."""
    error = validate_schema_version(tag)
    version = parse_schema_version(tag)
    if error or version is None:
        raise SchemaVersionError(error or "Schema version must be a positive integer")
    return version


def conform_to_schema(document: dict[str, Any], template: dict[str, Any]) -> dict[str, Any]:
    """
    Project a document onto the shape of template.

    Keys the template does not know are dropped; keys it has but the document
    lacks are filled from the template. Values are not type-checked here.
    """
    result: dict[str, Any] = {}
    for key, default in template.items():
        if key not in document:
            result[key] = copy.deepcopy(default)
            continue
        value = document[key]
        if isinstance(default, dict) and isinstance(value, dict):
            result[key] = conform_to_schema(value, default)
        else:
            result[key] = copy.deepcopy(value)
    return result


def migrate(document: dict[str, Any], from_version: Any) -> dict[str, Any]:
    """Bring a document of any supported version up to CURRENT_SCHEMA_VERSION."""
    version = require_schema_version(from_version)
    if not isinstance(document, dict):
        raise SchemaVersionError("Configuration data must be an object")

    migrated = copy.deepcopy(document)
    for target in range(version + 1, CURRENT_SCHEMA_VERSION + 1):
        migrated = MIGRATIONS[target](migrated)
    if version < CURRENT_SCHEMA_VERSION:
        logger.info(
            "Migrated configuration document",
            extra={"from_version": version, "to_version": CURRENT_SCHEMA_VERSION},
        )
    return conform_to_schema(migrated, DEFAULT_CONFIG)
