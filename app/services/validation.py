"""Configuration document validation and normalization."""

import copy
import re
from typing import Any

from pydantic import ValidationError

from app.core.errors import AppError, ErrorCode
from app.schemas.config import DEFAULT_SECTION_ORDER, HomeScreenConfig

CONFIG_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,50}")
DEFAULT_CONFIG_ID = "default"

DEFAULT_CONFIG: dict[str, Any] = {
    "carousel": {
        "images": [
            "https://images.unsplash.com/photo-1557683316-973673baf926?w=800",
            "https://images.unsplash.com/photo-1579546929518-9e396f3cc809?w=800",
            "https://images.unsplash.com/photo-1557682250-33bd709cbe85?w=800",
        ],
        "aspectRatio": "landscape",
    },
    "textSection": {
        "title": "Welcome to Our App",
        "titleColor": "#000000",
        "description": "Discover amazing features and start your journey with us today.",
        "descriptionColor": "#666666",
    },
    "cta": {
        "label": "Get Started",
        "url": "https://example.com",
        "backgroundColor": "#007AFF",
        "textColor": "#FFFFFF",
    },
    "sectionOrder": list(DEFAULT_SECTION_ORDER),
}


class ConfigValidationError(AppError):
    """Document failed validation; `errors` lists every problem found."""

    status_code = 400
    code = ErrorCode.INVALID_CONFIG_DATA

    def __init__(self, errors: list[str], message: str = "Invalid configuration data") -> None:
        self.errors = errors
        super().__init__(message, details="; ".join(errors))


class InvalidConfigIdError(AppError):
    status_code = 400
    code = ErrorCode.INVALID_CONFIG_ID

    def __init__(self, config_id: object) -> None:
        super().__init__(
            "Invalid configuration ID",
            details="Use 1-50 letters, digits, hyphens or underscores",
        )
        self.config_id = config_id


def default_config() -> dict[str, Any]:
    """Fresh copy of the document new users start with."""
    return copy.deepcopy(DEFAULT_CONFIG)


def is_valid_config_id(config_id: object) -> bool:
    return isinstance(config_id, str) and CONFIG_ID_PATTERN.fullmatch(config_id) is not None


def require_valid_config_id(config_id: object) -> str:
    if not isinstance(config_id, str) or not CONFIG_ID_PATTERN.fullmatch(config_id):
        raise InvalidConfigIdError(config_id)
    return config_id


def _format_error(error: dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ())) or "config"
    message = str(error.get("msg", "is invalid"))
    # pydantic prefixes messages raised from validators.
    message = message.removeprefix("Value error, ")
    return f"{location}: {message}"


def validate_document(document: Any) -> dict[str, Any]:
    """
    Validate a configuration document and return its normalized form.

    Colors come back as uppercase #RRGGBB, unknown keys are dropped and a
    missing sectionOrder gets the default order. Raises ConfigValidationError
    carrying every error, not just the first.
    """
    if not isinstance(document, dict):
        raise ConfigValidationError(["config: must be an object"])
    try:
        model = HomeScreenConfig.model_validate(document)
    except ValidationError as e:
        raise ConfigValidationError([_format_error(err) for err in e.errors()]) from e
    return model.model_dump(by_alias=True)
