"""Pydantic schemas for the home screen configuration document and its API."""

import re
from datetime import datetime
from typing import Any, Literal
from urllib.parse import urlsplit

from pydantic import Field, field_validator

from app.schemas.common import CamelModel

SectionName = Literal["carousel", "textSection", "cta"]
AspectRatio = Literal["portrait", "landscape", "square"]

DEFAULT_SECTION_ORDER: tuple[str, ...] = ("carousel", "textSection", "cta")

MAX_TEXT_LENGTH = 500
MAX_URL_LENGTH = 2048
MAX_CAROUSEL_IMAGES = 50

ALLOWED_URL_SCHEMES: frozenset[str] = frozenset({"http", "https", "mailto", "tel"})

_HEX_COLOR_RE = re.compile(r"#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})")


def normalize_hex_color(value: str) -> str:
    """Validate #RGB / #RRGGBB and return uppercase #RRGGBB."""
    if not _HEX_COLOR_RE.fullmatch(value):
        raise ValueError("must be a valid hex color (e.g. #000000 or #FFF)")
    digits = value[1:]
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    return f"#{digits.upper()}"


def validate_url(value: str) -> str:
    """
    Accept http(s)/mailto/tel URLs and same-origin relative paths.

    Protocol-relative ("//host") and anything carrying another scheme
    (javascript:, data:, ...) is rejected.
    """
    url = value.strip()
    if not url:
        raise ValueError("must be a non-empty URL")
    if len(url) > MAX_URL_LENGTH:
        raise ValueError(f"must be at most {MAX_URL_LENGTH} characters")
    if url.startswith("/"):
        if url.startswith("//"):
            raise ValueError("protocol-relative URLs are not allowed")
        path = re.split(r"[?#]", url, maxsplit=1)[0]
        if ":" in path:
            raise ValueError("relative URLs must not contain a scheme")
        return url
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_URL_SCHEMES:
        raise ValueError(f"URL scheme must be one of {sorted(ALLOWED_URL_SCHEMES)} or a relative path")
    if scheme in ("http", "https") and not parts.netloc:
        raise ValueError("must include a host")
    if scheme in ("mailto", "tel") and not parts.path:
        raise ValueError(f"{scheme} URL must include a target")
    return url


class CarouselSection(CamelModel):
    images: list[str] = Field(max_length=MAX_CAROUSEL_IMAGES)
    aspect_ratio: AspectRatio

    @field_validator("images")
    @classmethod
    def validate_images(cls, v: list[str]) -> list[str]:
        checked = []
        for i, image in enumerate(v):
            try:
                checked.append(validate_url(image))
            except ValueError as e:
                raise ValueError(f"image {i}: {e}") from e
        return checked


class TextSection(CamelModel):
    title: str = Field(max_length=MAX_TEXT_LENGTH)
    title_color: str
    description: str = Field(max_length=MAX_TEXT_LENGTH)
    description_color: str

    @field_validator("title_color", "description_color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        return normalize_hex_color(v)


class CallToAction(CamelModel):
    label: str = Field(max_length=MAX_TEXT_LENGTH)
    url: str
    background_color: str
    text_color: str

    @field_validator("label")
    @classmethod
    def validate_label(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must be non-empty")
        return v

    @field_validator("url")
    @classmethod
    def validate_cta_url(cls, v: str) -> str:
        return validate_url(v)

    @field_validator("background_color", "text_color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        return normalize_hex_color(v)


class HomeScreenConfig(CamelModel):
    """The configuration document. Unknown keys are dropped on validation."""

    carousel: CarouselSection
    text_section: TextSection
    cta: CallToAction
    section_order: list[SectionName] = Field(default_factory=lambda: list(DEFAULT_SECTION_ORDER))

    @field_validator("section_order")
    @classmethod
    def validate_section_order(cls, v: list[str]) -> list[str]:
        if len(set(v)) != len(v):
            raise ValueError("must not contain duplicate sections")
        missing = [s for s in DEFAULT_SECTION_ORDER if s not in v]
        if missing:
            raise ValueError(f"is missing sections: {', '.join(missing)}")
        return v


# Request / response bodies


class CreateConfigRequest(CamelModel):
    config_id: str
    data: dict[str, Any]


class UpdateConfigRequest(CamelModel):
    data: dict[str, Any]
    expected_updated_at: datetime | None = Field(
        default=None,
        description="updatedAt the client last read; a mismatch is rejected with 409 STALE_DATA.",
    )
    create_version: bool = False


class ConfigResponse(CamelModel):
    config_id: str
    schema_version: int
    updated_at: datetime
    loaded_version: int | None = None
    data: dict[str, Any]


class ConfigListItem(CamelModel):
    config_id: str
    updated_at: datetime
    schema_version: int
    version_count: int
    loaded_version: int | None = None


class ConfigListResponse(CamelModel):
    configs: list[ConfigListItem]
    last_config_id: str


class SaveConfigResponse(CamelModel):
    success: bool = True
    config_id: str
    saved_at: datetime
    version_number: int | None = None
    latest_version_number: int | None = None


class VersionSummary(CamelModel):
    version: int
    created_at: datetime


class VersionListResponse(CamelModel):
    config_id: str
    versions: list[VersionSummary]
    latest_version_number: int


class VersionResponse(CamelModel):
    config_id: str
    version: int
    created_at: datetime
    data: dict[str, Any]


class CreateVersionResponse(CamelModel):
    success: bool = True
    config_id: str
    version_number: int


class RestoreVersionResponse(CamelModel):
    success: bool = True
    config_id: str
    restored_version: int
    updated_at: datetime
    data: dict[str, Any]


class ImportConfigResponse(CamelModel):
    success: bool = True
    config_id: str
    schema_version: int
    migrated_from: int
    updated_at: datetime
    data: dict[str, Any]


class PreferencesRequest(CamelModel):
    last_config_id: str


class PreferencesResponse(CamelModel):
    success: bool = True
    last_config_id: str
