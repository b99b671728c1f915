"""Pydantic request/response schemas."""

from app.schemas.auth import CurrentUser
from app.schemas.config import HomeScreenConfig
from app.schemas.editor import EditorActionResponse, EditorCommand
from app.schemas.health import HealthResponse

__all__ = [
    "CurrentUser",
    "EditorActionResponse",
    "EditorCommand",
    "HealthResponse",
    "HomeScreenConfig",
]
