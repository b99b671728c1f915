"""Request/response schemas for auth and API token endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from app.schemas.common import CamelModel


class CurrentUser(BaseModel):
    """Authenticated user (id, username) for dependency injection."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str


class CsrfTokenResponse(CamelModel):
    csrf_token: str


class SessionResponse(CamelModel):
    """Returned by register and login; the session itself travels in the cookie."""

    success: bool = True
    username: str
    expires_at: datetime


class LogoutResponse(CamelModel):
    success: bool = True
    message: str = "Logged out"


class ApiTokenCreatedResponse(CamelModel):
    """The token value is only ever shown here."""

    id: int
    name: str
    token: str
    created_at: datetime
    message: str = "Store this token now; it will not be shown again."


class ApiTokenItem(CamelModel):
    id: int
    name: str
    token_preview: str
    created_at: datetime
    last_used_at: datetime | None = None


class ApiTokenListResponse(CamelModel):
    tokens: list[ApiTokenItem]


class ApiTokenRevokeResponse(CamelModel):
    success: bool = True
    revoked: int


class SetupStatusResponse(CamelModel):
    needs_setup: bool
