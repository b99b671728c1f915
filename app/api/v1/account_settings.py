"""Settings page: a logged-in browser user manages their API tokens with the session cookie."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import Authenticator, ClientIp, SessionUser, SessionUserWithCsrf
from app.api.v1.api_tokens import revoke_one, token_list
from app.core.database import get_db
from app.schemas.auth import ApiTokenListResponse, ApiTokenRevokeResponse

router = APIRouter()


@router.get("/api-tokens", response_model=ApiTokenListResponse)
def list_session_api_tokens(current_user: SessionUser, authenticator: Authenticator) -> ApiTokenListResponse:
    return token_list(authenticator, current_user.id)


@router.post("/api-tokens/{token_id}/revoke", response_model=ApiTokenRevokeResponse)
def revoke_session_api_token(
    token_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: SessionUserWithCsrf,
    authenticator: Authenticator,
    ip: ClientIp,
) -> ApiTokenRevokeResponse:
    """Revoke a token without needing its secret; the form must carry the CSRF token."""
    return revoke_one(db, authenticator, token_id, current_user.id, ip)
