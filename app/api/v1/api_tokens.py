"""
API token management. Creation needs a browser session; listing and revoking
use the bearer token here and a session cookie under /settings.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Form, status
from sqlalchemy.orm import Session

from app.api.deps import ApiUser, Authenticator, ClientIp, SessionUserWithCsrf
from app.core.database import get_db
from app.core.errors import AppError, ErrorCode
from app.schemas.auth import (
    ApiTokenCreatedResponse,
    ApiTokenItem,
    ApiTokenListResponse,
    ApiTokenRevokeResponse,
)
from app.services.audit import AuditAction, AuditResource, record_audit_event
from app.services.tokens import API_TOKEN_NAME_MAX_LEN, TokenAuthenticator

router = APIRouter()


@router.post("", response_model=ApiTokenCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_api_token(
    db: Annotated[Session, Depends(get_db)],
    current_user: SessionUserWithCsrf,
    authenticator: Authenticator,
    ip: ClientIp,
    name: Annotated[str | None, Form()] = None,
) -> ApiTokenCreatedResponse:
    """
    Mint an API token for the logged-in user.

    Only a session cookie (with CSRF token) is accepted here, never a bearer
    token. The raw token is in this response and nowhere else.
    """
    name = (name or "").strip()
    if not name:
        raise AppError("Missing required field: name", code=ErrorCode.MISSING_FIELD)
    if len(name) > API_TOKEN_NAME_MAX_LEN:
        raise AppError(
            "Token name too long",
            code=ErrorCode.VALIDATION_ERROR,
            details=f"Name must be at most {API_TOKEN_NAME_MAX_LEN} characters",
        )
    issued = authenticator.issue_api_token(current_user.id, name)
    record_audit_event(
        db,
        AuditAction.API_TOKEN_CREATED,
        AuditResource.API_TOKEN,
        user_id=current_user.id,
        resource_id=issued.id,
        ip_address=ip,
        details={"name": name},
    )
    return ApiTokenCreatedResponse(
        id=issued.id,
        name=issued.name,
        token=issued.token,
        created_at=issued.created_at,
    )


def token_list(authenticator: TokenAuthenticator, user_id: int) -> ApiTokenListResponse:
    tokens = authenticator.list_api_tokens(user_id)
    return ApiTokenListResponse(
        tokens=[
            ApiTokenItem(
                id=t.id,
                name=t.name,
                token_preview=t.token_preview,
                created_at=t.created_at,
                last_used_at=t.last_used_at,
            )
            for t in tokens
        ]
    )


@router.get("", response_model=ApiTokenListResponse)
def list_api_tokens(current_user: ApiUser, authenticator: Authenticator) -> ApiTokenListResponse:
    """List the caller's tokens, masked."""
    return token_list(authenticator, current_user.id)


def revoke_one(
    db: Session,
    authenticator: TokenAuthenticator,
    token_id: int,
    user_id: int,
    ip: str,
) -> ApiTokenRevokeResponse:
    """Revoke one of user_id's tokens; someone else's token is reported as not found."""
    if not authenticator.revoke_api_token(token_id, user_id):
        raise AppError("API token not found", code=ErrorCode.TOKEN_NOT_FOUND, status_code=404)
    record_audit_event(
        db,
        AuditAction.API_TOKEN_DELETED,
        AuditResource.API_TOKEN,
        user_id=user_id,
        resource_id=token_id,
        ip_address=ip,
    )
    return ApiTokenRevokeResponse(revoked=1)


@router.delete("/{token_id}", response_model=ApiTokenRevokeResponse)
def revoke_api_token(
    token_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: ApiUser,
    authenticator: Authenticator,
    ip: ClientIp,
) -> ApiTokenRevokeResponse:
    """Revoke one of the caller's tokens."""
    return revoke_one(db, authenticator, token_id, current_user.id, ip)


@router.delete("", response_model=ApiTokenRevokeResponse)
def revoke_all_api_tokens(
    db: Annotated[Session, Depends(get_db)],
    current_user: ApiUser,
    authenticator: Authenticator,
    ip: ClientIp,
) -> ApiTokenRevokeResponse:
    """Revoke every token of the caller, including the one used for this request."""
    revoked = authenticator.revoke_all_api_tokens(current_user.id)
    record_audit_event(
        db,
        AuditAction.API_TOKEN_DELETED_ALL,
        AuditResource.API_TOKEN,
        user_id=current_user.id,
        ip_address=ip,
        details={"revoked": revoked},
    )
    return ApiTokenRevokeResponse(revoked=revoked)
