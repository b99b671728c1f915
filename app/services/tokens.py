"""
Session and API token authentication.

Sessions are short-lived, bound to the issuing client IP and carried in an
HttpOnly cookie. API tokens are long-lived bearer credentials that can only be
minted from a session, so a leaked API token cannot be used to create more.
Only SHA-256 hashes of either secret are stored. Validation never raises: it
returns an AuthResult with the reason for a rejection.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import ErrorCode
from app.core.request_utils import get_cookie
from app.core.security import generate_token, hash_token, token_preview
from app.core.timeutils import as_utc, utcnow
from app.models import ApiToken, SessionToken, User
from app.services.audit import AuditAction, AuditResource, record_audit_event

logger = logging.getLogger(__name__)

API_TOKEN_NAME_MAX_LEN = 100


@dataclass(frozen=True)
class AuthResult:
    authenticated: bool
    user_id: int | None = None
    username: str | None = None
    reason: str | None = None
    code: ErrorCode = ErrorCode.UNAUTHORIZED

    @classmethod
    def denied(cls, reason: str, code: ErrorCode = ErrorCode.UNAUTHORIZED) -> "AuthResult":
        return cls(authenticated=False, reason=reason, code=code)


@dataclass(frozen=True)
class IssuedSession:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class IssuedApiToken:
    """Creation result; the only place the raw secret is ever returned."""

    id: int
    name: str
    token: str
    created_at: datetime


@dataclass(frozen=True)
class ApiTokenInfo:
    id: int
    name: str
    token_preview: str
    created_at: datetime
    last_used_at: datetime | None


def parse_bearer(authorization_header: str | None) -> str | None:
    """Extract the token from 'Bearer <token>'; scheme is case-insensitive."""
    if not authorization_header:
        return None
    parts = authorization_header.strip().split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


class TokenAuthenticator:
    def __init__(self, db: Session, settings: Settings) -> None:
        self.db = db
        self.settings = settings

    # Sessions

    def issue_session(self, user_id: int, client_ip: str) -> IssuedSession:
        token = generate_token()
        expires_at = utcnow() + timedelta(days=self.settings.SESSION_TTL_DAYS)
        self.db.add(
            SessionToken(
                token_hash=hash_token(token),
                user_id=user_id,
                ip_address=client_ip,
                expires_at=expires_at,
            )
        )
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return IssuedSession(token=token, expires_at=expires_at)

    def validate_session_token(self, token: str | None, client_ip: str) -> AuthResult:
        if not token:
            return AuthResult.denied("Not authenticated")
        token_hash = hash_token(token)
        record = self.db.get(SessionToken, token_hash)
        if record is None:
            return AuthResult.denied("Invalid session")

        if as_utc(record.expires_at) <= utcnow():
            user_id = record.user_id
            self._delete_session(token_hash)
            record_audit_event(
                self.db,
                AuditAction.SESSION_EXPIRED,
                AuditResource.SESSION,
                user_id=user_id,
                ip_address=client_ip,
            )
            return AuthResult.denied("Session expired", ErrorCode.SESSION_EXPIRED)

        if record.ip_address != client_ip:
            user_id = record.user_id
            stored_ip = record.ip_address
            self._delete_session(token_hash)
            logger.warning(
                "Session presented from a different IP; session revoked",
                extra={"user_id": user_id, "client_ip": client_ip},
            )
            record_audit_event(
                self.db,
                AuditAction.SESSION_IP_MISMATCH,
                AuditResource.SESSION,
                user_id=user_id,
                ip_address=client_ip,
                details={"original_ip": stored_ip, "new_ip": client_ip},
            )
            return AuthResult.denied("Session IP mismatch")

        user = self.db.get(User, record.user_id)
        if user is None:
            return AuthResult.denied("User not found")
        return AuthResult(authenticated=True, user_id=user.id, username=user.username)

    def validate_session(self, cookie_header: str | None, client_ip: str) -> AuthResult:
        """Authenticate from a raw Cookie header."""
        token = get_cookie(cookie_header, self.settings.SESSION_COOKIE_NAME)
        return self.validate_session_token(token, client_ip)

    def clear_session(self, token: str | None) -> None:
        if token:
            self._delete_session(hash_token(token))

    def _delete_session(self, token_hash: str) -> None:
        try:
            self.db.execute(delete(SessionToken).where(SessionToken.token_hash == token_hash))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def purge_expired_sessions(self) -> int:
        """Delete sessions past their expiry. Returns the number removed."""
        try:
            result = self.db.execute(
                delete(SessionToken)
                .where(SessionToken.expires_at <= utcnow())
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return result.rowcount or 0

    # API tokens

    def issue_api_token(self, user_id: int, name: str) -> IssuedApiToken:
        """Mint an API token. Callers must have authenticated with a session, not a bearer token."""
        token = generate_token()
        record = ApiToken(
            user_id=user_id,
            name=name,
            token_hash=hash_token(token),
            token_preview=token_preview(token),
            created_at=utcnow(),
        )
        self.db.add(record)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return IssuedApiToken(
            id=record.id,
            name=record.name,
            token=token,
            created_at=as_utc(record.created_at),
        )

    def validate_bearer(self, authorization_header: str | None) -> AuthResult:
        token = parse_bearer(authorization_header)
        if token is None:
            return AuthResult.denied("Missing or malformed Authorization header")
        record = self.db.execute(
            select(ApiToken).where(ApiToken.token_hash == hash_token(token))
        ).scalar_one_or_none()
        if record is None:
            return AuthResult.denied("Invalid API token")
        user = self.db.get(User, record.user_id)
        if user is None:
            return AuthResult.denied("User not found")
        self._touch(record)
        return AuthResult(authenticated=True, user_id=user.id, username=user.username)

    def _touch(self, record: ApiToken) -> None:
        """Refresh last_used_at, at most once per API_TOKEN_LAST_USED_UPDATE_SEC."""
        now = utcnow()
        threshold = timedelta(seconds=self.settings.API_TOKEN_LAST_USED_UPDATE_SEC)
        if record.last_used_at is not None and now - as_utc(record.last_used_at) < threshold:
            return
        record.last_used_at = now
        try:
            self.db.commit()
        except SQLAlchemyError:
            # Bookkeeping only; authentication already succeeded.
            self.db.rollback()
            logger.warning("Could not update API token last_used_at", extra={"token_id": record.id})

    def list_api_tokens(self, user_id: int) -> list[ApiTokenInfo]:
        records = self.db.execute(
            select(ApiToken)
            .where(ApiToken.user_id == user_id)
            .order_by(ApiToken.created_at.desc(), ApiToken.id.desc())
        ).scalars()
        return [
            ApiTokenInfo(
                id=r.id,
                name=r.name,
                token_preview=r.token_preview,
                created_at=as_utc(r.created_at),
                last_used_at=as_utc(r.last_used_at) if r.last_used_at else None,
            )
            for r in records
        ]

    def revoke_api_token(self, token_id: int, caller_user_id: int) -> bool:
        """Delete a token owned by the caller. False if it does not exist or belongs to someone else."""
        try:
            result = self.db.execute(
                delete(ApiToken).where(
                    ApiToken.id == token_id,
                    ApiToken.user_id == caller_user_id,
                )
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return (result.rowcount or 0) > 0

    def revoke_all_api_tokens(self, user_id: int) -> int:
        try:
            result = self.db.execute(delete(ApiToken).where(ApiToken.user_id == user_id))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return result.rowcount or 0
