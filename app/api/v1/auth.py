"""Browser authentication: CSRF token, first-run setup, register, login and logout (session cookie)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Form, Request, Response, status
from sqlalchemy.orm import Session

from app.api.deps import (
    Authenticator,
    ClientIp,
    SessionUserWithCsrf,
    enforce_api_rate_limit,
    enforce_login_rate_limit,
    get_csrf_guard,
    get_login_rate_limiter,
    require_csrf,
    session_token,
)
from app.core.config import settings
from app.core.csrf import CsrfGuard
from app.core.database import get_db
from app.core.errors import AppError, ErrorCode, UnauthorizedError
from app.core.rate_limit import RateLimiter
from app.schemas.auth import CsrfTokenResponse, LogoutResponse, SessionResponse, SetupStatusResponse
from app.services.accounts import authenticate_user, needs_setup, register_user
from app.services.audit import AuditAction, AuditResource, record_audit_event
from app.services.tokens import IssuedSession

router = APIRouter()


def set_session_cookie(response: Response, session: IssuedSession) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session.token,
        expires=session.expires_at,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.cookie_secure,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.cookie_secure,
    )


def _require_field(name: str, value: str | None) -> str:
    if value is None or not value.strip():
        raise AppError(f"Missing required field: {name}", code=ErrorCode.MISSING_FIELD)
    return value


@router.get("/csrf", response_model=CsrfTokenResponse)
def get_csrf_token(
    request: Request,
    response: Response,
    guard: Annotated[CsrfGuard, Depends(get_csrf_guard)],
) -> CsrfTokenResponse:
    """Return a CSRF token for forms and set the matching cookie (readable by scripts, strict same-site)."""
    issued = guard.ensure_token(request.headers.get("cookie"))
    if issued.set_cookie:
        response.set_cookie(
            key=settings.CSRF_COOKIE_NAME,
            value=issued.token,
            max_age=settings.CSRF_TOKEN_TTL_SEC,
            path="/",
            httponly=False,
            samesite="strict",
            secure=settings.cookie_secure,
        )
    return CsrfTokenResponse(csrf_token=issued.token)


@router.get("/setup", response_model=SetupStatusResponse)
def setup_status(db: Annotated[Session, Depends(get_db)]) -> SetupStatusResponse:
    """Whether the first account still has to be created."""
    return SetupStatusResponse(needs_setup=needs_setup(db))


@router.post(
    "/setup",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_login_rate_limit), Depends(require_csrf)],
)
def setup(
    response: Response,
    db: Annotated[Session, Depends(get_db)],
    authenticator: Authenticator,
    ip: ClientIp,
    username: Annotated[str | None, Form()] = None,
    password: Annotated[str | None, Form()] = None,
    confirm_password: Annotated[str | None, Form(alias="confirmPassword")] = None,
) -> SessionResponse:
    """
    First-run setup: create the initial account and start a session.

    Only available while no account exists; afterwards it answers 409.
    """
    if not needs_setup(db):
        raise AppError("Setup already completed", code=ErrorCode.FORBIDDEN, status_code=409)
    username = _require_field("username", username)
    password = _require_field("password", password)
    if password != confirm_password:
        raise AppError("Passwords do not match", code=ErrorCode.VALIDATION_ERROR)
    user = register_user(db, username, password)
    record_audit_event(
        db,
        AuditAction.REGISTER,
        AuditResource.USER,
        user_id=user.id,
        resource_id=user.id,
        ip_address=ip,
        details={"setup": True},
    )
    session = authenticator.issue_session(user.id, ip)
    set_session_cookie(response, session)
    return SessionResponse(username=user.username, expires_at=session.expires_at)


@router.post(
    "/register",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_api_rate_limit), Depends(require_csrf)],
)
def register(
    response: Response,
    db: Annotated[Session, Depends(get_db)],
    authenticator: Authenticator,
    ip: ClientIp,
    username: Annotated[str | None, Form()] = None,
    password: Annotated[str | None, Form()] = None,
) -> SessionResponse:
    """Create an account with a default configuration and start a session."""
    username = _require_field("username", username)
    password = _require_field("password", password)
    user = register_user(db, username, password)
    record_audit_event(
        db,
        AuditAction.REGISTER,
        AuditResource.USER,
        user_id=user.id,
        resource_id=user.id,
        ip_address=ip,
    )
    session = authenticator.issue_session(user.id, ip)
    set_session_cookie(response, session)
    return SessionResponse(username=user.username, expires_at=session.expires_at)


@router.post(
    "/login",
    response_model=SessionResponse,
    dependencies=[Depends(enforce_login_rate_limit), Depends(require_csrf)],
)
def login(
    response: Response,
    db: Annotated[Session, Depends(get_db)],
    authenticator: Authenticator,
    limiter: Annotated[RateLimiter, Depends(get_login_rate_limiter)],
    ip: ClientIp,
    username: Annotated[str | None, Form()] = None,
    password: Annotated[str | None, Form()] = None,
) -> SessionResponse:
    """
    Authenticate with username and password; the session token is set as an
    HttpOnly cookie bound to the caller's IP. Unknown user and wrong password
    produce the same response.
    """
    username = _require_field("username", username)
    password = _require_field("password", password)

    user = authenticate_user(db, username, password)
    if user is None:
        record_audit_event(
            db,
            AuditAction.LOGIN_FAILED,
            AuditResource.USER,
            ip_address=ip,
            details={"username": username.strip()},
        )
        raise UnauthorizedError("Invalid username or password", code=ErrorCode.INVALID_CREDENTIALS)

    session = authenticator.issue_session(user.id, ip)
    limiter.reset(ip, username.strip())
    record_audit_event(
        db,
        AuditAction.LOGIN_SUCCESS,
        AuditResource.SESSION,
        user_id=user.id,
        ip_address=ip,
    )
    set_session_cookie(response, session)
    return SessionResponse(username=user.username, expires_at=session.expires_at)


@router.post("/logout", response_model=LogoutResponse)
def logout(
    request: Request,
    response: Response,
    db: Annotated[Session, Depends(get_db)],
    current_user: SessionUserWithCsrf,
    authenticator: Authenticator,
    ip: ClientIp,
) -> LogoutResponse:
    authenticator.clear_session(session_token(request))
    record_audit_event(
        db,
        AuditAction.LOGOUT,
        AuditResource.SESSION,
        user_id=current_user.id,
        ip_address=ip,
    )
    clear_session_cookie(response)
    return LogoutResponse()
