"""
Request dependencies: authentication, rate limiting and CSRF checks.

Order on every protected route is authenticate -> rate limit -> CSRF (cookie
routes only) -> handler. Bearer routes never consult the CSRF guard; cookie
routes never accept a bearer token.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Form, Request, Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.csrf import CsrfGuard, InMemoryCsrfTokenStore
from app.core.database import get_db
from app.core.errors import CsrfError, RateLimitExceededError, UnauthorizedError
from app.core.rate_limit import (
    RateLimiter,
    RateLimitPolicy,
    create_rate_limiter,
    rate_limit_headers,
)
from app.core.request_utils import get_client_ip, get_cookie
from app.schemas.auth import CurrentUser
from app.services.config_store import ConfigStore
from app.services.tokens import TokenAuthenticator


@lru_cache
def get_login_rate_limiter() -> RateLimiter:
    policy = RateLimitPolicy(
        name="login",
        max_requests=settings.RATE_LIMIT_MAX_LOGIN_ATTEMPTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SEC,
    )
    return create_rate_limiter(policy, settings.RATE_LIMIT_STORAGE_URI)


@lru_cache
def get_api_rate_limiter() -> RateLimiter:
    policy = RateLimitPolicy(
        name="api",
        max_requests=settings.RATE_LIMIT_MAX_API_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SEC,
    )
    return create_rate_limiter(policy, settings.RATE_LIMIT_STORAGE_URI)


@lru_cache
def get_csrf_guard() -> CsrfGuard:
    store = InMemoryCsrfTokenStore(ttl_seconds=settings.CSRF_TOKEN_TTL_SEC)
    return CsrfGuard(store, cookie_name=settings.CSRF_COOKIE_NAME, token_bytes=settings.CSRF_TOKEN_BYTES)


def client_ip(request: Request) -> str:
    return get_client_ip(request, settings.TRUST_PROXY)


def get_authenticator(db: Annotated[Session, Depends(get_db)]) -> TokenAuthenticator:
    return TokenAuthenticator(db, settings)


def get_config_store(db: Annotated[Session, Depends(get_db)]) -> ConfigStore:
    return ConfigStore(db)


ClientIp = Annotated[str, Depends(client_ip)]
Authenticator = Annotated[TokenAuthenticator, Depends(get_authenticator)]
Store = Annotated[ConfigStore, Depends(get_config_store)]


def require_bearer_user(request: Request, authenticator: Authenticator) -> CurrentUser:
    """Dependency: require a valid API token in the Authorization header. Raises 401 otherwise."""
    result = authenticator.validate_bearer(request.headers.get("authorization"))
    if not result.authenticated:
        raise UnauthorizedError(
            result.reason or "Not authenticated",
            code=result.code,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return CurrentUser(id=result.user_id, username=result.username)


def require_session_user(
    request: Request,
    authenticator: Authenticator,
    ip: ClientIp,
) -> CurrentUser:
    """Dependency: require a valid session cookie from the IP it was issued to. Raises 401 otherwise."""
    result = authenticator.validate_session(request.headers.get("cookie"), ip)
    if not result.authenticated:
        raise UnauthorizedError(result.reason or "Not authenticated", code=result.code)
    return CurrentUser(id=result.user_id, username=result.username)


def enforce_api_rate_limit(
    response: Response,
    ip: ClientIp,
    limiter: Annotated[RateLimiter, Depends(get_api_rate_limiter)],
) -> None:
    result = limiter.check(ip)
    headers = rate_limit_headers(result)
    if not result.allowed:
        raise RateLimitExceededError(
            "Too many requests",
            details=f"Retry after {result.retry_after_seconds} seconds",
            headers=headers,
        )
    response.headers.update(headers)


def enforce_login_rate_limit(
    response: Response,
    ip: ClientIp,
    limiter: Annotated[RateLimiter, Depends(get_login_rate_limiter)],
    username: Annotated[str | None, Form()] = None,
) -> None:
    result = limiter.check(ip, (username or "").strip())
    headers = rate_limit_headers(result)
    if not result.allowed:
        raise RateLimitExceededError(
            "Too many login attempts",
            details=f"Retry after {result.retry_after_seconds} seconds",
            headers=headers,
        )
    response.headers.update(headers)


async def require_csrf(
    request: Request,
    guard: Annotated[CsrfGuard, Depends(get_csrf_guard)],
) -> None:
    """Dependency: the csrf_token form field must match the csrf_token cookie. Raises 403 otherwise."""
    form = await request.form()
    supplied = form.get(settings.CSRF_FIELD_NAME)
    if not isinstance(supplied, str) or not guard.validate(request.headers.get("cookie"), supplied):
        raise CsrfError()


def api_user(
    user: Annotated[CurrentUser, Depends(require_bearer_user)],
    _limit: Annotated[None, Depends(enforce_api_rate_limit)],
) -> CurrentUser:
    """Bearer-authenticated, rate-limited caller."""
    return user


def session_user(
    user: Annotated[CurrentUser, Depends(require_session_user)],
    _limit: Annotated[None, Depends(enforce_api_rate_limit)],
) -> CurrentUser:
    """Cookie-authenticated, rate-limited caller (safe methods only)."""
    return user


def session_user_with_csrf(
    user: Annotated[CurrentUser, Depends(session_user)],
    _csrf: Annotated[None, Depends(require_csrf)],
) -> CurrentUser:
    """Cookie-authenticated, rate-limited caller of a mutating route."""
    return user


def session_token(request: Request) -> str | None:
    return get_cookie(request.headers.get("cookie"), settings.SESSION_COOKIE_NAME)


ApiUser = Annotated[CurrentUser, Depends(api_user)]
SessionUser = Annotated[CurrentUser, Depends(session_user)]
SessionUserWithCsrf = Annotated[CurrentUser, Depends(session_user_with_csrf)]
