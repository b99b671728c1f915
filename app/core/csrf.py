"""Double-submit CSRF protection for cookie-authenticated mutations."""

import threading
import time
from dataclasses import dataclass
from typing import Protocol

from app.core.request_utils import get_cookie
from app.core.security import constant_time_equals, generate_token


class CsrfTokenStore(Protocol):
    """Remembers which CSRF tokens this service has issued."""

    def add(self, token: str) -> None: ...

    def contains(self, token: str) -> bool: ...


class InMemoryCsrfTokenStore:
    """Process-local token store with per-token expiry."""

    def __init__(self, ttl_seconds: int, clock=time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._tokens: dict[str, float] = {}
        self._lock = threading.Lock()

    def add(self, token: str) -> None:
        with self._lock:
            self._purge()
            self._tokens[token] = self._clock() + self._ttl

    def contains(self, token: str) -> bool:
        with self._lock:
            expires_at = self._tokens.get(token)
            if expires_at is None:
                return False
            if expires_at <= self._clock():
                del self._tokens[token]
                return False
            return True

    def _purge(self) -> None:
        now = self._clock()
        expired = [t for t, exp in self._tokens.items() if exp <= now]
        for token in expired:
            del self._tokens[token]


@dataclass(frozen=True)
class CsrfTokenIssue:
    """Token to embed in forms; set_cookie tells the caller to (re)send the cookie."""

    token: str
    set_cookie: bool


class CsrfGuard:
    """Issues and checks double-submit tokens (cookie value must equal form field)."""

    def __init__(self, store: CsrfTokenStore, cookie_name: str, token_bytes: int = 32) -> None:
        self.store = store
        self.cookie_name = cookie_name
        self.token_bytes = token_bytes

    def ensure_token(self, cookie_header: str | None) -> CsrfTokenIssue:
        existing = get_cookie(cookie_header, self.cookie_name)
        if existing and self.store.contains(existing):
            return CsrfTokenIssue(token=existing, set_cookie=False)
        token = generate_token(self.token_bytes)
        self.store.add(token)
        return CsrfTokenIssue(token=token, set_cookie=True)

    def validate(self, cookie_header: str | None, supplied_token: str | None) -> bool:
        """True only if both tokens are present, equal, and issued by us."""
        cookie_token = get_cookie(cookie_header, self.cookie_name)
        if not cookie_token or not supplied_token:
            return False
        if not constant_time_equals(cookie_token, supplied_token):
            return False
        return self.store.contains(cookie_token)
