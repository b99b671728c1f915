"""Shared helpers: throwaway SQLite databases, users and an API client wired to them."""

import unittest
from typing import Any

from fastapi.testclient import TestClient
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_api_rate_limiter, get_csrf_guard, get_login_rate_limiter
from app.core.csrf import CsrfGuard, InMemoryCsrfTokenStore
from app.core.database import enable_sqlite_write_locking, get_db
from app.core.rate_limit import RateLimiter, RateLimitPolicy
from app.core.security import hash_password
from app.models import Base, User

API = "/api/v1"
PASSWORD = "Password1"


def memory_engine() -> Engine:
    """One shared in-memory database for the whole engine."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_write_locking(engine)
    Base.metadata.create_all(engine)
    return engine


def file_engine(path: str) -> Engine:
    """File-backed database for tests that write from several threads."""
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    enable_sqlite_write_locking(engine)
    Base.metadata.create_all(engine)
    return engine


def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def add_user(db: Session, username: str = "alice") -> User:
    user = User(username=username, password_hash=hash_password(PASSWORD))
    db.add(user)
    db.commit()
    return user


class ApiTestCase(unittest.TestCase):
    """TestClient against the app with a fresh database, limiters and CSRF store per test."""

    login_attempts = 5
    api_requests = 1000

    def setUp(self) -> None:
        from app.main import app

        self.app = app
        self.engine = memory_engine()
        self.SessionLocal = session_factory(self.engine)
        self.login_limiter = RateLimiter(RateLimitPolicy("login", self.login_attempts, 900))
        self.api_limiter = RateLimiter(RateLimitPolicy("api", self.api_requests, 900))
        self.csrf_guard = CsrfGuard(InMemoryCsrfTokenStore(ttl_seconds=3600), cookie_name="csrf_token")

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_login_rate_limiter] = lambda: self.login_limiter
        app.dependency_overrides[get_api_rate_limiter] = lambda: self.api_limiter
        app.dependency_overrides[get_csrf_guard] = lambda: self.csrf_guard
        self.client = TestClient(app)

    def tearDown(self) -> None:
        self.client.close()
        self.app.dependency_overrides.clear()
        self.engine.dispose()

    def csrf_token(self) -> str:
        response = self.client.get(f"{API}/auth/csrf")
        self.assertEqual(response.status_code, 200)
        return response.json()["csrfToken"]

    def register(self, username: str = "alice", password: str = PASSWORD):
        return self.client.post(
            f"{API}/auth/register",
            data={"username": username, "password": password, "csrf_token": self.csrf_token()},
        )

    def login(self, username: str = "alice", password: str = PASSWORD):
        return self.client.post(
            f"{API}/auth/login",
            data={"username": username, "password": password, "csrf_token": self.csrf_token()},
        )

    def create_api_token(self, name: str = "ci") -> dict[str, Any]:
        response = self.client.post(
            f"{API}/api-tokens",
            data={"name": name, "csrf_token": self.csrf_token()},
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    @staticmethod
    def bearer(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}
