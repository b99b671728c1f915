"""Unit tests for Settings validation."""

import unittest

from pydantic import ValidationError

from app.core.config import Settings


def _settings(**overrides) -> Settings:
    values = {"DATABASE_URL": "sqlite://"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestSettings(unittest.TestCase):
    def test_defaults(self) -> None:
        settings = _settings(APP_ENV="dev", RATE_LIMIT_MAX_LOGIN_ATTEMPTS=5, SESSION_TTL_DAYS=7)
        self.assertEqual(settings.SESSION_COOKIE_NAME, "auth_token")
        self.assertEqual(settings.CSRF_FIELD_NAME, "csrf_token")
        self.assertFalse(settings.cookie_secure)

    def test_prod_marks_cookies_secure(self) -> None:
        self.assertTrue(_settings(APP_ENV="prod").cookie_secure)

    def test_log_level_normalized(self) -> None:
        self.assertEqual(_settings(LOG_LEVEL="warning").LOG_LEVEL, "WARNING")

    def test_rejects_unsupported_database_url(self) -> None:
        with self.assertRaises(ValidationError):
            _settings(DATABASE_URL="mysql://localhost/db")

    def test_rejects_out_of_range_values(self) -> None:
        for field, value in (
            ("SESSION_TTL_DAYS", 0),
            ("CSRF_TOKEN_BYTES", 8),
            ("RATE_LIMIT_WINDOW_SEC", 10),
            ("RATE_LIMIT_MAX_API_REQUESTS", 1),
            ("MAX_REQUEST_SIZE_AUTH", 10),
            ("BCRYPT_ROUNDS", 3),
        ):
            with self.assertRaises(ValidationError, msg=field):
                _settings(**{field: value})

    def test_rate_limit_storage_must_be_uri(self) -> None:
        with self.assertRaises(ValidationError):
            _settings(RATE_LIMIT_STORAGE_URI="redis")
        self.assertEqual(
            _settings(RATE_LIMIT_STORAGE_URI="redis://cache:6379").RATE_LIMIT_STORAGE_URI,
            "redis://cache:6379",
        )
