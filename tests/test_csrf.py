"""Unit tests for the double-submit CSRF guard and its token store."""

import unittest

from app.core.csrf import CsrfGuard, InMemoryCsrfTokenStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestInMemoryCsrfTokenStore(unittest.TestCase):
    def test_tokens_expire_after_ttl(self) -> None:
        clock = FakeClock()
        store = InMemoryCsrfTokenStore(ttl_seconds=60, clock=clock)
        store.add("t1")
        self.assertTrue(store.contains("t1"))
        clock.now += 61
        self.assertFalse(store.contains("t1"))

    def test_unknown_token(self) -> None:
        store = InMemoryCsrfTokenStore(ttl_seconds=60)
        self.assertFalse(store.contains("never-issued"))


class TestCsrfGuard(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.store = InMemoryCsrfTokenStore(ttl_seconds=60, clock=self.clock)
        self.guard = CsrfGuard(self.store, cookie_name="csrf_token")

    def test_issues_new_token_without_cookie(self) -> None:
        issued = self.guard.ensure_token(None)
        self.assertTrue(issued.set_cookie)
        self.assertEqual(len(issued.token), 64)

    def test_reuses_valid_cookie_token(self) -> None:
        first = self.guard.ensure_token(None)
        again = self.guard.ensure_token(f"csrf_token={first.token}")
        self.assertEqual(again.token, first.token)
        self.assertFalse(again.set_cookie)

    def test_replaces_unknown_cookie_token(self) -> None:
        issued = self.guard.ensure_token("csrf_token=forged")
        self.assertTrue(issued.set_cookie)
        self.assertNotEqual(issued.token, "forged")

    def test_validate_matching_pair(self) -> None:
        token = self.guard.ensure_token(None).token
        self.assertTrue(self.guard.validate(f"csrf_token={token}", token))

    def test_validate_rejects_mismatch_and_missing(self) -> None:
        token = self.guard.ensure_token(None).token
        self.assertFalse(self.guard.validate(f"csrf_token={token}", token[:-1] + "0"))
        self.assertFalse(self.guard.validate(None, token))
        self.assertFalse(self.guard.validate(f"csrf_token={token}", None))
        self.assertFalse(self.guard.validate(f"csrf_token={token}", ""))

    def test_validate_rejects_pair_not_issued_here(self) -> None:
        self.assertFalse(self.guard.validate("csrf_token=abc", "abc"))

    def test_validate_rejects_expired_token(self) -> None:
        token = self.guard.ensure_token(None).token
        self.clock.now += 120
        self.assertFalse(self.guard.validate(f"csrf_token={token}", token))
