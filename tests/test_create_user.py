"""Tests for the create_user command-line script."""

import unittest
from unittest.mock import patch

from app.scripts import create_user
from app.services.accounts import authenticate_user
from app.services.config_store import ConfigStore
from tests.support import memory_engine, session_factory


class TestCreateUserScript(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = memory_engine()
        self.SessionLocal = session_factory(self.engine)
        patcher = patch.object(create_user, "SessionLocal", self.SessionLocal)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        self.engine.dispose()

    def test_creates_user_with_default_config(self) -> None:
        self.assertEqual(create_user.main(["alice", "Password1"]), 0)
        with self.SessionLocal() as db:
            user = authenticate_user(db, "alice", "Password1")
            self.assertIsNotNone(user)
            self.assertIsNotNone(ConfigStore(db).get(user.id, "default"))

    def test_rejects_taken_reserved_and_weak(self) -> None:
        create_user.main(["alice", "Password1"])
        self.assertEqual(create_user.main(["alice", "Password1"]), 1)
        self.assertEqual(create_user.main(["admin", "Password1"]), 1)
        self.assertEqual(create_user.main(["bob", "password"]), 1)
