"""End-to-end API tests: authentication flows, configuration endpoints and error envelopes."""

import json
from unittest.mock import patch

from app.services.config_store import ConfigStore
from app.services.validation import default_config
from tests.support import API, PASSWORD, ApiTestCase


def _doc(title: str = "Welcome") -> dict:
    doc = default_config()
    doc["textSection"]["title"] = title
    return doc


class TestHealth(ApiTestCase):
    def test_health_reports_database_and_schema(self) -> None:
        response = self.client.get(f"{API}/health/")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["database"], "connected")
        self.assertEqual(body["configSchemaVersion"], 2)


class TestRegisterAndLogin(ApiTestCase):
    def test_register_starts_session_and_creates_default_config(self) -> None:
        response = self.register()
        self.assertEqual(response.status_code, 201, response.text)
        self.assertEqual(response.json()["username"], "alice")
        self.assertIn("auth_token", response.cookies)
        token = self.create_api_token()["token"]
        listing = self.client.get(f"{API}/configs", headers=self.bearer(token)).json()
        self.assertEqual([c["configId"] for c in listing["configs"]], ["default"])
        self.assertEqual(listing["lastConfigId"], "default")

    def test_register_requires_csrf(self) -> None:
        response = self.client.post(f"{API}/auth/register", data={"username": "alice", "password": PASSWORD})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "INVALID_CSRF")

    def test_duplicate_username(self) -> None:
        self.register()
        response = self.register()
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "USERNAME_TAKEN")

    def test_weak_password_rejected(self) -> None:
        response = self.register(password="short")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

    def test_missing_username(self) -> None:
        response = self.client.post(
            f"{API}/auth/register",
            data={"password": PASSWORD, "csrf_token": self.csrf_token()},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "MISSING_FIELD")

    def test_login_success_and_wrong_password(self) -> None:
        self.register()
        self.assertEqual(self.login().status_code, 200)
        bad = self.login(password="Wrong-pass1")
        self.assertEqual(bad.status_code, 401)
        body = bad.json()
        self.assertEqual(body["code"], "INVALID_CREDENTIALS")
        self.assertIn("requestId", body)
        unknown = self.login(username="nobody")
        self.assertEqual(unknown.status_code, 401)
        self.assertEqual(unknown.json()["code"], "INVALID_CREDENTIALS")
        self.assertEqual(unknown.json()["error"], body["error"])

    def test_logout_ends_session(self) -> None:
        self.register()
        response = self.client.post(f"{API}/auth/logout", data={"csrf_token": self.csrf_token()})
        self.assertEqual(response.status_code, 200)
        again = self.client.post(f"{API}/api-tokens", data={"name": "x", "csrf_token": self.csrf_token()})
        self.assertEqual(again.status_code, 401)

    def test_logout_without_csrf_rejected(self) -> None:
        self.register()
        self.csrf_token()
        response = self.client.post(f"{API}/auth/logout", data={})
        self.assertEqual(response.status_code, 403)


class TestSetup(ApiTestCase):
    def _setup(self, password: str = PASSWORD, confirm: str = PASSWORD):
        return self.client.post(
            f"{API}/auth/setup",
            data={
                "username": "admin",
                "password": password,
                "confirmPassword": confirm,
                "csrf_token": self.csrf_token(),
            },
        )

    def test_first_account_created_once(self) -> None:
        self.assertTrue(self.client.get(f"{API}/auth/setup").json()["needsSetup"])
        response = self._setup()
        self.assertEqual(response.status_code, 201, response.text)
        self.assertEqual(response.json()["username"], "admin")
        self.assertFalse(self.client.get(f"{API}/auth/setup").json()["needsSetup"])
        self.create_api_token()

        again = self._setup()
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["code"], "FORBIDDEN")

    def test_password_confirmation_must_match(self) -> None:
        response = self._setup(confirm="Password2")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")
        self.assertTrue(self.client.get(f"{API}/auth/setup").json()["needsSetup"])

    def test_setup_requires_csrf(self) -> None:
        self.csrf_token()
        response = self.client.post(
            f"{API}/auth/setup",
            data={"username": "admin", "password": PASSWORD, "confirmPassword": PASSWORD},
        )
        self.assertEqual(response.status_code, 403)


class TestLoginRateLimit(ApiTestCase):
    login_attempts = 5

    def test_sixth_failed_attempt_is_throttled(self) -> None:
        self.register()
        for _ in range(5):
            self.assertEqual(self.login(password="Wrong-pass1").status_code, 401)
        response = self.login(password="Wrong-pass1")
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["code"], "RATE_LIMIT_EXCEEDED")
        self.assertGreater(int(response.headers["Retry-After"]), 0)
        # Correct credentials are throttled too until the window passes.
        self.assertEqual(self.login().status_code, 429)

    def test_success_resets_counter(self) -> None:
        self.register()
        for _ in range(4):
            self.login(password="Wrong-pass1")
        self.assertEqual(self.login().status_code, 200)
        for _ in range(5):
            self.assertEqual(self.login(password="Wrong-pass1").status_code, 401)

    def test_usernames_counted_separately(self) -> None:
        self.register()
        for _ in range(6):
            self.login(username="mallory", password="Wrong-pass1")
        self.assertEqual(self.login().status_code, 200)

    def test_usernames_differing_in_case_counted_separately(self) -> None:
        self.register(username="Alice")
        for _ in range(5):
            self.login(username="alice", password="Wrong-pass1")
        self.assertEqual(self.login(username="alice", password="Wrong-pass1").status_code, 429)
        self.assertEqual(self.login(username="Alice").status_code, 200)


class TestApiRateLimit(ApiTestCase):
    api_requests = 3

    def test_bearer_requests_throttled_with_headers(self) -> None:
        self.register()
        token = self.create_api_token()["token"]
        # Registration and token creation used two of the three requests.
        first = self.client.get(f"{API}/configs", headers=self.bearer(token))
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.headers["X-RateLimit-Remaining"], "0")
        throttled = self.client.get(f"{API}/configs", headers=self.bearer(token))
        self.assertEqual(throttled.status_code, 429)
        self.assertIn("Retry-After", throttled.headers)


class TestApiTokens(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.register()

    def test_listing_is_masked(self) -> None:
        created = self.create_api_token("laptop")
        self.assertEqual(len(created["token"]), 64)
        listing = self.client.get(f"{API}/api-tokens", headers=self.bearer(created["token"])).json()
        item = listing["tokens"][0]
        self.assertNotIn("token", item)
        self.assertEqual(item["tokenPreview"], f"{created['token'][:4]}...{created['token'][-4:]}")

    def test_bearer_cannot_mint_tokens(self) -> None:
        token = self.create_api_token()["token"]
        self.client.cookies.clear()
        response = self.client.post(f"{API}/api-tokens", data={"name": "escalate"}, headers=self.bearer(token))
        self.assertEqual(response.status_code, 401)

    def test_creation_requires_csrf(self) -> None:
        self.csrf_token()
        response = self.client.post(f"{API}/api-tokens", data={"name": "ci"})
        self.assertEqual(response.status_code, 403)

    def test_name_required_and_bounded(self) -> None:
        missing = self.client.post(f"{API}/api-tokens", data={"csrf_token": self.csrf_token()})
        self.assertEqual(missing.json()["code"], "MISSING_FIELD")
        too_long = self.client.post(
            f"{API}/api-tokens",
            data={"name": "x" * 101, "csrf_token": self.csrf_token()},
        )
        self.assertEqual(too_long.status_code, 400)

    def test_revoke_twice(self) -> None:
        keeper = self.create_api_token("keeper")["token"]
        doomed = self.create_api_token("doomed")
        first = self.client.delete(f"{API}/api-tokens/{doomed['id']}", headers=self.bearer(keeper))
        self.assertEqual(first.status_code, 200)
        second = self.client.delete(f"{API}/api-tokens/{doomed['id']}", headers=self.bearer(keeper))
        self.assertEqual(second.status_code, 404)
        self.assertEqual(second.json()["code"], "TOKEN_NOT_FOUND")
        self.assertEqual(
            self.client.get(f"{API}/configs", headers=self.bearer(doomed["token"])).status_code,
            401,
        )

    def test_revoking_own_token(self) -> None:
        created = self.create_api_token()
        response = self.client.delete(f"{API}/api-tokens/{created['id']}", headers=self.bearer(created["token"]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get(f"{API}/configs", headers=self.bearer(created["token"])).status_code, 401)

    def test_revoke_all(self) -> None:
        tokens = [self.create_api_token(f"t{i}")["token"] for i in range(3)]
        response = self.client.delete(f"{API}/api-tokens", headers=self.bearer(tokens[0]))
        self.assertEqual(response.json()["revoked"], 3)
        for token in tokens:
            self.assertEqual(self.client.get(f"{API}/configs", headers=self.bearer(token)).status_code, 401)

    def test_session_user_lists_and_revokes_without_the_secret(self) -> None:
        created = self.create_api_token("lost")
        listing = self.client.get(f"{API}/settings/api-tokens")
        self.assertEqual(listing.status_code, 200, listing.text)
        self.assertEqual([t["id"] for t in listing.json()["tokens"]], [created["id"]])
        response = self.client.post(
            f"{API}/settings/api-tokens/{created['id']}/revoke",
            data={"csrf_token": self.csrf_token()},
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["revoked"], 1)
        self.assertEqual(self.client.get(f"{API}/settings/api-tokens").json()["tokens"], [])
        self.assertEqual(self.client.get(f"{API}/configs", headers=self.bearer(created["token"])).status_code, 401)

    def test_session_revoke_requires_csrf_and_ownership(self) -> None:
        created = self.create_api_token()
        self.csrf_token()
        without_csrf = self.client.post(f"{API}/settings/api-tokens/{created['id']}/revoke", data={})
        self.assertEqual(without_csrf.status_code, 403)
        missing = self.client.post(
            f"{API}/settings/api-tokens/{created['id'] + 100}/revoke",
            data={"csrf_token": self.csrf_token()},
        )
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["code"], "TOKEN_NOT_FOUND")

    def test_settings_listing_rejects_bearer(self) -> None:
        token = self.create_api_token()["token"]
        self.client.cookies.clear()
        response = self.client.get(f"{API}/settings/api-tokens", headers=self.bearer(token))
        self.assertEqual(response.status_code, 401)

    def test_missing_bearer(self) -> None:
        response = self.client.get(f"{API}/configs")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.headers["WWW-Authenticate"], "Bearer")
        self.assertEqual(response.json()["code"], "UNAUTHORIZED")


class TestConfigEndpoints(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.register()
        self.headers = self.bearer(self.create_api_token()["token"])

    def _create(self, config_id: str = "home", data: dict | None = None):
        return self.client.post(
            f"{API}/configs",
            json={"configId": config_id, "data": data or _doc()},
            headers=self.headers,
        )

    def test_create_returns_201_and_conflicts_on_repeat(self) -> None:
        response = self._create()
        self.assertEqual(response.status_code, 201, response.text)
        self.assertEqual(response.json()["versionNumber"], 1)
        duplicate = self._create()
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.json()["code"], "CONFIG_ALREADY_EXISTS")

    def test_create_invalid_document(self) -> None:
        data = _doc()
        data["cta"]["url"] = "javascript:alert(1)"
        response = self._create(data=data)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_CONFIG_DATA")

    def test_get_unknown_and_invalid_ids(self) -> None:
        missing = self.client.get(f"{API}/configs/nope", headers=self.headers)
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["code"], "CONFIG_NOT_FOUND")
        invalid = self.client.get(f"{API}/configs/bad%20id", headers=self.headers)
        self.assertEqual(invalid.status_code, 400)
        self.assertEqual(invalid.json()["code"], "INVALID_CONFIG_ID")

    def test_stale_update_returns_409(self) -> None:
        self._create()
        read = self.client.get(f"{API}/configs/home", headers=self.headers).json()
        fence = read["updatedAt"]
        first = self.client.put(
            f"{API}/configs/home",
            json={"data": _doc("first"), "expectedUpdatedAt": fence},
            headers=self.headers,
        )
        self.assertEqual(first.status_code, 200, first.text)
        second = self.client.put(
            f"{API}/configs/home",
            json={"data": _doc("second"), "expectedUpdatedAt": fence},
            headers=self.headers,
        )
        self.assertEqual(second.status_code, 409)
        self.assertEqual(second.json()["code"], "STALE_DATA")
        current = self.client.get(f"{API}/configs/home", headers=self.headers).json()
        self.assertEqual(current["data"]["textSection"]["title"], "first")

    def test_update_missing_config(self) -> None:
        response = self.client.put(f"{API}/configs/nope", json={"data": _doc()}, headers=self.headers)
        self.assertEqual(response.status_code, 404)

    def test_update_with_version(self) -> None:
        self._create()
        response = self.client.put(
            f"{API}/configs/home",
            json={"data": _doc("v2"), "createVersion": True},
            headers=self.headers,
        )
        self.assertEqual(response.json()["versionNumber"], 2)
        versions = self.client.get(f"{API}/configs/home/versions", headers=self.headers).json()
        self.assertEqual([v["version"] for v in versions["versions"]], [2, 1])
        self.assertEqual(versions["latestVersionNumber"], 2)

    def test_update_with_version_snapshots_the_submitted_document(self) -> None:
        self._create()
        create_version = ConfigStore.create_version

        def with_interleaved_write(store, user_id, config_id, document=None):
            store.save(user_id, config_id, _doc("intruder"))
            return create_version(store, user_id, config_id, document)

        with patch.object(ConfigStore, "create_version", with_interleaved_write):
            response = self.client.put(
                f"{API}/configs/home",
                json={"data": _doc("mine"), "createVersion": True},
                headers=self.headers,
            )
        self.assertEqual(response.status_code, 200, response.text)
        number = response.json()["versionNumber"]
        snapshot = self.client.get(f"{API}/configs/home/versions/{number}", headers=self.headers).json()
        self.assertEqual(snapshot["data"]["textSection"]["title"], "mine")
        current = self.client.get(f"{API}/configs/home", headers=self.headers).json()
        self.assertEqual(current["loadedVersion"], number)

    def test_restore_and_restore_past_latest(self) -> None:
        self._create(data=_doc("original"))
        self.client.put(f"{API}/configs/home", json={"data": _doc("edited")}, headers=self.headers)
        restored = self.client.post(f"{API}/configs/home/versions/1/restore", headers=self.headers)
        self.assertEqual(restored.status_code, 200)
        self.assertEqual(restored.json()["data"]["textSection"]["title"], "original")
        snapshot = self.client.get(f"{API}/configs/home/versions/1", headers=self.headers).json()
        self.assertEqual(restored.json()["data"], snapshot["data"])

        past = self.client.post(f"{API}/configs/home/versions/2/restore", headers=self.headers)
        self.assertEqual(past.status_code, 404)
        self.assertEqual(past.json()["code"], "VERSION_NOT_FOUND")
        bad = self.client.post(f"{API}/configs/home/versions/abc/restore", headers=self.headers)
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(bad.json()["code"], "INVALID_VERSION_NUMBER")

    def test_snapshot_endpoint(self) -> None:
        self._create()
        response = self.client.post(f"{API}/configs/home/versions", headers=self.headers)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["versionNumber"], 2)

    def test_export_then_import(self) -> None:
        self._create(data=_doc("exported"))
        export = self.client.get(f"{API}/configs/home/export", headers=self.headers)
        self.assertEqual(export.status_code, 200)
        disposition = export.headers["Content-Disposition"]
        self.assertTrue(disposition.startswith('attachment; filename="config-export-alice-home-'))
        envelope = export.json()
        self.assertEqual(envelope["configId"], "home")

        envelope["configId"] = "copy"
        imported = self.client.post(f"{API}/configs/import", json=envelope, headers=self.headers)
        self.assertEqual(imported.status_code, 200, imported.text)
        self.assertEqual(imported.json()["data"]["textSection"]["title"], "exported")
        listing = self.client.get(f"{API}/configs", headers=self.headers).json()
        self.assertEqual(listing["lastConfigId"], "copy")

    def test_import_older_schema(self) -> None:
        data = _doc()
        del data["sectionOrder"]
        envelope = {"configId": "legacy", "schemaVersion": 1, "updatedAt": "2025-01-01T00:00:00Z", "data": data}
        response = self.client.post(f"{API}/configs/import", json=envelope, headers=self.headers)
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["migratedFrom"], 1)
        self.assertEqual(body["schemaVersion"], 2)
        self.assertEqual(body["data"]["sectionOrder"], ["carousel", "textSection", "cta"])

    def test_import_rejects_bad_envelope(self) -> None:
        response = self.client.post(f"{API}/configs/import", json={"data": {}}, headers=self.headers)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_IMPORT_FILE")

    def test_preferences(self) -> None:
        self._create()
        ok = self.client.put(f"{API}/user/preferences", json={"lastConfigId": "home"}, headers=self.headers)
        self.assertEqual(ok.status_code, 200)
        missing = self.client.put(f"{API}/user/preferences", json={"lastConfigId": "nope"}, headers=self.headers)
        self.assertEqual(missing.status_code, 404)

    def test_users_cannot_see_each_others_configs(self) -> None:
        self._create()
        self.client.cookies.clear()
        self.register(username="bob")
        bob = self.bearer(self.create_api_token()["token"])
        response = self.client.get(f"{API}/configs/home", headers=bob)
        self.assertEqual(response.status_code, 404)

    def test_oversized_config_body(self) -> None:
        data = _doc()
        data["carousel"]["images"] = [f"https://cdn.example.com/{'x' * 2040}" for _ in range(50)]
        response = self._create(data=data)
        self.assertEqual(response.status_code, 413)
        self.assertEqual(response.json()["code"], "PAYLOAD_TOO_LARGE")


class TestEditorActions(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.register()

    def _action(self, **fields):
        return self.client.post(f"{API}/editor/actions", data={**fields, "csrf_token": self.csrf_token()})

    def test_save_version_and_restore(self) -> None:
        saved = self._action(intent="saveVersion", configId="default", config=json.dumps(_doc("edited")))
        self.assertEqual(saved.status_code, 200, saved.text)
        self.assertEqual(saved.json()["versionNumber"], 2)
        restored = self._action(intent="restoreVersion", configId="default", loadedVersion="1")
        self.assertEqual(restored.json()["data"], default_config())

    def test_unknown_intent(self) -> None:
        response = self._action(intent="explode")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

    def test_requires_csrf(self) -> None:
        self.csrf_token()
        response = self.client.post(f"{API}/editor/actions", data={"intent": "logout"})
        self.assertEqual(response.status_code, 403)

    def test_logout_clears_cookie(self) -> None:
        response = self._action(intent="logout")
        self.assertTrue(response.json()["loggedOut"])
        self.assertEqual(self._action(intent="logout").status_code, 401)

    def test_bearer_not_accepted(self) -> None:
        token = self.create_api_token()["token"]
        self.client.cookies.clear()
        response = self.client.post(
            f"{API}/editor/actions",
            data={"intent": "logout", "csrf_token": "x"},
            headers=self.bearer(token),
        )
        self.assertEqual(response.status_code, 401)
