"""End-to-end tests for the user HTTP API."""

from __future__ import annotations

import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from fastapi.testclient import TestClient

from userstore.repository import UserRepository
from userstore.service import create_app
from userstore.storage import JSONFileStore, parse_timestamp

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class UserServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        self.store_path = Path(self._tempdir.name) / "users.json"
        self.repository = UserRepository(JSONFileStore(self.store_path), clock=lambda: NOW)
        self.client = TestClient(create_app(repository=self.repository))

    def tearDown(self) -> None:
        self.client.close()
        self._tempdir.cleanup()

    def _create(self, name: str, email: str) -> dict:
        response = self.client.post("/api/v1/users", json={"display_name": name, "email": email})
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def test_root_reports_server_time(self) -> None:
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertIsNotNone(parse_timestamp(response.text).tzinfo)

    def test_healthcheck(self) -> None:
        response = self.client.get("/healthz")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_create_user_persists_record(self) -> None:
        payload = self._create("Alice", "alice@email.com")

        self.assertEqual(payload["id"], 1)
        self.assertEqual(payload["display_name"], "Alice")
        self.assertEqual(payload["email"], "alice@email.com")
        self.assertEqual(parse_timestamp(payload["created_at"]), NOW)

        document = json.loads(self.store_path.read_text(encoding="utf-8"))
        self.assertEqual(document["increment"], 1)
        self.assertEqual(document["list"]["1"]["display_name"], "Alice")

    def test_create_user_rejects_malformed_body(self) -> None:
        response = self.client.post(
            "/api/v1/users",
            content='{"disp"}',
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 400, response.text)

        missing = self.client.post("/api/v1/users", json={"display_name": "Alice"})
        self.assertEqual(missing.status_code, 400, missing.text)

        self.assertEqual(self.repository.list_users(), [])

    def test_list_users(self) -> None:
        empty = self.client.get("/api/v1/users")
        self.assertEqual(empty.status_code, 200)
        self.assertEqual(empty.json(), [])

        self._create("Alice", "alice@email.com")
        self._create("Bob", "bob@email.com")

        listing = self.client.get("/api/v1/users")
        self.assertEqual(listing.status_code, 200, listing.text)
        self.assertEqual(
            [(item["id"], item["display_name"]) for item in listing.json()],
            [(1, "Alice"), (2, "Bob")],
        )

    def test_get_user(self) -> None:
        self._create("Alice", "alice@email.com")

        found = self.client.get("/api/v1/users/1")
        self.assertEqual(found.status_code, 200, found.text)
        self.assertEqual(found.json()["email"], "alice@email.com")

        missing = self.client.get("/api/v1/users/2")
        self.assertEqual(missing.status_code, 404, missing.text)

        invalid = self.client.get("/api/v1/users/not-a-number")
        self.assertEqual(invalid.status_code, 400, invalid.text)

    def test_patch_updates_only_supplied_fields(self) -> None:
        self._create("Alice", "alice@email.com")

        response = self.client.patch("/api/v1/users/1", json={"display_name": "Alice2"})
        self.assertEqual(response.status_code, 204, response.text)
        self.assertEqual(response.content, b"")

        user = self.client.get("/api/v1/users/1").json()
        self.assertEqual(user["display_name"], "Alice2")
        self.assertEqual(user["email"], "alice@email.com")

        missing = self.client.patch("/api/v1/users/7", json={"email": "x@example.com"})
        self.assertEqual(missing.status_code, 404, missing.text)

    def test_delete_user_does_not_reclaim_identifier(self) -> None:
        self._create("Alice", "alice@email.com")

        deleted = self.client.delete("/api/v1/users/1")
        self.assertEqual(deleted.status_code, 204, deleted.text)

        again = self.client.delete("/api/v1/users/1")
        self.assertEqual(again.status_code, 404, again.text)

        carol = self._create("Carol", "carol@email.com")
        self.assertEqual(carol["id"], 2)

    def test_corrupt_store_maps_to_internal_error(self) -> None:
        self.store_path.write_text("not json", encoding="utf-8")

        for method, path in (
            ("GET", "/api/v1/users"),
            ("GET", "/api/v1/users/1"),
            ("DELETE", "/api/v1/users/1"),
        ):
            response = self.client.request(method, path)
            self.assertEqual(response.status_code, 500, f"{method} {path}: {response.text}")
            self.assertEqual(response.json(), {"detail": "Internal server error"})

        created = self.client.post("/api/v1/users", json={"display_name": "A", "email": "a@b.c"})
        self.assertEqual(created.status_code, 500, created.text)
        self.assertEqual(self.store_path.read_text(encoding="utf-8"), "not json")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
