import asyncio
import unittest

import httpx
import jwt
from fastapi.testclient import TestClient

from token_relay.api.forge import get_orchestrator
from token_relay.main import app
from token_relay.services.ingestion_service import IngestionOrchestrator
from token_relay.services.relay_dispatcher import RelayDispatcher
from token_relay.services.token_store import InMemoryTokenStore

TARGET_URL = "https://example.invalid/x1/webtrigger"


class TestForgeEndpoints(unittest.TestCase):
    def setUp(self):
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        self.remote_status = 200

        def handler(request: httpx.Request):
            if self.remote_status is None:
                raise httpx.ConnectError("All connection attempts failed", request=request)
            return httpx.Response(self.remote_status, json={"echo": request.headers["x-forge-oauth-system"]})

        self.store = InMemoryTokenStore()
        dispatcher = RelayDispatcher(
            request_url=TARGET_URL,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        orchestrator = IngestionOrchestrator(self.store, dispatcher)

        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()
        self.loop.close()

    def test_ingest_persists_token_and_claims(self):
        token = jwt.encode(
            {
                "app": {
                    "installationId": "I1",
                    "apiBaseUrl": "https://x",
                    "id": "A1",
                    "environment": {"type": "PRODUCTION", "id": "E1"},
                }
            },
            "platform-signing-key-not-known-to-the-relay",
            algorithm="HS256",
        )

        response = self.client.get(
            "/forge-token",
            headers={
                "Authorization": f"Bearer {token}",
                "x-forge-oauth-system": "tok123",
            },
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": "Token valid"})
        self.assertIn("X-Request-ID", response.headers)

        latest = self.loop.run_until_complete(self.store.retrieve_latest())
        self.assertEqual(latest.token_value, "tok123")
        self.assertEqual(latest.installation_id, "I1")
        self.assertEqual(latest.environment_id, "E1")

    def test_ingest_without_authorization_still_acknowledged(self):
        response = self.client.get(
            "/forge-token", headers={"x-forge-oauth-system": "tok456"}
        )

        self.assertEqual(response.status_code, 200)
        latest = self.loop.run_until_complete(self.store.retrieve_latest())
        self.assertEqual(latest.token_value, "tok456")
        self.assertEqual(latest.app_id, "")

    def test_relay_uses_ingested_token(self):
        self.client.get("/forge-token", headers={"x-forge-oauth-system": "tok123"})

        response = self.client.post(
            "/forge-insert", json={"payloadId": "p1", "payloadData": "d1"}
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {
                "payloadId": "p1",
                "payloadData": "d1",
                "requestUrl": TARGET_URL,
                "error": {},
                "rawResponseData": {"echo": "tok123"},
            },
        )

    def test_relay_rejected_by_remote_still_200(self):
        self.remote_status = 401

        response = self.client.post(
            "/forge-insert", json={"payloadId": "p1", "payloadData": "d1"}
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["error"]["status"], 401)
        self.assertEqual(body["error"]["data"], {"echo": ""})
        self.assertIsNone(body["rawResponseData"])

    def test_relay_unreachable_remote_still_200(self):
        self.remote_status = None

        response = self.client.post(
            "/forge-insert", json={"payloadId": "p1", "payloadData": "d1"}
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["error"], {"message": "All connection attempts failed"})
        self.assertEqual(body["payloadId"], "p1")

    def test_relay_with_invalid_json_body(self):
        response = self.client.post(
            "/forge-insert",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["payloadId"], "")
        self.assertEqual(response.json()["payloadData"], "")


class TestMonitoringEndpoints(unittest.TestCase):
    def test_root_and_health(self):
        with TestClient(app) as client:
            root = client.get("/")
            self.assertEqual(root.status_code, 200)
            self.assertEqual(root.text, "Hello World!")

            health = client.get("/health")
            self.assertEqual(health.status_code, 200)
            self.assertEqual(health.json()["status"], "ok")
            self.assertIn(health.json()["store"], ("memory", "postgres"))

    def test_responses_tagged_with_request_id_and_store(self):
        with TestClient(app) as client:
            first = client.get("/health")
            second = client.get("/health")

        self.assertEqual(first.headers["X-Token-Store"], first.json()["store"])
        self.assertNotEqual(first.headers["X-Request-ID"], second.headers["X-Request-ID"])


if __name__ == "__main__":
    unittest.main()
