import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from token_relay.api.forge import get_orchestrator
from token_relay.core import database
from token_relay.main import app, build_token_store
from token_relay.services.token_store import InMemoryTokenStore, SqlTokenStore


def _exploding_orchestrator():
    raise RuntimeError("orchestrator unavailable")


class TestGlobalExceptionHandler(unittest.TestCase):
    def setUp(self):
        app.dependency_overrides[get_orchestrator] = _exploding_orchestrator
        self.client = TestClient(app, raise_server_exceptions=False)

    def tearDown(self):
        app.dependency_overrides.clear()

    def test_ingest_failure_still_200(self):
        response = self.client.get(
            "/forge-token", headers={"x-forge-oauth-system": "tok123"}
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["X-Degraded-Status"], "true")
        self.assertEqual(response.json()["ok"], False)

    def test_relay_failure_still_200(self):
        response = self.client.post(
            "/forge-insert", json={"payloadId": "p1", "payloadData": "d1"}
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["X-Degraded-Status"], "true")
        self.assertIn("error", response.json())


class TestBuildTokenStore(unittest.TestCase):
    def setUp(self):
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

    def tearDown(self):
        self.loop.close()

    def test_without_database_uses_memory(self):
        with patch.object(database, "async_session_maker", None):
            store = self.loop.run_until_complete(build_token_store())

        self.assertIsInstance(store, InMemoryTokenStore)
        self.assertEqual(store.kind, "memory")

    def test_with_database_creates_schema(self):
        init_models = AsyncMock()
        with patch.object(database, "async_session_maker", MagicMock()), patch.object(
            database, "init_models", init_models
        ), patch("token_relay.main.DB_AUTO_CREATE", True):
            store = self.loop.run_until_complete(build_token_store())

        self.assertIsInstance(store, SqlTokenStore)
        init_models.assert_awaited_once()

    def test_schema_failure_still_returns_sql_store(self):
        init_models = AsyncMock(side_effect=OSError("connection refused"))
        with patch.object(database, "async_session_maker", MagicMock()), patch.object(
            database, "init_models", init_models
        ), patch("token_relay.main.DB_AUTO_CREATE", True):
            store = self.loop.run_until_complete(build_token_store())

        self.assertIsInstance(store, SqlTokenStore)

    def test_auto_create_disabled_skips_schema(self):
        init_models = AsyncMock()
        with patch.object(database, "async_session_maker", MagicMock()), patch.object(
            database, "init_models", init_models
        ), patch("token_relay.main.DB_AUTO_CREATE", False):
            store = self.loop.run_until_complete(build_token_store())

        self.assertIsInstance(store, SqlTokenStore)
        init_models.assert_not_awaited()


if __name__ == "__main__":
    unittest.main()
