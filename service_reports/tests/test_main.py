"""
Unit tests for Reports main service.
"""

import base64
import hashlib
import hmac
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from shared.config import ReportsConfig
from shared.errors import UpstreamError
from service_reports.app.cache.snapshot_store import RedisSnapshotBackend, SnapshotStore
from service_reports.app.main import ReportsService


NOW = 1_700_000_000_123
DAY_MS = 24 * 60 * 60 * 1000
WEBHOOK_BODY = b'{"triggerType":"collection_item_changed","payload":{"id":"item-7"}}'


def make_items(count):
    return [
        {
            "id": f"item-{i}",
            "lastPublished": f"2024-01-{(i % 28) + 1:02d}T00:00:00.000Z",
            "fieldData": {"name": f"Aktualita {i}", "slug": f"aktualita-{i}"},
        }
        for i in range(count)
    ]


def sign(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class Clock:
    """Manually advanced epoch-millis clock."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class TestReportsService:
    """Test cases for ReportsService."""

    @pytest.fixture
    def config(self):
        return ReportsConfig(
            webhook_secrets="old-secret, new-secret",
            redis_url=None,
            upstream_api_token="token",
            _env_file=None
        )

    @pytest.fixture
    def clock(self):
        return Clock(NOW)

    @pytest.fixture
    def fetcher(self):
        fetcher = MagicMock()
        fetcher.fetch_all = AsyncMock(return_value=make_items(12))
        return fetcher

    @pytest.fixture
    def service(self, config, fetcher, clock):
        return ReportsService(config=config, fetcher=fetcher, clock=clock)

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app)

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "reports"
        assert "webhook_refresh" in data["capabilities"]

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"] == {"cache_layer": "memory", "redis": "not_configured"}

    def test_metrics_endpoint(self, client):
        client.get("/reports")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "cache_decisions_total" in response.text

    def test_options_preflight(self, client):
        response = client.options("/reports")
        assert response.status_code == 204
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == "*"
        assert "X-Webflow-Signature" in response.headers["access-control-allow-headers"]

    def test_first_request_fetches_then_serves_from_cache(self, client, fetcher, clock):
        first = client.get("/reports", params={"limit": "5"})
        clock.now += 1000
        second = client.get("/reports", params={"limit": "5"})

        assert first.status_code == 200
        assert second.status_code == 200
        first_meta, second_meta = first.json()["meta"], second.json()["meta"]

        assert first_meta["fromCache"] is False
        assert second_meta["fromCache"] is True
        assert first_meta["cachedAt"] == second_meta["cachedAt"] == "2023-11-14T22:13:20.123Z"
        assert len(first.json()["items"]) == 5
        assert first_meta["total"] == 12
        assert first_meta["hasMore"] is True
        fetcher.fetch_all.assert_awaited_once()

    def test_response_meta_and_headers(self, client):
        response = client.get("/reports", params={"limit": "500", "offset": "abc", "filter": "aktuality"})

        meta = response.json()["meta"]
        assert meta == {
            "limit": 100,
            "offset": 0,
            "total": 12,
            "hasMore": False,
            "filter": "aktuality",
            "excludeSlug": "none",
            "cachedAt": "2023-11-14T22:13:20.123Z",
            "fromCache": False,
            "cacheLayer": "memory",
            "webhook": "none",
        }
        assert response.headers["cache-control"] == "public, max-age=60, stale-while-revalidate=300"
        assert response.headers["access-control-allow-origin"] == "*"

    def test_unknown_filter_is_echoed_and_not_applied(self, client):
        response = client.get("/reports", params={"filter": "Archiv"})

        meta = response.json()["meta"]
        assert meta["filter"] == "archiv"
        assert meta["total"] == 12

    def test_items_sorted_newest_first_by_default(self, client):
        items = client.get("/reports", params={"limit": "3"}).json()["items"]
        assert [item["lastPublished"][:10] for item in items] == ["2024-01-12", "2024-01-11", "2024-01-10"]

    def test_expired_cache_refreshes(self, client, fetcher, clock):
        client.get("/reports")
        clock.now += DAY_MS

        response = client.get("/reports")

        assert response.json()["meta"]["fromCache"] is False
        assert fetcher.fetch_all.await_count == 2

    def test_refresh_query_forces_fetch(self, client, fetcher):
        client.get("/reports")

        response = client.get("/reports", params={"refresh": "true"})

        assert response.json()["meta"]["fromCache"] is False
        assert fetcher.fetch_all.await_count == 2

    def test_verified_webhook_refreshes_fresh_cache(self, client, fetcher):
        client.get("/reports")

        response = client.post(
            "/reports",
            content=WEBHOOK_BODY,
            headers={"X-Webflow-Signature": sign(WEBHOOK_BODY, "new-secret"), "Content-Type": "application/json"}
        )

        assert response.status_code == 200
        meta = response.json()["meta"]
        assert meta["webhook"] == "verified"
        assert meta["fromCache"] is False
        assert fetcher.fetch_all.await_count == 2
        assert response.headers["cache-control"] == "no-store"

    def test_webhook_signed_with_previous_secret(self, client, fetcher):
        client.get("/reports")

        response = client.post(
            "/reports",
            content=WEBHOOK_BODY,
            headers={"X-Webflow-Signature": sign(WEBHOOK_BODY, "old-secret")}
        )

        assert response.json()["meta"]["webhook"] == "verified"

    def test_invalid_signature_is_a_plain_request(self, client, fetcher):
        client.get("/reports")

        response = client.post(
            "/reports",
            content=WEBHOOK_BODY,
            headers={"X-Webflow-Signature": sign(WEBHOOK_BODY, "attacker")}
        )

        meta = response.json()["meta"]
        assert response.status_code == 200
        assert meta["webhook"] == "none"
        assert meta["fromCache"] is True
        fetcher.fetch_all.assert_awaited_once()

    def test_post_without_signature(self, client, fetcher):
        client.get("/reports")

        response = client.post("/reports", content=WEBHOOK_BODY)

        assert response.json()["meta"]["webhook"] == "none"
        fetcher.fetch_all.assert_awaited_once()

    def test_base64_transport_body_is_decoded_before_verification(self, client, fetcher):
        client.get("/reports")

        response = client.post(
            "/reports",
            content=base64.b64encode(WEBHOOK_BODY),
            headers={
                "X-Webflow-Signature": sign(WEBHOOK_BODY, "new-secret"),
                "Content-Transfer-Encoding": "base64",
            }
        )

        assert response.json()["meta"]["webhook"] == "verified"

    def test_post_reflects_query_parameters(self, client):
        response = client.post(
            "/reports?limit=2&offset=1&excludeSlug=aktualita-3",
            content=WEBHOOK_BODY,
            headers={"X-Webflow-Signature": sign(WEBHOOK_BODY, "new-secret")}
        )

        meta = response.json()["meta"]
        assert meta["limit"] == 2
        assert meta["offset"] == 1
        assert meta["excludeSlug"] == "aktualita-3"
        assert meta["total"] == 11

    def test_webhook_disabled_without_secrets(self, fetcher, clock):
        config = ReportsConfig(webhook_secrets="", redis_url=None, _env_file=None)
        client = TestClient(ReportsService(config=config, fetcher=fetcher, clock=clock).app)
        client.get("/reports")

        response = client.post("/reports", content=WEBHOOK_BODY, headers={"X-Webflow-Signature": sign(WEBHOOK_BODY, "")})

        assert response.json()["meta"]["webhook"] == "none"
        fetcher.fetch_all.assert_awaited_once()

    def test_upstream_error_returns_500_and_keeps_stale_snapshot(self, client, service, fetcher, clock):
        client.get("/reports")
        fetcher.fetch_all.side_effect = UpstreamError(503, "Service Unavailable")
        clock.now += DAY_MS + 1

        response = client.get("/reports")

        assert response.status_code == 500
        assert response.json() == {"error": "Upstream API responded 503: Service Unavailable"}
        assert response.headers["cache-control"] == "no-store"
        assert response.headers["access-control-allow-origin"] == "*"
        assert service.store.fallback._record["lastFetch"] == NOW

    def test_unexpected_error_returns_500_envelope(self, client, fetcher):
        fetcher.fetch_all.side_effect = RuntimeError("boom")

        response = client.get("/reports")

        assert response.status_code == 500
        assert response.json() == {"error": "boom"}
        assert response.headers["cache-control"] == "no-store"

    def test_durable_write_failure_reports_memory_layer(self, config, fetcher, clock):
        redis_client = AsyncMock()
        redis_client.get.return_value = None
        redis_client.set.side_effect = ConnectionError("refused")
        store = SnapshotStore(durable=RedisSnapshotBackend("redis://localhost:6379/0", client=redis_client))
        client = TestClient(ReportsService(config=config, store=store, fetcher=fetcher, clock=clock).app)

        response = client.get("/reports")

        assert response.status_code == 200
        meta = response.json()["meta"]
        assert meta["cacheLayer"] == "memory"
        assert meta["fromCache"] is False
        assert len(response.json()["items"]) == 12

        clock.now += 1000
        again = client.get("/reports")

        assert again.json()["meta"]["fromCache"] is True
        assert again.json()["meta"]["cacheLayer"] == "memory"
        fetcher.fetch_all.assert_awaited_once()

    def test_durable_layer_reported_when_redis_healthy(self, config, fetcher, clock):
        redis_client = AsyncMock()
        redis_client.get.return_value = None
        redis_client.set.return_value = True
        store = SnapshotStore(durable=RedisSnapshotBackend("redis://localhost:6379/0", client=redis_client))
        client = TestClient(ReportsService(config=config, store=store, fetcher=fetcher, clock=clock).app)

        response = client.get("/reports")

        assert response.json()["meta"]["cacheLayer"] == "durable"
        assert client.get("/health").json()["dependencies"]["redis"] == "ok"


class TestSampleScenarios:
    """End-to-end scenarios over a realistic collection."""

    @pytest.fixture
    def collection(self):
        items = make_items(147)
        items.insert(5, {"id": "r2021", "lastPublished": "2022-02-01T00:00:00.000Z",
                         "fieldData": {"name": "Výroční zpráva 2021", "slug": "vyrocni-zprava-2021"}})
        items.insert(60, {"id": "r2023", "lastPublished": "2024-02-01T00:00:00.000Z",
                          "fieldData": {"name": "Výroční zpráva 2023", "slug": "vyrocni-zprava-2023",
                                        "datum-a-cas-publikovani": "2024-06-30T12:00:00.000Z"}})
        items.insert(120, {"id": "r2022", "lastPublished": "2023-02-01T00:00:00.000Z",
                           "fieldData": {"name": "Výroční zpráva 2022", "slug": "vyrocni-zprava-2022"}})
        return items

    @pytest.fixture
    def client(self, collection):
        fetcher = MagicMock()
        fetcher.fetch_all = AsyncMock(return_value=collection)
        config = ReportsConfig(redis_url=None, _env_file=None)
        return TestClient(ReportsService(config=config, fetcher=fetcher, clock=Clock(NOW)).app)

    def test_reports_filter(self, client, collection):
        response = client.get("/reports", params={"filter": "reports", "limit": "10", "offset": "0"})

        data = response.json()
        assert len(collection) == 150
        assert [item["id"] for item in data["items"]] == ["r2023", "r2022", "r2021"]
        assert data["meta"]["total"] == 3
        assert data["meta"]["hasMore"] is False
        assert data["meta"]["filter"] == "reports"

    def test_aktuality_exclude_and_paginate(self, client):
        response = client.get("/reports", params={
            "filter": "aktuality", "excludeSlug": "aktualita-0", "limit": "50", "offset": "100"
        })

        meta = response.json()["meta"]
        assert meta["total"] == 146
        assert len(response.json()["items"]) == 46
        assert meta["hasMore"] is False
