"""
Black-box tests for the FastAPI surface using TestClient.

Services are built against SQLite, a fake Redis, a fake OpenAI client and
a mocked business API; the scheduler is not started.
"""

import pytest
from fastapi.testclient import TestClient

from pharmasync.api.server import create_app
from pharmasync.cache.hot_cache import HotCache
from pharmasync.services import build_services
from tests.fakes import make_item


@pytest.fixture
def upstream_catalog(upstream_stub):
    upstream_stub.pages = {
        0: [
            make_item("1001", "Парацетамол 500мг №10", generic_name="Paracetamol", available=120),
            make_item("3001", "Аспирин Кардио 100мг", available=0),
        ],
    }
    return upstream_stub


@pytest.fixture
def services(config, store, fake_redis, fake_openai, upstream_catalog):
    return build_services(
        config,
        store=store,
        hot_cache=HotCache(client=fake_redis),
        openai_client=fake_openai,
        upstream_transport=upstream_catalog.transport(),
    )


@pytest.fixture
def client(services):
    app = create_app(services=services, start_scheduler=False)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def synced_client(client):
    response = client.post("/api/admin/sync", json={"type": "full"})
    assert response.status_code == 200
    return client


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["cache"] == "redis"
        assert data["scheduler_running"] is False


class TestSearchEndpoint:
    def test_search(self, synced_client):
        response = synced_client.get("/api/search", params={"q": "парацетамол 500мг"})
        assert response.status_code == 200
        data = response.json()
        assert data["query"] == "парацетамол 500мг"
        assert data["results"][0]["id"] == "1001"
        assert data["results"][0]["stock_status"] == "in_stock"
        assert data["metadata"]["search_method"] == "substring"

    def test_missing_query(self, client):
        assert client.get("/api/search").status_code == 422

    def test_empty_results(self, synced_client):
        data = synced_client.get("/api/search", params={"q": "омепразол"}).json()
        assert data["results"] == []
        assert data["total"] == 0


class TestProductEndpoints:
    def test_get_product(self, synced_client):
        response = synced_client.get("/api/products/1001")
        assert response.status_code == 200
        assert response.json()["available"] == 120

    def test_unknown_product(self, client):
        assert client.get("/api/products/nope").status_code == 404

    def test_stock_check_with_alternatives(self, synced_client):
        data = synced_client.get("/api/products/3001/stock", params={"quantity": 1}).json()
        assert data["available"] is False
        assert data["stock_status"] == "out_of_stock"
        assert data["alternatives"] == []

    def test_stock_check_unknown(self, client):
        assert client.get("/api/products/nope/stock").status_code == 404


class TestAdminEndpoints:
    def test_full_sync(self, client):
        response = client.post("/api/admin/sync", json={"type": "full", "options": {"max_products": 1}})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["result"]["processed"] == 1

    def test_stock_sync_default(self, synced_client, fake_redis):
        response = synced_client.post("/api/admin/sync", json={})
        assert response.status_code == 200
        assert response.json()["result"]["cached"] == 2
        assert "product:1001" in fake_redis.store

    def test_all_sync(self, client):
        response = client.post("/api/admin/sync", json={"type": "all"})
        assert response.status_code == 200
        result = response.json()["result"]
        assert result["catalog"]["created"] == 2
        assert set(result) == {"stock", "catalog"}

    def test_unknown_sync_type(self, client):
        assert client.post("/api/admin/sync", json={"type": "weekly"}).status_code == 400

    def test_sync_status(self, synced_client):
        data = synced_client.get("/api/admin/sync-status").json()
        assert data["success"] is True
        assert data["health"] == "healthy"
        assert data["database"]["products"] == 2
        assert "metrics" in data

    def test_clear_cache(self, synced_client, fake_redis):
        synced_client.post("/api/admin/sync", json={"type": "stock"})
        response = synced_client.post("/api/admin/cache/clear")
        assert response.json()["success"] is True
        assert fake_redis.store == {}

    def test_scheduler_start_stop(self, client):
        started = client.post("/api/admin/scheduler/start").json()
        assert started["status"]["running"] is True
        stopped = client.post("/api/admin/scheduler/stop").json()
        assert stopped["status"]["running"] is False

    def test_invalid_scheduler_action(self, client):
        assert client.post("/api/admin/scheduler/pause").status_code == 400
