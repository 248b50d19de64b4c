"""Pytest configuration for pharmasync tests."""

import pytest

from pharmasync.cache.hot_cache import HotCache
from pharmasync.cache.resolver import CacheTierResolver
from pharmasync.core.config import PharmaSyncConfig
from pharmasync.data.catalog_store import CatalogStore
from pharmasync.data.upstream import UpstreamCatalogClient
from pharmasync.metrics import MetricsCollector
from pharmasync.search.embeddings import EmbeddingClient
from tests.fakes import FakeOpenAI, FakeRedis, UpstreamStub

UPSTREAM_BASE = "http://upstream.test/api"


@pytest.fixture
def config(tmp_path):
    """Config pointing at a throwaway SQLite file, with every delay zeroed."""
    return PharmaSyncConfig(
        database_url=f"sqlite:///{tmp_path / 'pharmasync.db'}",
        enable_redis=False,
        enable_scheduler=False,
        business_api_base=UPSTREAM_BASE,
        page_delay=0,
        embedding_delay=0,
        full_sync_batch_delay=0,
        item_concurrency=2,
        max_page_failures=3,
    )


@pytest.fixture
def store(config):
    return CatalogStore.from_url(config.database_url)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def hot_cache(fake_redis):
    return HotCache(client=fake_redis)


@pytest.fixture
def disabled_cache():
    return HotCache(client=None, enabled=False)


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def embedder(fake_openai):
    return EmbeddingClient(client=fake_openai, delay=0)


@pytest.fixture
def upstream_stub():
    return UpstreamStub()


@pytest.fixture
def upstream(upstream_stub):
    return UpstreamCatalogClient(
        base_url=UPSTREAM_BASE,
        page_delay=0,
        max_page_failures=3,
        transport=upstream_stub.transport(),
    )


@pytest.fixture
def resolver(store, disabled_cache, upstream, metrics):
    return CacheTierResolver(store=store, hot_cache=disabled_cache, upstream=upstream, metrics=metrics)
