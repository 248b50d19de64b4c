"""
Service wiring: build every collaborator from one PharmaSyncConfig.

Nothing in the package holds module-level state; the API and CLI each call
build_services() once and pass the container around.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
from openai import AsyncOpenAI

from pharmasync.cache.hot_cache import HotCache
from pharmasync.cache.resolver import CacheTierResolver
from pharmasync.core.config import PharmaSyncConfig
from pharmasync.data.catalog_store import CatalogStore
from pharmasync.data.upstream import UpstreamCatalogClient
from pharmasync.ingestion.catalog_sync import CatalogSynchronizer
from pharmasync.ingestion.stock_sync import StockSynchronizer
from pharmasync.metrics import MetricsCollector
from pharmasync.scheduler.sync_scheduler import SyncScheduler
from pharmasync.search.embeddings import EmbeddingClient
from pharmasync.search.engine import ProductSearchEngine
from pharmasync.utils.logger import get_logger, set_log_level

logger = get_logger("services")


@dataclass
class Services:
    config: PharmaSyncConfig
    store: CatalogStore
    hot_cache: HotCache
    upstream: UpstreamCatalogClient
    resolver: CacheTierResolver
    embedder: EmbeddingClient
    catalog_sync: CatalogSynchronizer
    stock_sync: StockSynchronizer
    search: ProductSearchEngine
    scheduler: SyncScheduler
    metrics: MetricsCollector


def build_services(
    config: PharmaSyncConfig,
    store: Optional[CatalogStore] = None,
    hot_cache: Optional[HotCache] = None,
    openai_client: Optional[AsyncOpenAI] = None,
    upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Services:
    """
    Construct the full object graph.

    The optional arguments replace the collaborators that talk to external
    systems (tests pass a SQLite store, a fake Redis and mock transports).
    """
    set_log_level(config.log_level)
    metrics = MetricsCollector()

    store = store or CatalogStore.from_url(config.database_url, config.embedding_dimensions)
    hot_cache = hot_cache if hot_cache is not None else HotCache.from_config(config)
    if hot_cache.available and not hot_cache.ping():
        logger.warning("Redis configured but not reachable; reads will fall through to the database")

    upstream = UpstreamCatalogClient.from_config(config, transport=upstream_transport)
    resolver = CacheTierResolver(
        store=store,
        hot_cache=hot_cache,
        upstream=upstream,
        metrics=metrics,
        shadow_ttl=config.ttl_shadow_cache,
    )
    embedder = EmbeddingClient(
        client=openai_client,
        model=config.embedding_model,
        hot_cache=hot_cache,
        max_input_chars=config.embedding_input_chars,
        delay=config.embedding_delay,
    )
    catalog_sync = CatalogSynchronizer(
        store=store,
        upstream=upstream,
        embedder=embedder,
        item_concurrency=config.item_concurrency,
        batch_delay=config.full_sync_batch_delay,
        metrics=metrics,
    )
    stock_sync = StockSynchronizer(
        store=store,
        upstream=upstream,
        resolver=resolver,
        small_batch=config.stock_batch_small,
        large_batch=config.stock_batch_large,
        large_threshold=config.stock_batch_threshold,
        item_concurrency=config.item_concurrency,
        metrics=metrics,
    )
    search = ProductSearchEngine(
        store=store,
        resolver=resolver,
        embedder=embedder,
        prefilter_limit=config.prefilter_limit,
        default_threshold=config.search_threshold,
        metrics=metrics,
    )
    scheduler = SyncScheduler(
        store=store,
        catalog_sync=catalog_sync,
        stock_sync=stock_sync,
        resolver=resolver,
        config=config,
    )
    return Services(
        config=config,
        store=store,
        hot_cache=hot_cache,
        upstream=upstream,
        resolver=resolver,
        embedder=embedder,
        catalog_sync=catalog_sync,
        stock_sync=stock_sync,
        search=search,
        scheduler=scheduler,
        metrics=metrics,
    )
