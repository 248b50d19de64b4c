"""
Full catalog sync: upstream pages -> products + product_inventory.

Each run writes a sync_log row that is finalized as completed or failed.
Per-item problems (embedding errors, store errors) are counted and the run
continues; anything else fails the run and is re-raised as SyncError.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

from pharmasync.data.catalog_store import CatalogStore
from pharmasync.data.schemas import SyncStats
from pharmasync.data.upstream import UpstreamCatalogClient
from pharmasync.errors import EmbeddingError, SyncError
from pharmasync.ingestion.transform import transform_catalog, transform_inventory
from pharmasync.metrics import MetricsCollector
from pharmasync.search.embeddings import EmbeddingClient
from pharmasync.utils.logger import get_logger

logger = get_logger("ingestion.catalog_sync")

CREATED = "created"
UPDATED = "updated"


class CatalogSynchronizer:
    """Pulls the whole upstream catalog and upserts it into the store."""

    def __init__(
        self,
        store: CatalogStore,
        upstream: UpstreamCatalogClient,
        embedder: Optional[EmbeddingClient] = None,
        item_concurrency: int = 10,
        batch_delay: float = 0.1,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.upstream = upstream
        self.embedder = embedder
        self.item_concurrency = item_concurrency
        self.batch_delay = batch_delay
        self.metrics = metrics

    async def full_sync(
        self,
        batch_size: int = 50,
        max_products: Optional[int] = None,
        generate_embeddings: bool = True,
    ) -> SyncStats:
        """
        Run a full catalog sync.

        Args:
            batch_size: Upstream page size and upsert batch size
            max_products: Stop after this many unique products (None = all)
            generate_embeddings: Embed searchable_text for each product

        Returns:
            SyncStats with processed/created/updated/failed counts

        Raises:
            SyncError: the run could not complete (sync_log marked failed)
        """
        started = time.monotonic()
        stats = SyncStats()
        log_id = await asyncio.to_thread(self.store.create_sync_log, "full")
        logger.info(
            f"Full sync #{log_id} started (batch_size={batch_size}, "
            f"max_products={max_products}, embeddings={generate_embeddings})"
        )

        try:
            fetched = await self.upstream.fetch_all_products(page_size=batch_size, max_products=max_products)
            stats.pages_failed = fetched.pages_failed
            products = fetched.items
            logger.info(f"Fetched {len(products)} unique products")

            for start in range(0, len(products), batch_size):
                batch = products[start:start + batch_size]
                try:
                    await self._process_batch(batch, stats, generate_embeddings)
                except Exception as e:
                    logger.error(f"Batch at offset {start} failed: {e}")
                    stats.failed += len(batch)

                if start + batch_size < len(products):
                    await asyncio.sleep(self.batch_delay)

            stats.duration_ms = int((time.monotonic() - started) * 1000)
            await asyncio.to_thread(self.store.complete_sync_log, log_id, stats, "completed")
            logger.info(
                f"Full sync #{log_id} completed: processed={stats.processed} created={stats.created} "
                f"updated={stats.updated} failed={stats.failed} in {stats.duration_ms}ms"
            )
            if self.metrics:
                self.metrics.record_latency("full_sync", stats.duration_ms)
            return stats

        except asyncio.CancelledError:
            stats.duration_ms = int((time.monotonic() - started) * 1000)
            logger.warning(f"Full sync #{log_id} cancelled after {stats.processed} products")
            await self._mark_failed(log_id, stats, "cancelled")
            raise

        except Exception as e:
            stats.duration_ms = int((time.monotonic() - started) * 1000)
            logger.error(f"Full sync #{log_id} failed: {e}")
            if self.metrics:
                self.metrics.record_error("full_sync")
            await self._mark_failed(log_id, stats, str(e))
            raise SyncError(f"Full sync failed: {e}", sync_type="full") from e

    async def _mark_failed(self, log_id: int, stats: SyncStats, message: str) -> None:
        try:
            await asyncio.to_thread(self.store.complete_sync_log, log_id, stats, "failed", message)
        except Exception as log_error:
            logger.error(f"Could not finalize sync_log #{log_id}: {log_error}")

    async def _process_batch(self, batch: List[Dict[str, Any]], stats: SyncStats,
                             generate_embeddings: bool) -> None:
        semaphore = asyncio.Semaphore(self.item_concurrency)

        async def bounded(item):
            async with semaphore:
                return await self._process_item(item, generate_embeddings)

        results = await asyncio.gather(*(bounded(item) for item in batch), return_exceptions=True)
        for item, outcome in zip(batch, results):
            if isinstance(outcome, Exception):
                logger.error(f"Failed to process {item.get('PRODUCT_ID')}: {outcome}")
                stats.failed += 1
                continue
            stats.processed += 1
            if outcome == CREATED:
                stats.created += 1
            else:
                stats.updated += 1

    async def _process_item(self, item: Dict[str, Any], generate_embeddings: bool) -> str:
        data = transform_catalog(item)

        # Leave stored embeddings alone when not regenerating
        if generate_embeddings and self.embedder is not None:
            data["embedding"] = await self._embed(data["id"], data["searchable_text"])

        created = await asyncio.to_thread(self.store.upsert_product, data)
        await asyncio.to_thread(self.store.upsert_inventory, transform_inventory(item))
        return CREATED if created else UPDATED

    async def _embed(self, product_id: str, text: str) -> Optional[List[float]]:
        if not text:
            return None
        try:
            return await self.embedder.embed_document(text)
        except EmbeddingError as e:
            logger.warning(f"Embedding failed for {product_id}: {e}")
            return None

    async def backfill_embeddings(self, limit: Optional[int] = None) -> Dict[str, int]:
        """Embed catalog rows whose embedding is still NULL."""
        if self.embedder is None:
            raise SyncError("No embedding client configured", sync_type="backfill")

        pending = await asyncio.to_thread(self.store.products_missing_embeddings, limit or 100000)
        result = {"candidates": len(pending), "embedded": 0, "failed": 0}
        logger.info(f"Backfilling embeddings for {len(pending)} products")

        for product_id, text in pending:
            embedding = await self._embed(product_id, text)
            if embedding is None:
                result["failed"] += 1
                continue
            try:
                await asyncio.to_thread(self.store.set_embedding, product_id, embedding)
                result["embedded"] += 1
            except Exception as e:
                logger.error(f"Could not store embedding for {product_id}: {e}")
                result["failed"] += 1

        logger.info(f"Backfill done: {result['embedded']} embedded, {result['failed']} failed")
        return result
