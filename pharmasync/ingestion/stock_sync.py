"""
Quick stock sync: one large upstream page -> product_inventory + hot cache.

Only products already in the catalog are touched; unknown ids are skipped
so inventory never gets ahead of the catalog.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

from pharmasync.cache.resolver import CacheTierResolver
from pharmasync.data.catalog_store import CatalogStore
from pharmasync.data.schemas import SOURCE_DATABASE, InventoryView, SyncStats
from pharmasync.data.upstream import UpstreamCatalogClient
from pharmasync.errors import SyncError
from pharmasync.ingestion.transform import transform_inventory
from pharmasync.metrics import MetricsCollector
from pharmasync.utils.logger import get_logger

logger = get_logger("ingestion.stock_sync")

SKIPPED = "skipped"
UPDATED = "updated"
CACHED = "cached"


class StockSynchronizer:
    """Refreshes stock and price for known products."""

    def __init__(
        self,
        store: CatalogStore,
        upstream: UpstreamCatalogClient,
        resolver: CacheTierResolver,
        small_batch: int = 20,
        large_batch: int = 50,
        large_threshold: int = 1000,
        item_concurrency: int = 10,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.upstream = upstream
        self.resolver = resolver
        self.small_batch = small_batch
        self.large_batch = large_batch
        self.large_threshold = large_threshold
        self.item_concurrency = item_concurrency
        self.metrics = metrics

    def batch_size_for(self, total: int) -> int:
        return self.large_batch if total > self.large_threshold else self.small_batch

    async def _fetch_snapshot(self, max_products: int) -> List[Dict[str, Any]]:
        envelope = await self.upstream.fetch_page(page=0, size=max_products, with_dates=True)
        logger.info(f"Stock snapshot: {len(envelope.items)} items (format {envelope.format})")
        if envelope.items:
            return envelope.items

        logger.warning("No items with date filters, retrying without them")
        envelope = await self.upstream.fetch_page(page=0, size=max_products, with_dates=False)
        logger.info(f"Stock snapshot without dates: {len(envelope.items)} items")
        return envelope.items

    async def quick_sync(self, max_products: int = 7000) -> SyncStats:
        """
        Refresh inventory for up to max_products items.

        Returns:
            SyncStats (processed, updated, cached, skipped, failed)

        Raises:
            SyncError: the snapshot could not be fetched or the run broke
        """
        started = time.monotonic()
        stats = SyncStats()
        log_id = await asyncio.to_thread(self.store.create_sync_log, "stock")
        logger.info(f"Stock sync #{log_id} started (max_products={max_products})")

        try:
            items = await self._fetch_snapshot(max_products)

            seen = set()
            unique = []
            for item in items:
                product_id = item.get("PRODUCT_ID")
                if product_id is None or str(product_id) in seen:
                    continue
                seen.add(str(product_id))
                unique.append(item)

            batch_size = self.batch_size_for(len(unique))
            for start in range(0, len(unique), batch_size):
                batch = unique[start:start + batch_size]
                try:
                    await self._process_batch(batch, stats)
                except Exception as e:
                    logger.error(f"Stock batch at offset {start} failed: {e}")
                    stats.failed += len(batch)

            stats.duration_ms = int((time.monotonic() - started) * 1000)
            await asyncio.to_thread(self.store.complete_sync_log, log_id, stats, "completed")
            logger.info(
                f"Stock sync #{log_id} completed: processed={stats.processed} updated={stats.updated} "
                f"cached={stats.cached} skipped={stats.skipped} failed={stats.failed} in {stats.duration_ms}ms"
            )
            if self.metrics:
                self.metrics.record_latency("stock_sync", stats.duration_ms)
            return stats

        except asyncio.CancelledError:
            stats.duration_ms = int((time.monotonic() - started) * 1000)
            logger.warning(f"Stock sync #{log_id} cancelled after {stats.processed} items")
            await self._mark_failed(log_id, stats, "cancelled")
            raise

        except Exception as e:
            stats.duration_ms = int((time.monotonic() - started) * 1000)
            logger.error(f"Stock sync #{log_id} failed: {e}")
            if self.metrics:
                self.metrics.record_error("stock_sync")
            await self._mark_failed(log_id, stats, str(e))
            raise SyncError(f"Stock sync failed: {e}", sync_type="stock") from e

    async def _mark_failed(self, log_id: int, stats: SyncStats, message: str) -> None:
        try:
            await asyncio.to_thread(self.store.complete_sync_log, log_id, stats, "failed", message)
        except Exception as log_error:
            logger.error(f"Could not finalize sync_log #{log_id}: {log_error}")

    async def _process_batch(self, batch: List[Dict[str, Any]], stats: SyncStats) -> None:
        semaphore = asyncio.Semaphore(self.item_concurrency)

        async def bounded(item):
            async with semaphore:
                return await self._process_item(item)

        results = await asyncio.gather(*(bounded(item) for item in batch), return_exceptions=True)
        for item, outcome in zip(batch, results):
            if isinstance(outcome, Exception):
                logger.error(f"Stock update failed for {item.get('PRODUCT_ID')}: {outcome}")
                stats.failed += 1
            elif outcome == SKIPPED:
                stats.skipped += 1
            else:
                stats.processed += 1
                stats.updated += 1
                if outcome == CACHED:
                    stats.cached += 1

    async def _process_item(self, item: Dict[str, Any]) -> str:
        product_id = str(item["PRODUCT_ID"])
        if not await asyncio.to_thread(self.store.product_exists, product_id):
            logger.debug(f"Skipping {product_id}: not in catalog")
            return SKIPPED

        await asyncio.to_thread(self.store.upsert_inventory, transform_inventory(item))

        view = InventoryView.from_upstream(item, data_source=SOURCE_DATABASE)
        view.product_id = product_id
        tier = await self.resolver.set_inventory(product_id, view)
        return CACHED if tier else UPDATED
