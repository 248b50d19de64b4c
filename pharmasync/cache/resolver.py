"""
Cache-tier resolver: hot cache -> shadow cache -> inventory table.

Reads walk the tiers in order and tag the result with the tier that
answered. Writes go to Redis, or to the durable shadow table when Redis is
unavailable. Neither path raises for tier failures.
"""

import asyncio
from typing import Any, Dict, Iterable, Optional

from pharmasync.cache.hot_cache import HotCache
from pharmasync.data.catalog_store import CatalogStore
from pharmasync.data.schemas import (
    SOURCE_REAL_TIME,
    SOURCE_REDIS,
    SOURCE_SHADOW,
    InventoryView,
)
from pharmasync.data.upstream import UpstreamCatalogClient
from pharmasync.metrics import MetricsCollector
from pharmasync.utils.logger import get_logger

logger = get_logger("cache.resolver")


class CacheTierResolver:
    """Resolves and stores inventory views across the cache tiers."""

    def __init__(
        self,
        store: CatalogStore,
        hot_cache: HotCache,
        upstream: Optional[UpstreamCatalogClient] = None,
        metrics: Optional[MetricsCollector] = None,
        shadow_ttl: int = 300,
    ):
        self.store = store
        self.hot_cache = hot_cache
        self.upstream = upstream
        self.metrics = metrics
        self.shadow_ttl = shadow_ttl

    def _hit(self, tier: str) -> None:
        if self.metrics:
            self.metrics.record_cache_hit(tier)

    def _miss(self, tier: str) -> None:
        if self.metrics:
            self.metrics.record_cache_miss(tier)

    async def get_inventory(self, product_id: str, real_time: bool = False) -> Optional[InventoryView]:
        """
        Resolve the inventory view for a product.

        real_time=True asks the upstream first and falls back to the cached
        tiers when the live call fails. Returns None when no tier has data.
        """
        if real_time and self.upstream is not None:
            item = await self.upstream.fetch_product(product_id)
            if item is not None:
                view = InventoryView.from_upstream(item, data_source=SOURCE_REAL_TIME)
                view.product_id = product_id
                self._hit(SOURCE_REAL_TIME)
                await self.set_inventory(product_id, view)
                return view
            self._miss(SOURCE_REAL_TIME)

        payload = await asyncio.to_thread(self.hot_cache.get_inventory, product_id)
        if payload is not None:
            self._hit(SOURCE_REDIS)
            return InventoryView.from_cache_payload(product_id, payload, SOURCE_REDIS)
        self._miss(SOURCE_REDIS)

        try:
            payload = await asyncio.to_thread(self.store.get_shadow_cache, product_id)
        except Exception as e:
            logger.warning(f"Shadow cache read failed for {product_id}: {e}")
            payload = None
        if payload is not None:
            self._hit(SOURCE_SHADOW)
            return InventoryView.from_cache_payload(product_id, payload, SOURCE_SHADOW)
        self._miss(SOURCE_SHADOW)

        try:
            view = await asyncio.to_thread(self.store.get_inventory_row, product_id)
        except Exception as e:
            logger.warning(f"Inventory read failed for {product_id}: {e}")
            view = None
        if view is not None:
            self._hit("database")
        else:
            self._miss("database")
        return view

    async def set_inventory(self, product_id: str, view: InventoryView) -> Optional[str]:
        """
        Write an inventory view to the fastest available tier.

        Returns the tier written ("redis_cache" or "db_cache"), or None if
        both writes failed.
        """
        payload = view.to_cache_payload()
        if await asyncio.to_thread(self.hot_cache.set_inventory, product_id, payload):
            return SOURCE_REDIS

        try:
            await asyncio.to_thread(
                self.store.set_shadow_cache,
                product_id,
                HotCache.inventory_key(product_id),
                payload,
                self.shadow_ttl,
            )
            return SOURCE_SHADOW
        except Exception as e:
            logger.warning(f"Shadow cache write failed for {product_id}: {e}")
            return None

    # Maintenance

    async def warm_up_cache(self, product_ids: Iterable[str]) -> int:
        """Copy inventory rows into the cache tiers. Returns entries written."""
        warmed = 0
        for product_id in product_ids:
            try:
                view = await asyncio.to_thread(self.store.get_inventory_row, product_id)
            except Exception as e:
                logger.warning(f"Warm-up read failed for {product_id}: {e}")
                continue
            if view is not None and await self.set_inventory(product_id, view):
                warmed += 1
        logger.info(f"Cache warm-up wrote {warmed} entries")
        return warmed

    async def clear_all_caches(self) -> Dict[str, Any]:
        """Flush Redis and drop expired shadow rows."""
        flushed = await asyncio.to_thread(self.hot_cache.flush_all)
        try:
            removed = await asyncio.to_thread(self.store.cleanup_expired_cache)
        except Exception as e:
            logger.error(f"Shadow cache cleanup failed: {e}")
            removed = 0
        logger.info(f"Caches cleared (redis flushed={flushed}, shadow rows removed={removed})")
        return {"redis_flushed": flushed, "shadow_rows_removed": removed}

    async def get_cache_stats(self) -> Dict[str, Any]:
        redis_stats = await asyncio.to_thread(self.hot_cache.stats)
        try:
            shadow_rows = await asyncio.to_thread(self.store.count_shadow_cache)
        except Exception as e:
            logger.warning(f"Shadow cache count failed: {e}")
            shadow_rows = None
        stats = {"redis": redis_stats, "shadow_cache_rows": shadow_rows}
        if self.metrics:
            stats["tiers"] = self.metrics.get_cache_summary()
        return stats
