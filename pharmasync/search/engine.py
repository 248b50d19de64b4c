"""
Product search engine.

Pipeline:
1. Parse the query for drug + dosage.
2. Pre-filter candidate ids by drug/brand name when a drug was found.
3. Similarity search (pgvector match_products) over the candidates or the
   whole corpus; on failure, substring match on names instead.
4. Join each hit with inventory through the cache tiers.
5. Re-rank with drug, dosage and stock adjustments; truncate.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Tuple

from pharmasync.cache.resolver import CacheTierResolver
from pharmasync.data.catalog_store import CatalogStore
from pharmasync.errors import CatalogStoreError, EmbeddingError
from pharmasync.metrics import MetricsCollector
from pharmasync.search.embeddings import EmbeddingClient
from pharmasync.search.prefilter import pre_filter
from pharmasync.search.query_parser import ParsedQuery, parse_query
from pharmasync.search.ranking import rank_candidates
from pharmasync.search.results import SearchCandidate, SearchResult, stock_status
from pharmasync.utils.logger import get_logger

logger = get_logger("search.engine")

METHOD_VECTOR = "vector"
METHOD_SUBSTRING = "substring"


class ProductSearchEngine:
    """Drug-aware product search over the catalog store."""

    def __init__(
        self,
        store: CatalogStore,
        resolver: CacheTierResolver,
        embedder: EmbeddingClient,
        prefilter_limit: int = 50,
        default_threshold: float = 0.5,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.embedder = embedder
        self.prefilter_limit = prefilter_limit
        self.default_threshold = default_threshold
        self.metrics = metrics

    async def _similarity_hits(self, query: str, threshold: float, count: int,
                               category: Optional[str],
                               candidate_ids: Optional[List[str]]) -> List[Tuple[str, float]]:
        embedding = await self.embedder.embed_query(query)
        return await asyncio.to_thread(
            self.store.match_products, embedding, threshold, count, category, candidate_ids
        )

    async def _substring_hits(self, parsed: ParsedQuery, count: int,
                              category: Optional[str]) -> List[Tuple[str, float]]:
        terms = parsed.search_terms or [parsed.raw.strip()]
        try:
            ids = await asyncio.to_thread(self.store.search_names, terms, count, category)
        except CatalogStoreError as e:
            logger.error(f"Substring fallback failed: {e}")
            return []
        return [(product_id, 0.0) for product_id in ids]

    async def _build_candidates(self, hits: List[Tuple[str, float]],
                                real_time: bool) -> List[SearchCandidate]:
        if not hits:
            return []
        products = await asyncio.to_thread(self.store.get_products, [pid for pid, _ in hits])
        ordered = [(pid, sim) for pid, sim in hits if pid in products]
        inventories = await asyncio.gather(
            *(self.resolver.get_inventory(pid, real_time=real_time) for pid, _ in ordered)
        )
        return [
            SearchCandidate(product=products[pid], inventory=inventory, similarity=sim)
            for (pid, sim), inventory in zip(ordered, inventories)
        ]

    async def search(
        self,
        query: str,
        limit: int = 5,
        threshold: Optional[float] = None,
        category: Optional[str] = None,
        real_time_stock: bool = False,
    ) -> SearchResult:
        """
        Search products.

        Args:
            query: Free-text query ("парацетамол 500мг")
            limit: Maximum products returned
            threshold: Minimum similarity for vector hits
            category: Restrict to one mapped category
            real_time_stock: Ask the upstream for live stock per hit

        Returns:
            SearchResult; an empty product list is a valid outcome.
        """
        started = time.monotonic()
        threshold = self.default_threshold if threshold is None else threshold
        parsed = parse_query(query)

        candidate_ids: Optional[List[str]] = None
        try:
            candidate_ids = await asyncio.to_thread(
                pre_filter, parsed, self.store, self.prefilter_limit, category
            )
        except CatalogStoreError as e:
            logger.warning(f"Pre-filter failed, searching whole corpus: {e}")
        # A known drug with no name matches still searches the whole corpus
        restrict_to = candidate_ids if candidate_ids else None

        method = METHOD_VECTOR
        fallback_reason = None
        try:
            hits = await self._similarity_hits(query, threshold, limit * 2, category, restrict_to)
        except (EmbeddingError, CatalogStoreError) as e:
            logger.warning(f"Similarity search unavailable ({e}); using substring match")
            method = METHOD_SUBSTRING
            fallback_reason = str(e)
            hits = await self._substring_hits(parsed, limit * 2, category)

        candidates = await self._build_candidates(hits, real_time_stock)
        ranked = rank_candidates(candidates, parsed)

        latency_ms = (time.monotonic() - started) * 1000
        if self.metrics:
            self.metrics.record_latency("search", latency_ms)

        metadata: Dict[str, Any] = {
            "query": query,
            "parsed": parsed.to_dict(),
            "search_method": method,
            "prefilter_candidates": None if candidate_ids is None else len(candidate_ids),
            "vector_matches": len(hits) if method == METHOD_VECTOR else 0,
            "threshold": threshold,
            "category": category,
            "real_time_checked": real_time_stock,
            "latency_ms": round(latency_ms, 2),
        }
        if fallback_reason:
            metadata["fallback_reason"] = fallback_reason

        logger.info(
            f"Search '{query}': {len(ranked)} ranked via {method} "
            f"(drug={parsed.drug_name}, dosage={parsed.full_dosage}) in {latency_ms:.0f}ms"
        )
        return SearchResult(products=ranked[:limit], total=len(ranked), metadata=metadata)

    async def get_by_id(self, product_id: str, real_time: bool = False) -> Optional[Dict[str, Any]]:
        """Catalog row merged with its inventory view, or None if unknown."""
        started = time.monotonic()
        product = await asyncio.to_thread(self.store.get_product, product_id)
        if product is None:
            return None
        inventory = await self.resolver.get_inventory(product_id, real_time=real_time)
        candidate = SearchCandidate(product=product, inventory=inventory)
        if self.metrics:
            self.metrics.record_latency("get_product", (time.monotonic() - started) * 1000)
        data = candidate.to_dict()
        for key in ("similarity", "final_score", "ranking_reasons"):
            data.pop(key, None)
        return data

    async def check_stock(
        self,
        product_id: str,
        quantity: int = 1,
        real_time: bool = False,
        suggest_alternatives: bool = True,
    ) -> Dict[str, Any]:
        """
        Availability of `quantity` units. When short and suggest_alternatives
        is set, searches the product's generic name (same category) for
        in-stock substitutes.
        """
        product = await self.get_by_id(product_id, real_time=real_time)
        if product is None:
            return {"available": False, "error": "Product not found", "product_id": product_id}

        current = product["available"]
        result: Dict[str, Any] = {
            "available": current >= quantity,
            "product_id": product_id,
            "product_name": product["name"],
            "current_stock": current,
            "onhand_stock": product["onhand"],
            "promise_stock": product["promise"],
            "requested": quantity,
            "price": product["price"],
            "facility_name": product["facility_name"],
            "is_low_stock": 0 < current < 10,
            "is_active": product["is_active"],
            "stock_status": stock_status(current),
            "data_source": product["data_source"],
        }

        if not result["available"] and suggest_alternatives:
            lookup = product.get("generic_name") or product["name"]
            alternatives = await self.search(lookup, limit=3, category=product.get("category"))
            result["alternatives"] = [
                alt.to_dict() for alt in alternatives.products
                if alt.id != product_id and alt.available >= quantity
            ]
        return result

    async def get_by_category(self, category: str, limit: int = 20,
                              in_stock_only: bool = True) -> List[Dict[str, Any]]:
        ids = await asyncio.to_thread(self.store.list_by_stock, category, limit, in_stock_only)
        candidates = await self._build_candidates([(pid, 0.0) for pid in ids], real_time=False)
        return [c.to_dict() for c in candidates]

    async def get_popular_products(self, limit: int = 10,
                                   category: Optional[str] = None) -> List[Dict[str, Any]]:
        """Best-stocked active products, optionally within a category."""
        return await self.get_by_category(category, limit=limit, in_stock_only=True)
