"""
Business API client: paginated product catalog + real-time single product.

The upstream is unreliable in two ways: pages fail intermittently and the
response envelope has changed shape over time. Pages are fetched
sequentially with cooperative rate limiting; envelopes go through an ordered
list of decoders.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from pharmasync.errors import EnvelopeDecodeError, UpstreamError
from pharmasync.utils.logger import get_logger

logger = get_logger("data.upstream")


@dataclass
class Envelope:
    """Decoded page: items plus whatever paging metadata the format carried."""
    items: List[Dict[str, Any]]
    total_pages: int = 0
    total_items: int = 0
    format: str = ""


def _paging(container: Dict[str, Any]) -> Dict[str, int]:
    def as_int(value):
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            return 0
    return {
        "total_pages": as_int(container.get("total_pages")),
        "total_items": as_int(container.get("total_items")),
    }


def _decode_nested(payload: Any) -> Optional[Envelope]:
    # {"data": {"data": {"items": [...]}}}
    if isinstance(payload, dict):
        outer = payload.get("data")
        if isinstance(outer, dict):
            inner = outer.get("data")
            if isinstance(inner, dict) and isinstance(inner.get("items"), list):
                return Envelope(items=inner["items"], format="data.data.items", **_paging(inner))
    return None


def _decode_data_items(payload: Any) -> Optional[Envelope]:
    # {"data": {"items": [...]}}
    if isinstance(payload, dict):
        outer = payload.get("data")
        if isinstance(outer, dict) and isinstance(outer.get("items"), list):
            return Envelope(items=outer["items"], format="data.items", **_paging(outer))
    return None


def _decode_items(payload: Any) -> Optional[Envelope]:
    # {"items": [...]}
    if isinstance(payload, dict) and isinstance(payload.get("items"), list):
        return Envelope(items=payload["items"], format="items", **_paging(payload))
    return None


def _decode_bare_list(payload: Any) -> Optional[Envelope]:
    if isinstance(payload, list):
        return Envelope(items=payload, format="list")
    return None


ENVELOPE_DECODERS: List[Callable[[Any], Optional[Envelope]]] = [
    _decode_nested,
    _decode_data_items,
    _decode_items,
    _decode_bare_list,
]


def decode_envelope(payload: Any) -> Envelope:
    """Try each decoder in order; the first that recognises the shape wins."""
    for decoder in ENVELOPE_DECODERS:
        envelope = decoder(payload)
        if envelope is not None:
            envelope.items = [item for item in envelope.items if isinstance(item, dict)]
            return envelope
    keys = list(payload.keys())[:5] if isinstance(payload, dict) else type(payload).__name__
    raise EnvelopeDecodeError(f"Unrecognised response envelope: {keys}")


@dataclass
class PageFailurePolicy:
    """
    Skip failed pages, but stop after too many consecutive failures.

    A success resets the consecutive counter; the total is kept for stats.
    """
    max_consecutive_failures: int = 10
    consecutive_failures: int = 0
    total_failures: int = 0

    def record_failure(self) -> bool:
        """Count a failed page. Returns True when fetching should stop."""
        self.consecutive_failures += 1
        self.total_failures += 1
        return self.consecutive_failures >= self.max_consecutive_failures

    def record_success(self) -> None:
        self.consecutive_failures = 0


@dataclass
class FetchResult:
    items: List[Dict[str, Any]] = field(default_factory=list)
    pages_fetched: int = 0
    pages_failed: int = 0
    stop_reason: str = ""


class UpstreamCatalogClient:
    """Async httpx client for the business product API."""

    def __init__(
        self,
        base_url: str = "http://mns.bmall.mn/api",
        store_id: str = "MK001",
        start_date: Optional[str] = "2025-01-01",
        end_date: Optional[str] = "2025-12-31",
        timeout: float = 15.0,
        realtime_timeout: float = 5.0,
        page_delay: float = 0.2,
        max_pages: int = 200,
        max_page_failures: int = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.store_id = store_id
        self.start_date = start_date
        self.end_date = end_date
        self.timeout = timeout
        self.realtime_timeout = realtime_timeout
        self.page_delay = page_delay
        self.max_pages = max_pages
        self.max_page_failures = max_page_failures
        # Tests pass httpx.MockTransport here
        self._transport = transport

    @classmethod
    def from_config(cls, config, transport: Optional[httpx.AsyncBaseTransport] = None) -> "UpstreamCatalogClient":
        return cls(
            base_url=config.business_api_base,
            store_id=config.store_id,
            start_date=config.start_date,
            end_date=config.end_date,
            timeout=config.upstream_timeout,
            realtime_timeout=config.realtime_timeout,
            page_delay=config.page_delay,
            max_pages=config.max_pages,
            max_page_failures=config.max_page_failures,
            transport=transport,
        )

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=self._transport)

    def _page_params(self, page: int, size: int, with_dates: bool) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": page, "size": size}
        if with_dates and self.start_date and self.end_date:
            params["startDate"] = self.start_date
            params["endDate"] = self.end_date
        params["storeId"] = self.store_id
        return params

    async def _get_page(self, client: httpx.AsyncClient, page: int, size: int, with_dates: bool) -> Envelope:
        try:
            resp = await client.get("/products", params=self._page_params(page, size, with_dates))
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(f"page {page}: HTTP {e.response.status_code}", e.response.status_code) from e
        except httpx.RequestError as e:
            raise UpstreamError(f"page {page}: request failed: {e}") from e
        except ValueError as e:
            raise UpstreamError(f"page {page}: invalid JSON: {e}") from e
        return decode_envelope(payload)

    async def fetch_page(self, page: int = 0, size: int = 50, with_dates: bool = True) -> Envelope:
        """Fetch and decode a single page. Raises UpstreamError."""
        async with self._client(self.timeout) as client:
            return await self._get_page(client, page, size, with_dates)

    async def fetch_all_products(self, page_size: int = 50, max_products: Optional[int] = None,
                                 max_pages: Optional[int] = None) -> FetchResult:
        """
        Walk the catalog page by page with real-time deduplication.

        Stops on: a page with no items, a page contributing zero new ids,
        max_products reached, the upstream's total_pages exhausted, the page
        ceiling, or the failure policy giving up. Failed pages are skipped.
        """
        page_ceiling = max_pages or self.max_pages
        policy = PageFailurePolicy(max_consecutive_failures=self.max_page_failures)
        result = FetchResult()
        seen_ids = set()
        page = 0

        logger.info(
            f"Fetching catalog: {'up to ' + str(max_products) if max_products else 'all'} products "
            f"(page size {page_size}, max {page_ceiling} pages)"
        )

        async with self._client(self.timeout) as client:
            while page < page_ceiling:
                try:
                    envelope = await self._get_page(client, page, page_size, with_dates=True)
                except UpstreamError as e:
                    logger.warning(f"Skipping page {page}: {e}")
                    page += 1
                    if policy.record_failure():
                        result.stop_reason = "too_many_failures"
                        logger.error(f"Giving up after {policy.consecutive_failures} consecutive page failures")
                        break
                    continue

                policy.record_success()
                result.pages_fetched += 1

                if not envelope.items:
                    result.stop_reason = "empty_page"
                    logger.info(f"No products on page {page}, stopping")
                    break

                new_this_page = 0
                for item in envelope.items:
                    product_id = item.get("PRODUCT_ID")
                    if product_id is None:
                        continue
                    # 101 and "101" are the same product once stored
                    key = str(product_id)
                    if key in seen_ids:
                        continue
                    seen_ids.add(key)
                    result.items.append(item)
                    new_this_page += 1

                if new_this_page == 0:
                    result.stop_reason = "all_duplicates"
                    logger.warning(f"Page {page}: all {len(envelope.items)} products were duplicates, stopping")
                    break

                logger.debug(
                    f"Page {page}: {new_this_page} new, {len(envelope.items) - new_this_page} duplicates skipped"
                )
                page += 1

                if max_products and len(result.items) >= max_products:
                    result.stop_reason = "max_products"
                    break
                if envelope.total_pages > 0 and page >= envelope.total_pages:
                    result.stop_reason = "total_pages"
                    break

                await asyncio.sleep(self.page_delay)
            else:
                result.stop_reason = "page_ceiling"

        result.pages_failed = policy.total_failures
        if max_products:
            result.items = result.items[:max_products]
        logger.info(
            f"Fetch complete: {result.pages_fetched} pages, {len(result.items)} unique products, "
            f"{result.pages_failed} failed pages ({result.stop_reason})"
        )
        return result

    async def fetch_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        """Live single-product lookup. Returns None on any failure."""
        try:
            async with self._client(self.realtime_timeout) as client:
                resp = await client.get(f"/products/{product_id}", params={"storeId": self.store_id})
                if resp.status_code != 200:
                    logger.warning(f"Real-time fetch for {product_id}: HTTP {resp.status_code}")
                    return None
                payload = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Real-time fetch failed for {product_id}: {e}")
            return None

        product = payload.get("data", payload) if isinstance(payload, dict) else None
        if not isinstance(product, dict):
            return None
        product.setdefault("PRODUCT_ID", product_id)
        return product
