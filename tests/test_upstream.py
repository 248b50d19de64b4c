"""
Tests for the business API client: envelope decoding, failure policy and
paginated fetching against httpx.MockTransport.
"""

import httpx
import pytest

from pharmasync.data.upstream import PageFailurePolicy, UpstreamCatalogClient, decode_envelope
from pharmasync.errors import EnvelopeDecodeError, UpstreamError
from tests.conftest import UPSTREAM_BASE
from tests.fakes import make_item


def ids(items):
    return [item["PRODUCT_ID"] for item in items]


class TestDecodeEnvelope:
    def test_nested_data(self):
        env = decode_envelope({"data": {"data": {"items": [{"PRODUCT_ID": "1"}], "total_pages": 3}}})
        assert env.format == "data.data.items"
        assert env.total_pages == 3
        assert ids(env.items) == ["1"]

    def test_data_items(self):
        env = decode_envelope({"data": {"items": [{"PRODUCT_ID": "1"}]}})
        assert env.format == "data.items"

    def test_items(self):
        env = decode_envelope({"items": [{"PRODUCT_ID": "1"}], "total_items": "40"})
        assert env.format == "items"
        assert env.total_items == 40

    def test_bare_list(self):
        env = decode_envelope([{"PRODUCT_ID": "1"}, "junk", None])
        assert env.format == "list"
        assert ids(env.items) == ["1"]

    def test_unrecognised(self):
        with pytest.raises(EnvelopeDecodeError):
            decode_envelope({"result": []})

    def test_decode_error_is_upstream_error(self):
        assert issubclass(EnvelopeDecodeError, UpstreamError)


class TestPageFailurePolicy:
    def test_stops_after_consecutive_failures(self):
        policy = PageFailurePolicy(max_consecutive_failures=3)
        assert not policy.record_failure()
        assert not policy.record_failure()
        assert policy.record_failure()

    def test_success_resets_consecutive_only(self):
        policy = PageFailurePolicy(max_consecutive_failures=2)
        policy.record_failure()
        policy.record_success()
        assert not policy.record_failure()
        assert policy.total_failures == 2


class TestFetchAllProducts:
    async def test_deduplicates_and_stops_on_repeated_page(self, upstream, upstream_stub):
        upstream_stub.pages = {
            0: [make_item("1", "A"), make_item("2", "B")],
            1: [make_item("2", "B"), make_item("3", "C")],
            2: [make_item("1", "A"), make_item("3", "C")],
            3: [make_item("4", "D")],
        }
        result = await upstream.fetch_all_products(page_size=2)
        assert ids(result.items) == ["1", "2", "3"]
        assert result.stop_reason == "all_duplicates"

    async def test_stops_on_empty_page(self, upstream, upstream_stub):
        upstream_stub.pages = {0: [make_item("1", "A")]}
        result = await upstream.fetch_all_products(page_size=1)
        assert ids(result.items) == ["1"]
        assert result.stop_reason == "empty_page"
        assert result.pages_fetched == 2

    async def test_failed_page_is_skipped(self, upstream, upstream_stub):
        upstream_stub.pages = {0: [make_item("1", "A")], 1: 500, 2: [make_item("2", "B")]}
        result = await upstream.fetch_all_products(page_size=1)
        assert ids(result.items) == ["1", "2"]
        assert result.pages_failed == 1

    async def test_gives_up_after_consecutive_failures(self, upstream, upstream_stub):
        upstream_stub.pages = {0: 502, 1: 502, 2: 502, 3: [make_item("1", "A")]}
        result = await upstream.fetch_all_products(page_size=1)
        assert result.items == []
        assert result.stop_reason == "too_many_failures"
        assert result.pages_failed == 3

    async def test_max_products(self, upstream, upstream_stub):
        upstream_stub.pages = {
            0: [make_item("1", "A"), make_item("2", "B")],
            1: [make_item("3", "C"), make_item("4", "D")],
        }
        result = await upstream.fetch_all_products(page_size=2, max_products=3)
        assert ids(result.items) == ["1", "2", "3"]
        assert result.stop_reason == "max_products"

    async def test_page_ceiling(self, upstream, upstream_stub):
        upstream_stub.pages = {n: [make_item(str(n), "X")] for n in range(10)}
        result = await upstream.fetch_all_products(page_size=1, max_pages=4)
        assert len(result.items) == 4
        assert result.stop_reason == "page_ceiling"

    async def test_numeric_and_string_ids_are_one_product(self, upstream, upstream_stub):
        upstream_stub.pages = {0: [make_item(101, "A"), make_item("101", "A"), make_item("102", "B")]}
        result = await upstream.fetch_all_products(page_size=3)
        assert ids(result.items) == [101, "102"]

    async def test_stops_at_reported_total_pages(self, upstream, upstream_stub):
        upstream_stub.pages = {n: [make_item(str(n), "X")] for n in range(5)}
        upstream_stub.total_pages = 2
        result = await upstream.fetch_all_products(page_size=1)
        assert ids(result.items) == ["0", "1"]
        assert result.stop_reason == "total_pages"
        assert len(upstream_stub.requests) == 2

    async def test_sends_store_and_date_params(self, upstream, upstream_stub):
        await upstream.fetch_page(page=0, size=10)
        params = upstream_stub.requests[0].url.params
        assert params["storeId"] == "MK001"
        assert params["startDate"] == "2025-01-01"
        assert params["size"] == "10"

    async def test_fetch_page_raises_on_http_error(self, upstream, upstream_stub):
        upstream_stub.pages = {0: 503}
        with pytest.raises(UpstreamError) as exc:
            await upstream.fetch_page(page=0)
        assert exc.value.status_code == 503


class TestFetchProduct:
    async def test_unwraps_data(self, upstream, upstream_stub):
        upstream_stub.products = {"1001": make_item("1001", "Парацетамол", available=7)}
        product = await upstream.fetch_product("1001")
        assert product["STOCKS"][0]["AVAILABLE"] == 7

    async def test_not_found(self, upstream):
        assert await upstream.fetch_product("missing") is None

    async def test_connection_error_returns_none(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = UpstreamCatalogClient(base_url=UPSTREAM_BASE, transport=httpx.MockTransport(handler))
        assert await client.fetch_product("1001") is None
