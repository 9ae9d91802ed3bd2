"""
Tests for FossilPricingClient using an in-process httpx transport.
"""

import json

import httpx
import pytest

from vault_keeper.core.errors import PricingServiceError, PricingServiceUnavailable
from vault_keeper.core.models import PricingRequest, RawPricingRequest
from vault_keeper.infra.pricing_client import FossilPricingClient

BASE_URL = "https://fossil.test"


def make_client(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FossilPricingClient(BASE_URL, "secret-key", client=http), http


def sample_request():
    raw = RawPricingRequest(vault_address="0x5a11", timestamp=1000, identifier="0x1d")
    return PricingRequest.build(raw, "0xc1", 100)


class TestLatestBlock:

    @pytest.mark.asyncio
    async def test_parses_horizon(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"latest_block_number": 812, "block_timestamp": 1_700_000_123})

        client, http = make_client(handler)
        block = await client.latest_block()
        await http.aclose()

        assert block.block_number == 812
        assert block.block_timestamp == 1_700_000_123
        assert seen[0].method == "GET"
        assert str(seen[0].url) == f"{BASE_URL}/latest_block"

    @pytest.mark.asyncio
    async def test_missing_field_is_error(self):
        client, http = make_client(lambda request: httpx.Response(200, json={"latest_block_number": 1}))
        with pytest.raises(PricingServiceError):
            await client.latest_block()
        await http.aclose()

    @pytest.mark.asyncio
    async def test_non_json_is_error(self):
        client, http = make_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(PricingServiceError):
            await client.latest_block()
        await http.aclose()

    @pytest.mark.asyncio
    async def test_http_error_carries_status(self):
        client, http = make_client(lambda request: httpx.Response(503, text="maintenance"))
        with pytest.raises(PricingServiceError) as exc_info:
            await client.latest_block()
        await http.aclose()
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_transport_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client, http = make_client(handler)
        with pytest.raises(PricingServiceUnavailable):
            await client.latest_block()
        await http.aclose()


class TestSubmit:

    @pytest.mark.asyncio
    async def test_posts_payload_with_api_key(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"job_id": 42})

        client, http = make_client(handler)
        req = sample_request()
        job_id = await client.submit_pricing_request(req)
        await http.aclose()

        assert job_id == "42"
        sent = seen[0]
        assert sent.method == "POST"
        assert str(sent.url) == f"{BASE_URL}/pricing_data"
        assert sent.headers["x-api-key"] == "secret-key"
        assert sent.headers["content-type"] == "application/json"
        assert json.loads(sent.content) == req.to_payload()

    @pytest.mark.asyncio
    async def test_rejected_request(self):
        client, http = make_client(lambda request: httpx.Response(401, json={"error": "bad key"}))
        with pytest.raises(PricingServiceError) as exc_info:
            await client.submit_pricing_request(sample_request())
        await http.aclose()
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_missing_job_id(self):
        client, http = make_client(lambda request: httpx.Response(200, json={"status": "queued"}))
        with pytest.raises(PricingServiceError):
            await client.submit_pricing_request(sample_request())
        await http.aclose()


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_shared_client_not_closed(self):
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        client = FossilPricingClient(BASE_URL, "k", client=http)
        await client.close()
        assert not http.is_closed
        await http.aclose()

    @pytest.mark.asyncio
    async def test_trailing_slash_stripped(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, json={"latest_block_number": 1, "block_timestamp": 2})

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = FossilPricingClient(BASE_URL + "/", "k", client=http)
        await client.latest_block()
        await http.aclose()
        assert seen == [f"{BASE_URL}/latest_block"]
