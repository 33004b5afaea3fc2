"""
Unit Tests - Remote Compute Client
"""
import httpx
import pytest

from sales_dashboard.serving.remote import RemoteComputeClient, RemoteComputeError

URL = "http://compute.test/api/v1/cache/update"


def client_for(handler) -> RemoteComputeClient:
    return RemoteComputeClient(URL, timeout=5, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestParsePayload:

    def test_envelope(self, sample_result):
        body = {"success": True, "data": sample_result.to_payload(), "message": "ok"}
        assert RemoteComputeClient.parse_payload(body) == sample_result

    def test_bare_result(self, sample_result):
        assert RemoteComputeClient.parse_payload(sample_result.to_payload()) == sample_result

    def test_reported_failure(self):
        with pytest.raises(RemoteComputeError, match="sources missing"):
            RemoteComputeClient.parse_payload({"success": False, "error": "sources missing"})

    def test_malformed(self):
        with pytest.raises(RemoteComputeError):
            RemoteComputeClient.parse_payload({"success": True, "data": {"performances": 5}})

    def test_non_object(self):
        with pytest.raises(RemoteComputeError):
            RemoteComputeClient.parse_payload([1, 2, 3])


class TestCompute:

    @pytest.mark.asyncio
    async def test_success(self, sample_result):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            return httpx.Response(200, json={"success": True, "data": sample_result.to_payload()})

        assert await client_for(handler).compute() == sample_result

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        client = client_for(lambda request: httpx.Response(500, json={"success": False, "error": "x"}))

        with pytest.raises(RemoteComputeError, match="HTTP 500"):
            await client.compute()

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = client_for(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(RemoteComputeError, match="invalid JSON"):
            await client.compute()

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(RemoteComputeError, match="unreachable"):
            await client_for(handler).compute()
