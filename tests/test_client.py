"""Tests for GatewayClient and GatewayResponseLogHook."""

import logging
from datetime import timedelta

import httpx
import pytest

from shinara_sdk.client import GatewayClient, GatewayResponseLogHook
from shinara_sdk.config import SDKConfig
from shinara_sdk.exceptions import UNKNOWN_STATUS, TransportError


@pytest.fixture
def client_config():
    return SDKConfig(base_url="https://gateway.test", platform_tag="python")


class TestGatewayClient:
    async def test_sends_auth_headers_and_json(self, client_config):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        client = GatewayClient(client_config, transport=httpx.MockTransport(handler))
        response = await client.post("/newuser", {"code": "TEST01"}, api_key="KEY")
        await client.aclose()

        assert response.status_code == 200
        request = seen[0]
        assert str(request.url) == "https://gateway.test/newuser"
        assert request.headers["X-API-Key"] == "KEY"
        assert request.headers["X-SDK-Platform"] == "python"
        assert request.headers["content-type"] == "application/json"

    async def test_non_success_status_is_returned(self, client_config):
        client = GatewayClient(
            client_config,
            transport=httpx.MockTransport(lambda r: httpx.Response(503)),
        )

        response = await client.get("/api/key/validate", api_key="KEY")
        await client.aclose()

        assert response.status_code == 503

    async def test_transport_error_wrapped(self, client_config):
        def handler(request):
            raise httpx.ConnectTimeout("timed out")

        client = GatewayClient(client_config, transport=httpx.MockTransport(handler))

        with pytest.raises(TransportError) as excinfo:
            await client.get("/api/key/validate", api_key="KEY")
        await client.aclose()

        assert excinfo.value.status_code == UNKNOWN_STATUS
        assert isinstance(excinfo.value.__cause__, httpx.ConnectTimeout)

    async def test_borrowed_client_not_closed(self, client_config):
        http_client = httpx.AsyncClient(
            base_url="https://gateway.test",
            transport=httpx.MockTransport(lambda r: httpx.Response(200)),
        )
        client = GatewayClient(client_config, http_client=http_client)

        await client.aclose()

        assert not http_client.is_closed
        await http_client.aclose()

    async def test_request_logging_enabled(self, caplog):
        config = SDKConfig(base_url="https://gateway.test", log_requests=True)
        client = GatewayClient(
            config, transport=httpx.MockTransport(lambda r: httpx.Response(200, json={}))
        )

        with caplog.at_level(logging.INFO, logger="shinara_sdk.client"):
            await client.get("/api/key/validate", api_key="SECRET")
        await client.aclose()

        assert "gateway GET /api/key/validate -> 200" in caplog.text
        assert "SECRET" not in caplog.text


class TestGatewayResponseLogHook:
    async def test_logs_latency(self, caplog):
        request = httpx.Request("POST", "https://gateway.test/iappurchase")
        response = httpx.Response(200, request=request, json={})
        response._elapsed = timedelta(milliseconds=42)

        with caplog.at_level(logging.INFO, logger="shinara_sdk.client"):
            await GatewayResponseLogHook()(response)

        assert "POST /iappurchase -> 200 (42.0 ms)" in caplog.text
