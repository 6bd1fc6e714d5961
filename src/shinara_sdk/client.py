"""HTTPX client for the Shinara SDK gateway.

Every request carries the ``X-API-Key`` and ``X-SDK-Platform`` headers.
Transport-level failures are converted to ``TransportError``; status codes
are left for the caller to judge.

Usage::

    client = GatewayClient(SDKConfig())
    resp = await client.get("/api/key/validate", api_key="...")
    await client.aclose()
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from shinara_sdk.config import SDKConfig
from shinara_sdk.exceptions import TransportError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
PLATFORM_HEADER = "X-SDK-Platform"


class GatewayResponseLogHook:
    """HTTPX response event hook that logs every gateway call.

    Only the method, path, status and latency are logged; headers (which
    carry the API key) and bodies (which may carry contact details) are not.
    """

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self.log = log or logger

    async def __call__(self, response: httpx.Response) -> None:
        """Called by HTTPX after each response is received."""
        request = response.request

        # elapsed is only available once the body has been read
        await response.aread()

        latency_ms = None
        try:
            latency_ms = round(response.elapsed.total_seconds() * 1000, 2)
        except RuntimeError:
            pass

        self.log.info(
            "gateway %s %s -> %d (%s ms)",
            request.method,
            request.url.path,
            response.status_code,
            latency_ms if latency_ms is not None else "?",
        )


class GatewayClient:
    """Authenticated JSON requests against one fixed base URL."""

    def __init__(
        self,
        config: SDKConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self._owns_client = http_client is None
        if http_client is None:
            hooks = {"response": [GatewayResponseLogHook()]} if config.log_requests else {}
            http_client = httpx.AsyncClient(
                base_url=config.base_url,
                timeout=config.timeout_seconds,
                transport=transport,
                event_hooks=hooks,
            )
        self._client = http_client

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {
            API_KEY_HEADER: api_key,
            PLATFORM_HEADER: self.config.platform_tag,
        }

    async def get(self, path: str, *, api_key: str) -> httpx.Response:
        return await self._send("GET", path, api_key=api_key)

    async def post(
        self, path: str, payload: Dict[str, Any], *, api_key: str
    ) -> httpx.Response:
        return await self._send("POST", path, api_key=api_key, json=payload)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        api_key: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        try:
            return await self._client.request(
                method, path, json=json, headers=self._headers(api_key)
            )
        except httpx.HTTPError as exc:
            logger.warning("Gateway %s %s failed: %r", method, path, exc)
            raise TransportError(exc) from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
