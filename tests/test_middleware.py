"""Tests for ReferralLinkMiddleware."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.responses import PlainTextResponse
from starlette.routing import Route

from shinara_sdk.config import SDKConfig
from shinara_sdk.middleware import ReferralLinkMiddleware


async def _landing(request):
    return PlainTextResponse("welcome")


@pytest.fixture
def mock_engine():
    engine = MagicMock()
    engine.config = SDKConfig()
    engine.handle_deep_link = AsyncMock(return_value="camp_123")
    engine.pending = []
    engine.register_pending_task = MagicMock(side_effect=engine.pending.append)
    return engine


@pytest.fixture
def app_client(mock_engine):
    app = Starlette(
        routes=[Route("/invite", _landing)],
        middleware=[Middleware(ReferralLinkMiddleware, engine=mock_engine)],
    )
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    )


async def _drain(engine):
    for task in engine.pending:
        await task


class TestReferralLinkMiddleware:
    async def test_resolves_referral_link(self, app_client, mock_engine):
        async with app_client:
            resp = await app_client.get("/invite?shinara_ref_code=TEST01")
        await _drain(mock_engine)

        assert resp.status_code == 200
        assert resp.text == "welcome"
        url = mock_engine.handle_deep_link.await_args.args[0]
        assert "shinara_ref_code=TEST01" in url

    async def test_skips_requests_without_code(self, app_client, mock_engine):
        async with app_client:
            resp = await app_client.get("/invite?utm_source=mail")

        assert resp.status_code == 200
        mock_engine.handle_deep_link.assert_not_awaited()
        mock_engine.register_pending_task.assert_not_called()

    async def test_repeated_parameter_with_trailing_empty_value(self, app_client, mock_engine):
        async with app_client:
            resp = await app_client.get("/invite?shinara_ref_code=TEST01&shinara_ref_code=")
        await _drain(mock_engine)

        assert resp.status_code == 200
        mock_engine.handle_deep_link.assert_awaited_once()

    async def test_empty_parameter_is_skipped(self, app_client, mock_engine):
        async with app_client:
            await app_client.get("/invite?shinara_ref_code=")

        mock_engine.register_pending_task.assert_not_called()

    async def test_resolution_failure_does_not_fail_request(self, app_client, mock_engine):
        mock_engine.handle_deep_link.side_effect = RuntimeError("gateway down")

        async with app_client:
            resp = await app_client.get("/invite?shinara_ref_code=TEST01")
        await _drain(mock_engine)

        assert resp.status_code == 200
