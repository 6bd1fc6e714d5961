"""Shared fixtures: an in-process fake gateway and engines wired to it."""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from shinara_sdk.client import GatewayClient
from shinara_sdk.config import SDKConfig
from shinara_sdk.engine import AttributionEngine
from shinara_sdk.storage import InMemoryStore

BASE_URL = "https://gateway.test"

Route = Union[Tuple[int, Any], Callable[[httpx.Request], httpx.Response], Exception]


class FakeGateway:
    """Records every request and answers from a per-route table."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.delay = 0.0
        self.routes: Dict[Tuple[str, str], Route] = {
            ("GET", "/api/key/validate"): (200, {"app_id": "app_1"}),
            ("POST", "/api/code/validate"): (
                200,
                {"campaign_id": "camp_123", "affiliate_code_id": "code_1"},
            ),
            ("POST", "/appopen"): (200, {}),
            ("POST", "/newuser"): (200, {}),
            ("POST", "/iappurchase"): (200, {}),
        }

    def set(self, method: str, path: str, route: Route) -> None:
        self.routes[(method, path)] = route

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        route = self.routes.get((request.method, request.url.path), (404, {}))
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(request)
        status, body = route
        if isinstance(body, (bytes, str)):
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=body)

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def bodies(self, path: str) -> List[Optional[dict]]:
        return [json.loads(r.content) if r.content else None for r in self.calls(path)]


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def config():
    return SDKConfig(base_url=BASE_URL, platform_tag="python")


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
async def make_engine(gateway, config):
    created = []

    def _make(store=None, cfg=None):
        cfg = cfg or config
        client = GatewayClient(cfg, transport=httpx.MockTransport(gateway.handler))
        engine = AttributionEngine(
            cfg, store=store if store is not None else InMemoryStore(), client=client
        )
        created.append(engine)
        return engine

    yield _make
    for engine in created:
        await engine.close()


@pytest.fixture
def engine(make_engine, store):
    return make_engine(store)


@pytest.fixture
async def ready_engine(engine):
    """Engine with a validated key and a resolved referral code."""
    await engine.initialize("VALID")
    await engine.resolve_referral("TEST01")
    return engine
