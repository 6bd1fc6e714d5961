#!/usr/bin/env python3
"""
Attribution Demo — referral → registration → purchase
======================================================

Runs the whole SDK flow against an in-process mini gateway:
  1. initialize with an API key (retention tracking on → app-open)
  2. a deep link carrying shinara_ref_code resolves the referral
  3. a purchase arrives before the user signs up (synthetic identity)
  4. the user registers (synthetic identity merged into the real one)
  5. the platform redelivers the purchase (de-duplicated)

Run:
    python examples/attribution_demo.py

Requires:
    pip install shinara-sdk[server]
"""

from __future__ import annotations

import asyncio
import logging
from typing import List

import httpx
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from shinara_sdk import (
    AttributionEngine,
    GatewayClient,
    InMemoryStore,
    PurchaseObserver,
    PurchaseTransaction,
    SDKConfig,
    TransactionState,
)

# ======================================================================
# Mini gateway
# ======================================================================

VALID_KEYS = {"demo-key"}
CODES = {"SPRING24": {"campaign_id": "camp_spring", "affiliate_code_id": "code_77"}}
LOG: List[str] = []


async def validate_key(request: Request):
    if request.headers.get("x-api-key") not in VALID_KEYS:
        return JSONResponse({"error": "invalid key"}, status_code=401)
    return JSONResponse({"app_id": "demo_app", "track_retention": True})


async def validate_code(request: Request):
    body = await request.json()
    code = CODES.get(body.get("code"))
    if code is None:
        return JSONResponse({"error": "unknown code"}, status_code=404)
    return JSONResponse(code)


async def record(request: Request):
    body = await request.json()
    LOG.append(f"{request.url.path} {body}")
    return JSONResponse({"status": "ok"})


gateway = Starlette(
    routes=[
        Route("/api/key/validate", validate_key, methods=["GET"]),
        Route("/api/code/validate", validate_code, methods=["POST"]),
        Route("/appopen", record, methods=["POST"]),
        Route("/newuser", record, methods=["POST"]),
        Route("/iappurchase", record, methods=["POST"]),
    ]
)


# ======================================================================
# Purchase queue stand-in
# ======================================================================


class DemoPurchaseQueue:
    async def finish_transaction(self, transaction: PurchaseTransaction) -> None:
        print(f"   finished {transaction.transaction_id} ({transaction.state.value})")


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    config = SDKConfig(base_url="http://gateway.demo", log_requests=True)
    client = GatewayClient(config, transport=httpx.ASGITransport(app=gateway))
    engine = AttributionEngine(config, store=InMemoryStore(), client=client)
    observer = PurchaseObserver(engine, DemoPurchaseQueue())

    async with engine:
        print("\n1. initialize")
        await engine.initialize("demo-key")

        print("\n2. deep link")
        program_id = await engine.handle_deep_link(
            "demoapp://welcome?shinara_ref_code=SPRING24"
        )
        print(f"   program={program_id} code={engine.get_referral_code()}")

        print("\n3. purchase before sign-up")
        await observer.on_transactions_updated(
            [PurchaseTransaction("txn_1", "pro_monthly", TransactionState.PURCHASED)]
        )
        print(f"   synthetic id={engine.state.auto_generated_user_id}")

        print("\n4. sign-up")
        await engine.register_user("user_42", email="jane@example.com")
        print(f"   user={engine.get_user_id()}")

        print("\n5. redelivered purchase")
        await observer.on_transactions_updated(
            [PurchaseTransaction("txn_1", "pro_monthly", TransactionState.RESTORED)]
        )

    print("\nGateway received:")
    for line in LOG:
        print(f"   {line}")


if __name__ == "__main__":
    asyncio.run(main())
