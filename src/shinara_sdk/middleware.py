"""Starlette / FastAPI middleware that observes referral links.

Mount it on the web app that referral links point at; any request whose
query string carries the referral parameter resolves the code in the
background while the request itself is handled normally.

Usage::

    from fastapi import FastAPI
    from shinara_sdk import AttributionEngine, ReferralLinkMiddleware

    app = FastAPI()
    engine = AttributionEngine()
    app.add_middleware(ReferralLinkMiddleware, engine=engine)

    @app.on_event("shutdown")
    async def shutdown():
        await engine.close()  # drains in-flight resolutions
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)


class ReferralLinkMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that hands referral links to the attribution engine.

    Requests without the referral parameter pass through with zero
    overhead. Resolution never delays or fails the response.
    """

    def __init__(self, app: Any, engine: Any) -> None:
        super().__init__(app)
        self.engine = engine

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        param = self.engine.config.referral_param
        if any(request.query_params.getlist(param)):
            try:
                task = asyncio.create_task(self._resolve(str(request.url)))
                self.engine.register_pending_task(task)
            except Exception:
                logger.exception("Scheduling referral resolution failed")

        return await call_next(request)

    async def _resolve(self, url: str) -> None:
        try:
            await self.engine.handle_deep_link(url)
        except Exception:
            logger.exception("Referral link resolution failed for %s", url)
