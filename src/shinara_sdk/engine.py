"""AttributionEngine — the main entry point of the Shinara SDK.

Validates the API key, resolves referral codes, registers users and
attributes purchases against the Shinara gateway, keeping the local
attribution state in step with what the gateway has confirmed.

Usage::

    engine = AttributionEngine(SDKConfig(state_path="~/.myapp/shinara.json"))
    await engine.initialize("my-api-key")
    await engine.handle_deep_link("myapp://open?shinara_ref_code=SPRING24")
    await engine.register_user("user-42", email="jane@example.com")
    await engine.attribute_purchase("pro_monthly", "txn_1001")
    await engine.close()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Optional, Set
from urllib.parse import parse_qs, urlparse

from shinara_sdk.client import GatewayClient
from shinara_sdk.config import SDKConfig
from shinara_sdk.exceptions import (
    AttributionFailedError,
    KeyNotSetError,
    NoReferralCodeError,
    RegistrationFailedError,
    ValidationFailedError,
)
from shinara_sdk.models import (
    AppOpenRequest,
    ConversionUser,
    KeyValidationResponse,
    PurchaseAttributionRequest,
    UserRegistrationRequest,
)
from shinara_sdk.parser import GatewayResponseParser
from shinara_sdk.state import AttributionState
from shinara_sdk.storage import KeyValueStore, create_store

logger = logging.getLogger(__name__)

KEY_VALIDATE_PATH = "/api/key/validate"
CODE_VALIDATE_PATH = "/api/code/validate"
APP_OPEN_PATH = "/appopen"
NEW_USER_PATH = "/newuser"
PURCHASE_PATH = "/iappurchase"


class AttributionEngine:
    """Owns the attribution state and every operation that changes it.

    Checks and commits on shared state run under a single ``asyncio.Lock``;
    gateway calls run outside it. Registrations and purchase attributions
    are also de-duplicated while in flight: concurrent calls for the same
    user id or transaction id share one request and its outcome.
    Dispatched requests are never cancelled by a cancelled caller.
    """

    def __init__(
        self,
        config: Optional[SDKConfig] = None,
        *,
        store: Optional[KeyValueStore] = None,
        client: Optional[GatewayClient] = None,
    ):
        self.config = config or SDKConfig()
        self.store = store if store is not None else create_store(self.config)
        self.state = AttributionState(self.store)
        self._client = client or GatewayClient(self.config)

        self._api_key: Optional[str] = None
        self._lock = asyncio.Lock()
        self._inflight_registrations: Dict[str, asyncio.Task] = {}
        self._inflight_purchases: Dict[str, asyncio.Task] = {}
        self._pending_tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------ #
    # API key
    # ------------------------------------------------------------------ #

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key

    def _require_api_key(self) -> str:
        if not self._api_key:
            raise KeyNotSetError()
        return self._api_key

    async def initialize(self, api_key: str) -> KeyValidationResponse:
        """Set the API key and validate it against the gateway.

        The key stays set even when validation fails, so a later call can
        retry. When the app has retention tracking enabled an app-open
        notification is sent in the background.
        """
        if not api_key:
            raise KeyNotSetError("API key must be a non-empty string")

        async with self._lock:
            self._api_key = api_key

        validation = await self._validate_api_key(api_key)
        logger.info("Shinara SDK initialized (app_id=%s)", validation.app_id)

        if validation.track_retention:
            self._schedule_app_open(api_key)
        return validation

    async def _validate_api_key(self, api_key: str) -> KeyValidationResponse:
        response = await self._client.get(KEY_VALIDATE_PATH, api_key=api_key)
        if response.status_code != 200:
            logger.warning("API key validation failed with status %d", response.status_code)
            raise ValidationFailedError("API key validation failed", response.status_code)
        return GatewayResponseParser.parse_key_validation(
            response.content, response.status_code
        )

    # ------------------------------------------------------------------ #
    # Referral codes
    # ------------------------------------------------------------------ #

    async def resolve_referral(self, code: str) -> str:
        """Validate ``code`` and store it with its program and code ids.

        Returns the program id. Nothing is stored unless the gateway
        confirms the code with a non-empty program id.
        """
        if not code:
            raise ValueError("referral code must be a non-empty string")
        api_key = self._require_api_key()

        response = await self._client.post(
            CODE_VALIDATE_PATH, {"code": code}, api_key=api_key
        )
        if response.status_code != 200:
            logger.warning(
                "Referral code %r rejected with status %d", code, response.status_code
            )
            raise ValidationFailedError(
                "Referral code validation failed", response.status_code
            )

        parsed = GatewayResponseParser.parse_code_validation(
            response.content, response.status_code
        )
        if not parsed.program_id:
            logger.warning("Referral code %r resolved to no program", code)
            raise ValidationFailedError(
                "Referral code validation failed", response.status_code
            )

        async with self._lock:
            self._record_confirmed(
                "referral code",
                self.state.commit_referral,
                code,
                parsed.program_id,
                parsed.code_id,
            )
        logger.info("Referral code %r resolved to program %s", code, parsed.program_id)
        return parsed.program_id

    async def handle_deep_link(self, url: str) -> Optional[str]:
        """Resolve the referral code carried by ``url``, if there is one.

        Returns the program id, or ``None`` when the link has no referral
        parameter.
        """
        query = parse_qs(urlparse(url).query)
        code = next((v for v in query.get(self.config.referral_param, []) if v), None)
        if code is None:
            return None
        return await self.resolve_referral(code)

    # ------------------------------------------------------------------ #
    # Users
    # ------------------------------------------------------------------ #

    async def register_user(
        self,
        user_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> None:
        """Register ``user_id`` against the stored referral code.

        Registering an id that was already registered is a no-op.
        """
        if not user_id:
            raise ValueError("user_id must be a non-empty string")

        async with self._lock:
            api_key = self._require_api_key()
            referral_code = self.state.referral_code
            if referral_code is None:
                raise NoReferralCodeError()
            if self.state.is_user_registered(user_id):
                logger.debug("User %s already registered; skipping", user_id)
                return

            task = self._inflight_registrations.get(user_id)
            if task is None or task.done():
                request = UserRegistrationRequest(
                    code=referral_code,
                    platform=self.config.platform_tag,
                    conversion_user=ConversionUser(
                        external_user_id=user_id,
                        name=name,
                        email=email,
                        phone=phone,
                        auto_generated_external_user_id=self.state.auto_generated_user_id,
                    ),
                    code_id=self.state.code_id,
                )
                task = asyncio.create_task(
                    self._send_registration(api_key, user_id, request)
                )
                self._track_inflight(self._inflight_registrations, user_id, task)

        await asyncio.shield(task)

    async def _send_registration(
        self, api_key: str, user_id: str, request: UserRegistrationRequest
    ) -> None:
        response = await self._client.post(
            NEW_USER_PATH, request.to_json(), api_key=api_key
        )
        if response.status_code != 200:
            logger.warning(
                "Registration of user %s failed with status %d",
                user_id,
                response.status_code,
            )
            raise RegistrationFailedError("User registration failed", response.status_code)

        async with self._lock:
            self._record_confirmed("registration", self.state.commit_registration, user_id)
        logger.info("Registered user %s", user_id)

    def get_user_id(self) -> Optional[str]:
        return self.state.external_user_id

    # ------------------------------------------------------------------ #
    # Purchases
    # ------------------------------------------------------------------ #

    async def attribute_purchase(self, product_id: str, transaction_id: str) -> None:
        """Report a purchase for the stored referral code.

        Without a referral code there is nothing to attribute and the call
        does nothing. Transactions already attributed are skipped.
        """
        if not product_id:
            raise ValueError("product_id must be a non-empty string")
        if not transaction_id:
            raise ValueError("transaction_id must be a non-empty string")

        while True:
            async with self._lock:
                api_key = self._require_api_key()
                referral_code = self.state.referral_code
                if referral_code is None:
                    logger.debug(
                        "No referral code stored; not attributing transaction %s",
                        transaction_id,
                    )
                    return
                if self.state.is_transaction_processed(transaction_id):
                    logger.debug("Transaction %s already attributed; skipping", transaction_id)
                    return

                task = self._inflight_purchases.get(transaction_id)
                if task is not None and not task.done():
                    break

                external_user_id = self.state.external_user_id
                pending_registrations = [
                    t for t in self._inflight_registrations.values() if not t.done()
                ]
                if external_user_id is not None or not pending_registrations:
                    auto_generated_user_id = None
                    if external_user_id is None:
                        auto_generated_user_id = self.state.ensure_auto_generated_user_id()

                    request = PurchaseAttributionRequest(
                        product_id=product_id,
                        transaction_id=transaction_id,
                        code=referral_code,
                        platform=self.config.platform_tag,
                        code_id=self.state.code_id,
                        external_user_id=external_user_id,
                        auto_generated_user_id=auto_generated_user_id,
                    )
                    task = asyncio.create_task(self._send_purchase(api_key, request))
                    self._track_inflight(self._inflight_purchases, transaction_id, task)
                    break

            # A synthetic id minted while a registration is in flight would
            # never reach its /newuser merge; wait for it, then re-check.
            await asyncio.gather(
                *(asyncio.shield(t) for t in pending_registrations),
                return_exceptions=True,
            )

        await asyncio.shield(task)

    async def _send_purchase(
        self, api_key: str, request: PurchaseAttributionRequest
    ) -> None:
        response = await self._client.post(
            PURCHASE_PATH, request.to_json(), api_key=api_key
        )
        if response.status_code != 200:
            logger.warning(
                "Attribution of transaction %s failed with status %d",
                request.transaction_id,
                response.status_code,
            )
            raise AttributionFailedError("Purchase attribution failed", response.status_code)

        async with self._lock:
            self._record_confirmed(
                "attribution", self.state.commit_purchase, request.transaction_id
            )
        logger.info(
            "Attributed transaction %s (product %s)",
            request.transaction_id,
            request.product_id,
        )

    # ------------------------------------------------------------------ #
    # Read accessors
    # ------------------------------------------------------------------ #

    def get_referral_code(self) -> Optional[str]:
        return self.state.referral_code

    def get_program_id(self) -> Optional[str]:
        return self.state.program_id

    def get_code_id(self) -> Optional[str]:
        return self.state.code_id

    # ------------------------------------------------------------------ #
    # App open (fire-and-forget)
    # ------------------------------------------------------------------ #

    def _schedule_app_open(self, api_key: str) -> None:
        code_id = self.state.code_id
        if code_id is None:
            logger.debug("No referral code id stored; skipping app-open")
            return
        request = AppOpenRequest(
            code_id=code_id,
            external_user_id=self.state.external_user_id,
            auto_generated_user_id=self.state.auto_generated_user_id,
        )
        task = asyncio.create_task(self._send_app_open(api_key, request))
        self.register_pending_task(task)

    async def _send_app_open(self, api_key: str, request: AppOpenRequest) -> None:
        try:
            response = await self._client.post(
                APP_OPEN_PATH, request.to_json(), api_key=api_key
            )
            if response.status_code != 200:
                logger.warning("App-open notification returned %d", response.status_code)
        except Exception:
            logger.warning("App-open notification failed", exc_info=True)

    # ------------------------------------------------------------------ #
    # Task bookkeeping
    # ------------------------------------------------------------------ #

    @staticmethod
    def _record_confirmed(what: str, commit: Callable[..., None], *args: str) -> None:
        """Apply a commit for a change the gateway already accepted.

        A failing store only loses the local record; the remote action
        stands, so the error is logged rather than raised.
        """
        try:
            commit(*args)
        except OSError:
            logger.exception("Gateway accepted %s but persisting it failed", what)

    @staticmethod
    def _track_inflight(registry: Dict[str, asyncio.Task], key: str, task: asyncio.Task) -> None:
        registry[key] = task

        def _done(t: asyncio.Task) -> None:
            if registry.get(key) is t:
                del registry[key]
            # Mark the outcome as retrieved even if every awaiter was cancelled.
            if not t.cancelled():
                t.exception()

        task.add_done_callback(_done)

    def register_pending_task(self, task: asyncio.Task) -> None:
        """Track a detached task so ``close()`` can wait for it."""
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)

    async def drain_pending(self) -> None:
        """Await every detached task, including ones scheduled meanwhile."""
        while self._pending_tasks:
            await asyncio.gather(*list(self._pending_tasks), return_exceptions=True)

    async def close(self) -> None:
        """Wait for background work, then release the HTTP client."""
        await self.drain_pending()
        await self._client.aclose()
        logger.info("AttributionEngine closed")

    async def __aenter__(self) -> "AttributionEngine":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
