"""Shinara SDK — referral attribution for apps.

Validates an API key, resolves referral codes, registers users against the
referral that brought them in and reports in-app purchases for attribution.

Integration points (pick any or combine):
    1. Direct API          — call engine.register_user() / attribute_purchase()
    2. Purchase observer   — feed platform transaction updates to PurchaseObserver
    3. Starlette middleware — resolve referral links hitting a web app (optional)
"""

from shinara_sdk.client import GatewayClient, GatewayResponseLogHook
from shinara_sdk.config import SDKConfig
from shinara_sdk.engine import AttributionEngine
from shinara_sdk.exceptions import (
    UNKNOWN_STATUS,
    AttributionFailedError,
    DecodeError,
    GatewayStatusError,
    KeyNotSetError,
    NoReferralCodeError,
    RegistrationFailedError,
    ShinaraError,
    TransportError,
    ValidationFailedError,
)
from shinara_sdk.purchases import (
    PurchaseEventSource,
    PurchaseObserver,
    PurchaseTransaction,
    TransactionState,
)
from shinara_sdk.storage import InMemoryStore, JSONFileStore, KeyValueStore, create_store


def __getattr__(name: str):
    if name == "ReferralLinkMiddleware":
        from shinara_sdk.middleware import ReferralLinkMiddleware

        return ReferralLinkMiddleware
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "AttributionEngine",
    "SDKConfig",
    "GatewayClient",
    "GatewayResponseLogHook",
    "KeyValueStore",
    "InMemoryStore",
    "JSONFileStore",
    "create_store",
    "PurchaseObserver",
    "PurchaseEventSource",
    "PurchaseTransaction",
    "TransactionState",
    "ReferralLinkMiddleware",
    "ShinaraError",
    "KeyNotSetError",
    "NoReferralCodeError",
    "GatewayStatusError",
    "ValidationFailedError",
    "RegistrationFailedError",
    "AttributionFailedError",
    "TransportError",
    "DecodeError",
    "UNKNOWN_STATUS",
]

__version__ = "0.1.0"
