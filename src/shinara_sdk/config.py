"""SDK configuration.

Defaults are read from the environment so that host applications can
redirect the SDK (staging gateway, persisted state file) without code
changes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_BASE_URL = "https://sdk-gateway-b85kv8d1.ue.gateway.dev"


def _truthy(value: str) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "y", "on")


@dataclass(frozen=True)
class SDKConfig:
    # -----------------
    # Gateway
    # -----------------
    base_url: str = os.getenv("SHINARA_BASE_URL", DEFAULT_BASE_URL)
    platform_tag: str = os.getenv("SHINARA_PLATFORM", "python")
    timeout_seconds: float = float(os.getenv("SHINARA_TIMEOUT_SECONDS", "30"))

    # -----------------
    # Deep links
    # -----------------
    referral_param: str = os.getenv("SHINARA_REFERRAL_PARAM", "shinara_ref_code")

    # -----------------
    # Persistence
    # -----------------
    # Empty means state only lives for the lifetime of the process.
    state_path: str = os.getenv("SHINARA_STATE_PATH", "")

    # -----------------
    # Diagnostics
    # -----------------
    log_requests: bool = _truthy(os.getenv("SHINARA_LOG_REQUESTS", "false"))

    @classmethod
    def from_env(cls) -> "SDKConfig":
        """Build a config from the current environment (not import-time)."""
        return cls(
            base_url=os.getenv("SHINARA_BASE_URL", DEFAULT_BASE_URL),
            platform_tag=os.getenv("SHINARA_PLATFORM", "python"),
            timeout_seconds=float(os.getenv("SHINARA_TIMEOUT_SECONDS", "30")),
            referral_param=os.getenv("SHINARA_REFERRAL_PARAM", "shinara_ref_code"),
            state_path=os.getenv("SHINARA_STATE_PATH", ""),
            log_requests=_truthy(os.getenv("SHINARA_LOG_REQUESTS", "false")),
        )
