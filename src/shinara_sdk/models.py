"""Gateway wire models.

Request payloads serialize with ``to_json()``, which drops unset optional
fields so the gateway never sees explicit nulls. Response models are built
by ``GatewayResponseParser``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeyValidationResponse:
    """Body of ``GET /api/key/validate``."""

    app_id: str
    track_retention: Optional[bool] = None


@dataclass(frozen=True)
class CodeValidationResponse:
    """Body of ``POST /api/code/validate``.

    ``program_id`` is ``campaign_id`` on the wire and ``code_id`` is
    ``affiliate_code_id``. Older gateway versions omit the code id.
    """

    program_id: Optional[str] = None
    code_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass
class ConversionUser:
    external_user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    # Lets the backend merge the synthetic identity into the real one.
    auto_generated_external_user_id: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "external_user_id": self.external_user_id,
                "name": self.name,
                "email": self.email,
                "phone": self.phone,
                "auto_generated_external_user_id": self.auto_generated_external_user_id,
            }
        )


@dataclass
class UserRegistrationRequest:
    code: str
    platform: str
    conversion_user: ConversionUser
    code_id: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "code": self.code,
                "platform": self.platform,
                "conversion_user": self.conversion_user.to_json(),
                "affiliate_code_id": self.code_id,
            }
        )


@dataclass
class PurchaseAttributionRequest:
    """Exactly one of ``external_user_id`` / ``auto_generated_user_id`` is set."""

    product_id: str
    transaction_id: str
    code: str
    platform: str
    code_id: Optional[str] = None
    external_user_id: Optional[str] = None
    auto_generated_user_id: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.external_user_id is None) == (self.auto_generated_user_id is None):
            raise ValueError(
                "exactly one of external_user_id and auto_generated_user_id is required"
            )

    def to_json(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "product_id": self.product_id,
                "transaction_id": self.transaction_id,
                "code": self.code,
                "platform": self.platform,
                "affiliate_code_id": self.code_id,
                "external_user_id": self.external_user_id,
                "auto_generated_external_user_id": self.auto_generated_user_id,
            }
        )


@dataclass
class AppOpenRequest:
    code_id: str
    external_user_id: Optional[str] = None
    auto_generated_user_id: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "affiliate_code_id": self.code_id,
                "external_user_id": self.external_user_id,
                "auto_generated_external_user_id": self.auto_generated_user_id,
            }
        )
