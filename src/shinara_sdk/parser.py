"""Decode gateway JSON bodies into response models.

Every failure to decode raises ``DecodeError`` carrying the HTTP status of
the response that could not be decoded.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from shinara_sdk.exceptions import DecodeError
from shinara_sdk.models import CodeValidationResponse, KeyValidationResponse


class GatewayResponseParser:
    """Turn raw gateway response bodies into typed responses."""

    # ------------------------------------------------------------------ #
    # Raw JSON
    # ------------------------------------------------------------------ #

    @classmethod
    def load(cls, content: Optional[bytes], status_code: int) -> Dict[str, Any]:
        """Decode a JSON object body.

        Empty bodies, invalid JSON and non-object documents are all
        decode failures.
        """
        if not content:
            raise DecodeError("Empty response body", status_code)
        try:
            body = json.loads(content)
        except ValueError as exc:
            raise DecodeError(f"Invalid JSON response: {exc}", status_code) from exc
        if not isinstance(body, dict):
            raise DecodeError(
                f"Expected a JSON object, got {type(body).__name__}", status_code
            )
        return body

    # ------------------------------------------------------------------ #
    # Typed responses
    # ------------------------------------------------------------------ #

    @classmethod
    def parse_key_validation(
        cls, content: Optional[bytes], status_code: int
    ) -> KeyValidationResponse:
        body = cls.load(content, status_code)

        app_id = body.get("app_id")
        if app_id is None or isinstance(app_id, (dict, list, bool)):
            raise DecodeError("Key validation response has no app_id", status_code)

        track_retention = body.get("track_retention")
        if track_retention is not None and not isinstance(track_retention, bool):
            raise DecodeError("track_retention must be a boolean", status_code)

        return KeyValidationResponse(
            app_id=str(app_id), track_retention=track_retention
        )

    @classmethod
    def parse_code_validation(
        cls, content: Optional[bytes], status_code: int
    ) -> CodeValidationResponse:
        """Decode a code validation body.

        A missing ``campaign_id`` is not a decode error; the engine decides
        what an empty program id means.
        """
        body = cls.load(content, status_code)
        return CodeValidationResponse(
            program_id=cls._optional_str(body, "campaign_id", status_code),
            code_id=cls._optional_str(body, "affiliate_code_id", status_code),
        )

    @staticmethod
    def _optional_str(body: Dict[str, Any], key: str, status_code: int) -> Optional[str]:
        value = body.get(key)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise DecodeError(f"{key} must be a string", status_code)
        value = str(value)
        return value or None
