"""Attribution state aggregate and its persistence mapping.

``AttributionState`` is the single owned record of referral, identity and
dedup data. Each ``commit_*`` method writes to the store first and only
then updates memory, so readers never observe a change the store rejected.
The engine is responsible for serializing calls.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, FrozenSet, List, Optional

from shinara_sdk.storage import KeyValueStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Persisted keys
# ---------------------------------------------------------------------------

REFERRAL_CODE_KEY = "SHINARA_SDK_REFERRAL_CODE"
PROGRAM_ID_KEY = "SHINARA_SDK_PROGRAM_ID"
CODE_ID_KEY = "SHINARA_SDK_REFERRAL_CODE_ID"
EXTERNAL_USER_ID_KEY = "SHINARA_SDK_EXTERNAL_USER_ID"
AUTO_GEN_USER_ID_KEY = "SHINARA_SDK_AUTO_GEN_EXTERNAL_USER_ID"
REGISTERED_USERS_KEY = "SHINARA_SDK_REGISTERED_USERS"
PROCESSED_TRANSACTIONS_KEY = "SHINARA_SDK_PROCESSED_TRANSACTIONS"


def _load_str(store: KeyValueStore, key: str) -> Optional[str]:
    value = store.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def _load_list(store: KeyValueStore, key: str) -> List[str]:
    value = store.get(key)
    if not isinstance(value, list):
        return []
    # dict.fromkeys keeps first-seen order while dropping repeats
    return list(dict.fromkeys(str(v) for v in value))


class AttributionState:
    """Referral, identity and dedup state backed by a ``KeyValueStore``."""

    def __init__(self, store: KeyValueStore):
        self.store = store

        self.referral_code = _load_str(store, REFERRAL_CODE_KEY)
        self.program_id = _load_str(store, PROGRAM_ID_KEY)
        self.code_id = _load_str(store, CODE_ID_KEY)
        if self.referral_code is None or self.program_id is None:
            if self.referral_code or self.program_id or self.code_id:
                logger.warning("Discarding incomplete persisted referral state")
            self.referral_code = self.program_id = self.code_id = None

        self.external_user_id = _load_str(store, EXTERNAL_USER_ID_KEY)
        self.auto_generated_user_id = _load_str(store, AUTO_GEN_USER_ID_KEY)
        if self.external_user_id is not None:
            self.auto_generated_user_id = None

        self._registered_user_ids = _load_list(store, REGISTERED_USERS_KEY)
        self._processed_transaction_ids = _load_list(store, PROCESSED_TRANSACTIONS_KEY)

    # -- reads --

    @property
    def registered_user_ids(self) -> FrozenSet[str]:
        return frozenset(self._registered_user_ids)

    @property
    def processed_transaction_ids(self) -> FrozenSet[str]:
        return frozenset(self._processed_transaction_ids)

    def is_user_registered(self, user_id: str) -> bool:
        return user_id in self._registered_user_ids

    def is_transaction_processed(self, transaction_id: str) -> bool:
        return transaction_id in self._processed_transaction_ids

    def snapshot(self) -> Dict[str, Any]:
        return {
            "referral_code": self.referral_code,
            "program_id": self.program_id,
            "code_id": self.code_id,
            "external_user_id": self.external_user_id,
            "auto_generated_user_id": self.auto_generated_user_id,
            "registered_user_ids": list(self._registered_user_ids),
            "processed_transaction_ids": list(self._processed_transaction_ids),
        }

    # -- commits --

    def commit_referral(
        self, referral_code: str, program_id: str, code_id: Optional[str]
    ) -> None:
        """Replace all three referral fields together."""
        self.store.update(
            {
                REFERRAL_CODE_KEY: referral_code,
                PROGRAM_ID_KEY: program_id,
                CODE_ID_KEY: code_id,
            }
        )
        self.referral_code = referral_code
        self.program_id = program_id
        self.code_id = code_id

    def commit_registration(self, user_id: str) -> None:
        """Adopt ``user_id`` as the real identity and retire the synthetic one."""
        registered = self._registered_user_ids
        if user_id not in registered:
            registered = registered + [user_id]
        self.store.update(
            {
                EXTERNAL_USER_ID_KEY: user_id,
                AUTO_GEN_USER_ID_KEY: None,
                REGISTERED_USERS_KEY: registered,
            }
        )
        self.external_user_id = user_id
        self.auto_generated_user_id = None
        self._registered_user_ids = registered

    def commit_purchase(self, transaction_id: str) -> None:
        if transaction_id in self._processed_transaction_ids:
            return
        processed = self._processed_transaction_ids + [transaction_id]
        self.store.update({PROCESSED_TRANSACTIONS_KEY: processed})
        self._processed_transaction_ids = processed

    def ensure_auto_generated_user_id(self) -> str:
        """Return the synthetic user id, creating and persisting it once."""
        if self.auto_generated_user_id is None:
            generated = str(uuid.uuid4())
            self.store.update({AUTO_GEN_USER_ID_KEY: generated})
            self.auto_generated_user_id = generated
            logger.debug("Generated synthetic user id %s", generated)
        return self.auto_generated_user_id
