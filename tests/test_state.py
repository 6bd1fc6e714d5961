"""Tests for AttributionState."""

from shinara_sdk.state import (
    AUTO_GEN_USER_ID_KEY,
    CODE_ID_KEY,
    EXTERNAL_USER_ID_KEY,
    PROCESSED_TRANSACTIONS_KEY,
    PROGRAM_ID_KEY,
    REFERRAL_CODE_KEY,
    REGISTERED_USERS_KEY,
    AttributionState,
)
from shinara_sdk.storage import InMemoryStore


class TestLoad:
    def test_empty_store(self):
        state = AttributionState(InMemoryStore())

        assert state.referral_code is None
        assert state.registered_user_ids == frozenset()
        assert state.processed_transaction_ids == frozenset()

    def test_loads_persisted_values(self):
        store = InMemoryStore(
            {
                REFERRAL_CODE_KEY: "TEST01",
                PROGRAM_ID_KEY: "camp_123",
                CODE_ID_KEY: "code_1",
                EXTERNAL_USER_ID_KEY: "u1",
                REGISTERED_USERS_KEY: ["u1", "u1"],
                PROCESSED_TRANSACTIONS_KEY: ["t1"],
            }
        )

        state = AttributionState(store)

        assert state.program_id == "camp_123"
        assert state.code_id == "code_1"
        assert state.is_user_registered("u1")
        assert state.snapshot()["registered_user_ids"] == ["u1"]

    def test_referral_without_program_is_discarded(self):
        state = AttributionState(
            InMemoryStore({REFERRAL_CODE_KEY: "TEST01", CODE_ID_KEY: "code_1"})
        )

        assert state.referral_code is None
        assert state.code_id is None

    def test_real_identity_supersedes_synthetic(self):
        state = AttributionState(
            InMemoryStore({EXTERNAL_USER_ID_KEY: "u1", AUTO_GEN_USER_ID_KEY: "auto"})
        )

        assert state.auto_generated_user_id is None

    def test_malformed_lists_ignored(self):
        state = AttributionState(InMemoryStore({PROCESSED_TRANSACTIONS_KEY: "t1"}))

        assert state.processed_transaction_ids == frozenset()


class TestCommits:
    def test_commit_referral_clears_missing_code_id(self):
        store = InMemoryStore()
        state = AttributionState(store)
        state.commit_referral("A", "camp_a", "code_a")

        state.commit_referral("B", "camp_b", None)

        assert store.get(REFERRAL_CODE_KEY) == "B"
        assert store.get(CODE_ID_KEY) is None
        assert state.code_id is None

    def test_commit_registration(self):
        store = InMemoryStore()
        state = AttributionState(store)
        generated = state.ensure_auto_generated_user_id()

        state.commit_registration("u1")

        assert generated
        assert state.external_user_id == "u1"
        assert state.auto_generated_user_id is None
        assert store.get(AUTO_GEN_USER_ID_KEY) is None
        assert store.get(REGISTERED_USERS_KEY) == ["u1"]

    def test_auto_generated_id_created_once(self):
        state = AttributionState(InMemoryStore())

        assert state.ensure_auto_generated_user_id() == state.ensure_auto_generated_user_id()

    def test_commit_purchase_is_idempotent(self):
        store = InMemoryStore()
        state = AttributionState(store)

        state.commit_purchase("t1")
        state.commit_purchase("t1")

        assert store.get(PROCESSED_TRANSACTIONS_KEY) == ["t1"]
