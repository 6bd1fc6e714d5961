"""Purchase event source adapter.

Bridges a platform's purchase-transaction notifications to
``AttributionEngine.attribute_purchase``. The platform channel has no
retry of its own, so every purchased or restored transaction is finished
exactly once whether or not attribution succeeded.

Usage::

    observer = PurchaseObserver(engine, source=my_store_queue)
    await observer.on_transactions_updated(
        [PurchaseTransaction("txn_1", "pro_monthly", TransactionState.PURCHASED)]
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterable, List, Protocol

if TYPE_CHECKING:
    from shinara_sdk.engine import AttributionEngine

logger = logging.getLogger(__name__)


class TransactionState(str, Enum):
    """Lifecycle states reported by the purchase queue."""

    PURCHASED = "purchased"
    RESTORED = "restored"
    FAILED = "failed"
    DEFERRED = "deferred"
    PENDING = "pending"

    @property
    def is_attributable(self) -> bool:
        return self in (TransactionState.PURCHASED, TransactionState.RESTORED)

    @property
    def is_terminal(self) -> bool:
        return self not in (TransactionState.DEFERRED, TransactionState.PENDING)


@dataclass(frozen=True)
class PurchaseTransaction:
    transaction_id: str
    product_id: str
    state: TransactionState


class PurchaseEventSource(Protocol):
    """Platform purchase queue that must be told when a transaction is done."""

    async def finish_transaction(self, transaction: PurchaseTransaction) -> None: ...


class PurchaseObserver:
    """Attributes completed transactions and acknowledges them."""

    def __init__(self, engine: "AttributionEngine", source: PurchaseEventSource) -> None:
        self.engine = engine
        self.source = source

    async def on_transactions_updated(
        self, transactions: Iterable[PurchaseTransaction]
    ) -> List[PurchaseTransaction]:
        """Handle one batch of notifications.

        Returns the transactions that were finished. Deferred and pending
        transactions are left for a later notification, as is one the
        source failed to finish; the rest of the batch still proceeds.
        """
        finished: List[PurchaseTransaction] = []
        for transaction in transactions:
            if not transaction.state.is_terminal:
                logger.debug(
                    "Transaction %s is %s; waiting",
                    transaction.transaction_id,
                    transaction.state.value,
                )
                continue

            try:
                if transaction.state.is_attributable:
                    await self._attribute(transaction)
            finally:
                if await self._finish(transaction):
                    finished.append(transaction)
        return finished

    async def _finish(self, transaction: PurchaseTransaction) -> bool:
        try:
            await self.source.finish_transaction(transaction)
        except Exception:
            logger.exception(
                "Finishing transaction %s failed", transaction.transaction_id
            )
            return False
        return True

    async def _attribute(self, transaction: PurchaseTransaction) -> None:
        try:
            await self.engine.attribute_purchase(
                transaction.product_id, transaction.transaction_id
            )
        except Exception:
            logger.exception(
                "Attribution of transaction %s failed; finishing anyway",
                transaction.transaction_id,
            )
