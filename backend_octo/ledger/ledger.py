"""
Donation ledger: the at-most-once credit gate between transfers and HP.

submit() deduplicates by signature against the durable store, converts the
amount to HP with the exchange rule and credits the vitality state machine.
The processed record and the post-credit vitality snapshot are committed in
one store transaction while the machine's lock is held, and memory changes
only after that commit succeeds, so a signature can never be credited twice:
not across poll/push overlap, not across concurrent submits, not across
restarts.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from backend_octo.core.exceptions import LedgerUnavailable, StoreUnavailable
from backend_octo.database.database import DonationStore
from backend_octo.database.models import ProcessedSignatureRecord
from backend_octo.ledger.exchange import ExchangeRule
from backend_octo.notifications.events import DonationAccepted, Event
from backend_octo.octo_logging import get_logger
from backend_octo.solana_listener.models import IncomingTransfer
from backend_octo.vitality.machine import VitalitySnapshot, VitalityStateMachine

logger = get_logger(__name__)


class CreditStatus(str, Enum):
    CREDITED = "credited"
    BELOW_MINIMUM = "below_minimum"
    ALREADY_PROCESSED = "already_processed"


@dataclass(frozen=True)
class CreditResult:
    status: CreditStatus
    credit_amount: int = 0

    @property
    def credited(self) -> bool:
        return self.status is CreditStatus.CREDITED


ALREADY_PROCESSED = CreditResult(CreditStatus.ALREADY_PROCESSED, 0)


class DonationLedger:
    def __init__(
        self,
        store: DonationStore,
        vitality: VitalityStateMachine,
        *,
        exchange: ExchangeRule | None = None,
        publish: Callable[[Event], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._vitality = vitality
        self._exchange = exchange or ExchangeRule()
        self._publish = publish
        self._clock = clock

    @property
    def exchange(self) -> ExchangeRule:
        return self._exchange

    async def submit(self, transfer: IncomingTransfer) -> CreditResult:
        """
        Credit a transfer at most once.

        Raises ValueError for a non-positive amount and LedgerUnavailable when
        the store cannot be read or written; the caller must retry the same
        transfer later.
        """
        if transfer.amount <= 0:
            raise ValueError(f"transfer amount must be positive, got {transfer.amount}")
        sig = transfer.signature
        try:
            if self._store.has_processed(sig):
                logger.debug("ledger_already_processed", signature=sig)
                return ALREADY_PROCESSED

            credit_amount = self._exchange.credits_for(transfer.amount)
            record = ProcessedSignatureRecord.from_transfer(
                transfer, credit_amount, int(self._clock())
            )

            if credit_amount == 0:
                if not self._store.mark_processed(record):
                    return ALREADY_PROCESSED
                logger.info(
                    "ledger_below_minimum",
                    signature=sig,
                    amount_sol=str(transfer.amount),
                    minimum_sol=str(self._exchange.minimum),
                )
                return CreditResult(CreditStatus.BELOW_MINIMUM, 0)

            def _commit(snapshot: VitalitySnapshot) -> bool:
                return self._store.mark_processed(record, snapshot)

            applied = await self._vitality.credit(credit_amount, commit=_commit)
        except StoreUnavailable as e:
            logger.error("ledger_unavailable", signature=sig, error=str(e))
            raise LedgerUnavailable(sig, e) from e

        if not applied:
            logger.debug("ledger_lost_race", signature=sig)
            return ALREADY_PROCESSED

        logger.info(
            "ledger_credited",
            signature=sig,
            amount_sol=str(transfer.amount),
            credit_amount=credit_amount,
            resource=self._vitality.resource,
            phase=self._vitality.phase.value,
        )
        if self._publish is not None:
            self._publish(
                DonationAccepted(
                    signature=sig,
                    amount=transfer.amount,
                    credit_amount=credit_amount,
                    counterparty=transfer.counterparty,
                )
            )
        return CreditResult(CreditStatus.CREDITED, credit_amount)
