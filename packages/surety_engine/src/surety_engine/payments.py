"""
Payment gateways.

Outward transfers (stake refunds, insurance payouts) leave the ledger
through a PaymentGateway. A transfer runs synchronously inside the ledger
operation that issues it, so a gateway may call back into the ledger; the
reentrancy guard is what keeps such callbacks from corrupting state.
Raising from transfer() aborts the whole operation.

The ledger calls confirm() after the operation commits and discard() after
it rolls back, so a gateway never treats a transfer of an aborted operation
as final.
"""

import logging
from datetime import datetime
from typing import Any, Callable
from uuid import uuid4

from sqlalchemy.orm import Session

from surety_engine.persistence.repo import LedgerRepository

logger = logging.getLogger(__name__)


class PaymentGateway:
    """Outward transfer channel."""

    def transfer(self, recipient: str, amount: int, reason: str) -> None:
        raise NotImplementedError

    def confirm(self) -> None:
        """The operation that issued the pending transfers committed."""

    def discard(self) -> None:
        """The operation that issued the pending transfers rolled back."""


class RecordingPaymentGateway(PaymentGateway):
    """
    Development gateway.

    - Records transfers; only those of committed operations reach `transfers`
    - Optionally invokes a hook with (recipient, amount, reason), which can be
      used to simulate a recipient that calls back into the ledger
    """

    def __init__(self, on_transfer: Callable[[str, int, str], None] | None = None):
        self.on_transfer = on_transfer
        self.transfers: list[dict[str, Any]] = []
        self.pending: list[dict[str, Any]] = []

    def transfer(self, recipient: str, amount: int, reason: str) -> None:
        self.pending.append({
            "recipient": recipient,
            "amount": amount,
            "reason": reason,
            "timestamp": datetime.utcnow().isoformat(),
        })

        logger.info(
            f"[RECORDING] Transfer of {amount} to {recipient}",
            extra={"recipient": recipient, "amount": str(amount), "reason": reason},
        )

        if self.on_transfer:
            self.on_transfer(recipient, amount, reason)

    def confirm(self) -> None:
        self.transfers.extend(self.pending)
        self.pending = []

    def discard(self) -> None:
        if self.pending:
            logger.info(f"[RECORDING] Dropped {len(self.pending)} transfers of an aborted operation")
        self.pending = []

    def total_to(self, recipient: str) -> int:
        return sum(t["amount"] for t in self.transfers if t["recipient"] == recipient)


class OutboxPaymentGateway(PaymentGateway):
    """
    Queues transfer instructions in the ledger outbox.

    The instruction row is written in the operation's transaction, so it is
    committed or rolled back together with the credit or stake it settles.
    The outbox relay publishes it to `stream_name` for the settlement side;
    `instruction_id` lets that side drop a redelivered instruction.
    """

    def __init__(self, db: Session, stream_name: str):
        self.repo = LedgerRepository(db)
        self.stream_name = stream_name

    def transfer(self, recipient: str, amount: int, reason: str) -> None:
        instruction_id = str(uuid4())
        self.repo.add_outbox_message(
            instruction_id,
            self.stream_name,
            "transfer",
            {
                "instruction_id": instruction_id,
                "recipient": recipient,
                "amount": str(amount),
                "reason": reason,
                "requested_at": datetime.utcnow().isoformat(),
            },
        )

        logger.info(
            f"Transfer instruction queued for {recipient}",
            extra={"instruction_id": instruction_id, "amount": str(amount), "reason": reason},
        )
