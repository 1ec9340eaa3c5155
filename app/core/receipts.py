"""Hook for the external receipt service. Called once per payment that resolves to successful."""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from app.core.models import PaymentRecord

if TYPE_CHECKING:
    from app.api.v1.payments.ledger import ChainLedger

logger = logging.getLogger(__name__)


class ReceiptIssuer(ABC):
    @abstractmethod
    async def issue(self, record: PaymentRecord, ledger: "ChainLedger") -> None:
        """Hand a successful payment to the receipt service. Must not modify the record."""
        ...


class LoggingReceiptIssuer(ReceiptIssuer):
    """Default issuer: records that a receipt is due. Replace with the receipt service client."""

    async def issue(self, record: PaymentRecord, ledger: "ChainLedger") -> None:
        logger.info(
            "Receipt due for payment %s (ref=%s, amount_paid=%s, chain balance_due=%s)",
            record.id,
            record.transaction_reference,
            record.amount_paid,
            ledger.balance_due,
        )
