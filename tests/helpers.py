from typing import List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.payments.ledger import ChainLedger
from app.core.models import PaymentAuditLog, PaymentRecord
from app.core.receipts import ReceiptIssuer


class RecordingReceiptIssuer(ReceiptIssuer):
    def __init__(self) -> None:
        self.issued: List[str] = []

    async def issue(self, record: PaymentRecord, ledger: ChainLedger) -> None:
        self.issued.append(record.transaction_reference)


async def count_records(session: AsyncSession) -> int:
    return (await session.execute(select(func.count()).select_from(PaymentRecord))).scalar_one()


async def audit_actions(session: AsyncSession, reference: str) -> List[str]:
    result = await session.execute(
        select(PaymentAuditLog.action_type).where(PaymentAuditLog.transaction_reference == reference)
    )
    return sorted(result.scalars().all())
