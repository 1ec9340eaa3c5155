"""
Balance ledger: a derived view over every payment record in a chain.

Nothing here is stored. Totals are folded from PaymentRecords each time, so the paid
amount can never drift from the records that back it.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import PaymentStatus
from app.core.exceptions import ConflictError, NotFoundError
from app.core.fee_catalog import snapshot_total
from app.core.models import PaymentRecord
from app.core.money import percentage_of, round_amount, sum_amounts

DISPLAY_PERCENT_QUANTUM = Decimal("0.01")


@dataclass
class ChainLedger:
    root: PaymentRecord
    records: List[PaymentRecord] = field(default_factory=list)
    total_amount_due: Decimal = Decimal("0")
    total_amount_paid: Decimal = Decimal("0")

    @property
    def balance_due(self) -> Decimal:
        return max(Decimal("0"), self.total_amount_due - self.total_amount_paid)

    @property
    def percentage_paid(self) -> Decimal:
        return percentage_of(self.total_amount_paid, self.total_amount_due)

    @property
    def percentage_paid_display(self) -> Decimal:
        return round_amount(self.percentage_paid, DISPLAY_PERCENT_QUANTUM)

    @property
    def is_settled(self) -> bool:
        return self.balance_due <= 0

    @property
    def items(self) -> List[dict]:
        return list(self.root.fee_snapshot or [])


def build_ledger(root: PaymentRecord, records: Iterable[PaymentRecord]) -> ChainLedger:
    """Fold chain records into totals. Only the root's fee snapshot defines what is owed."""
    chain = list(records)
    if all(r is not root and (root.id is None or r.id != root.id) for r in chain):
        chain.insert(0, root)
    paid = sum_amounts(
        r.amount_paid for r in chain if r.status == PaymentStatus.successful.value and r.amount_paid is not None
    )
    return ChainLedger(
        root=root,
        records=chain,
        total_amount_due=snapshot_total(root.fee_snapshot or []),
        total_amount_paid=paid,
    )


async def get_payment_by_reference(db: AsyncSession, reference: str) -> Optional[PaymentRecord]:
    result = await db.execute(
        select(PaymentRecord)
        .where(PaymentRecord.transaction_reference == reference)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def find_root(db: AsyncSession, record: PaymentRecord) -> PaymentRecord:
    """Follow original_reference links up to the record that has none."""
    seen = {record.transaction_reference}
    current = record
    while current.original_reference is not None:
        if current.original_reference in seen:
            raise ConflictError(
                "Payment chain is cyclic",
                details={"reference": record.transaction_reference},
            )
        seen.add(current.original_reference)
        parent = await get_payment_by_reference(db, current.original_reference)
        if parent is None:
            raise NotFoundError(
                "Original payment not found",
                details={"reference": current.original_reference},
            )
        current = parent
    return current


async def load_chain_records(db: AsyncSession, root: PaymentRecord) -> List[PaymentRecord]:
    """Root plus every record whose original_reference leads back to it, breadth first."""
    records = [root]
    seen = {root.transaction_reference}
    frontier = [root.transaction_reference]
    while frontier:
        result = await db.execute(
            select(PaymentRecord)
            .where(PaymentRecord.original_reference.in_(frontier))
            .order_by(PaymentRecord.created_at)
            .execution_options(populate_existing=True)
        )
        frontier = []
        for child in result.scalars().all():
            if child.transaction_reference in seen:
                continue
            seen.add(child.transaction_reference)
            records.append(child)
            frontier.append(child.transaction_reference)
    return records


async def resolve_chain(db: AsyncSession, reference: str) -> ChainLedger:
    """Ledger for the chain containing ``reference`` (root or any descendant)."""
    record = await get_payment_by_reference(db, reference)
    if record is None:
        raise NotFoundError("Payment not found", details={"reference": reference})
    root = await find_root(db, record)
    return build_ledger(root, await load_chain_records(db, root))
