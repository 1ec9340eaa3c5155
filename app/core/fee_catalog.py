"""
Read-only access to the fee catalog.

The catalog itself is maintained elsewhere; the payment core only looks fees up,
checks level eligibility and snapshots amounts at initiation.
"""

from decimal import Decimal
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import StudentLevel
from app.core.exceptions import NotFoundError, ValidationError
from app.core.models import Fee
from app.core.money import round_amount, sum_amounts

CENT = Decimal("0.01")


async def get_fees(db: AsyncSession, fee_ids: Sequence[UUID]) -> List[Fee]:
    """Return active fees in the order requested. Any unknown or inactive id is a NotFoundError."""
    if not fee_ids:
        raise ValidationError("At least one fee must be selected")
    result = await db.execute(select(Fee).where(Fee.id.in_(list(fee_ids)), Fee.is_active.is_(True)))
    by_id = {f.id: f for f in result.scalars().all()}
    missing = [str(i) for i in fee_ids if i not in by_id]
    if missing:
        raise NotFoundError("Fee not found", details={"feeIds": missing})
    return [by_id[i] for i in fee_ids]


def is_level_eligible(levels: Optional[Iterable[str]], level: Optional[str]) -> bool:
    allowed = [str(lv).upper() for lv in (levels or [])]
    if not allowed or StudentLevel.ALL.value in allowed:
        return True
    return level is not None and level.upper() in allowed


def check_level_eligibility(fees: Iterable[Fee], level: Optional[str]) -> None:
    for fee in fees:
        if not is_level_eligible(fee.levels, level):
            if level is None:
                raise ValidationError(
                    f"Level is required for fee '{fee.fee_category}'",
                    details={"feeId": str(fee.id), "eligibleLevels": fee.levels},
                )
            raise ValidationError(
                f"Level {level} is not eligible for fee '{fee.fee_category}'",
                details={"feeId": str(fee.id), "eligibleLevels": fee.levels},
            )


def snapshot_fees(fees: Iterable[Fee]) -> List[dict]:
    return [
        {
            "fee_id": str(fee.id),
            "fee_category": fee.fee_category,
            "amount": str(round_amount(fee.amount, CENT)),
        }
        for fee in fees
    ]


def snapshot_total(snapshot: Iterable[dict]):
    return sum_amounts(item["amount"] for item in snapshot)


def snapshot_fee_ids(snapshot: Iterable[dict]) -> List[str]:
    return [item["fee_id"] for item in snapshot]
