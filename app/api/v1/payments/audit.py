from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import PaymentAuditAction
from app.core.models import PaymentAuditLog, PaymentRecord


def log_payment_audit(
    db: AsyncSession,
    record: PaymentRecord,
    action: PaymentAuditAction,
    old_value: Optional[dict] = None,
    new_value: Optional[dict] = None,
) -> None:
    """Append one audit entry for ``record``. Caller must flush/commit."""
    db.add(
        PaymentAuditLog(
            payment_id=record.id,
            transaction_reference=record.transaction_reference,
            action_type=action.value,
            old_value=old_value,
            new_value=new_value,
        )
    )
