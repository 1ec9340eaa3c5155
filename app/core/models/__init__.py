from app.core.models.program import Program
from app.core.models.fee import Fee
from app.core.models.payment_record import PaymentRecord
from app.core.models.payment_audit_log import PaymentAuditLog

__all__ = [
    "Program",
    "Fee",
    "PaymentRecord",
    "PaymentAuditLog",
]
