"""Payment audit log: immutable lifecycle trail for every payment record."""

import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base, utc_now


class PaymentAuditLog(Base):
    """Append-only. Written in the same transaction as the change it records."""

    __tablename__ = "payment_audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_id = Column(Uuid, ForeignKey("payment_records.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_reference = Column(String(64), nullable=False, index=True)
    action_type = Column(String(30), nullable=False)  # see PaymentAuditAction
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    payment = relationship("PaymentRecord", backref="audit_logs")
