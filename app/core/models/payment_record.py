"""Payment record: one gateway transaction attempt against a fee obligation."""

import uuid

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, Text, Uuid

from app.core.enums import PaymentStatus
from app.db.session import Base, utc_now


class PaymentRecord(Base):
    """
    Created pending by the initiator, resolved exactly once by the verification engine.
    fee_snapshot and payable_amount are immutable after creation.
    original_reference, when set, is the transaction_reference of the chain root.
    """

    __tablename__ = "payment_records"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','successful','failed')",
            name="chk_payment_record_status",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    transaction_reference = Column(String(64), nullable=False, unique=True, index=True)
    original_reference = Column(
        String(64),
        ForeignKey("payment_records.transaction_reference", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    # [{"fee_id": "...", "fee_category": "...", "amount": "150000.00"}]
    fee_snapshot = Column(JSON, nullable=False)
    payable_amount = Column(Numeric(12, 2), nullable=False)
    percent_requested = Column(Numeric(6, 2), nullable=False)
    currency = Column(String(3), nullable=False)

    status = Column(String(20), nullable=False, default=PaymentStatus.pending.value, index=True)
    amount_paid = Column(Numeric(12, 2), nullable=True)
    # Provider-reported money that could not be credited to the chain
    unapplied_amount = Column(Numeric(12, 2), nullable=True)

    student_email = Column(String(255), nullable=False, index=True)
    student_name = Column(String(255), nullable=True)
    jamb_number = Column(String(50), nullable=True)
    matric_number = Column(String(50), nullable=True)
    level = Column(String(10), nullable=True)
    phone_number = Column(String(20), nullable=True)
    address = Column(String(500), nullable=True)

    gateway = Column(String(30), nullable=False)
    redirect_url = Column(Text, nullable=True)
    provider_reference = Column(String(100), nullable=True)
    provider_code = Column(String(50), nullable=True)
    provider_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def root_reference(self) -> str:
        return self.original_reference or self.transaction_reference
