"""Fee definition owned by the fee catalog. Payments snapshot the amount at initiation."""

import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base, utc_now


class Fee(Base):
    """A priced obligation tied to a program, optionally restricted to academic levels."""

    __tablename__ = "fees"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    program_id = Column(Uuid, ForeignKey("programs.id", ondelete="RESTRICT"), nullable=False, index=True)
    fee_category = Column(String(100), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    session = Column(String(20), nullable=True)  # e.g. 2025/2026
    semester = Column(String(20), nullable=True)
    # ["L100", "L200"] or ["ALL"]; null/empty also means any level in the program
    levels = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    program = relationship("Program", backref="fees")
