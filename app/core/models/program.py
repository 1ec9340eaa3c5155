"""Academic program (catalog data, read-only to the payment core)."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, String, Uuid

from app.db.session import Base, utc_now


class Program(Base):
    __tablename__ = "programs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    program_name = Column(String(255), nullable=False)
    program_type = Column(String(50), nullable=False)  # undergraduate, postgraduate, diploma
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
