"""Payments schemas. JSON keys are camelCase on the wire."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Generic, List, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.core.enums import PaymentStatus, StudentLevel

T = TypeVar("T")


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# --- Envelope ---
class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: Optional[Any] = None


# --- Initiate ---
class InitiatePaymentRequest(CamelModel):
    fee_id: Optional[UUID] = None
    fee_ids: Optional[List[UUID]] = None
    student_email: EmailStr
    student_name: Optional[str] = Field(None, max_length=255)
    gateway: str = Field(..., min_length=1, max_length=30)
    percent: int = Field(..., description="Share of the fee total to pay now, e.g. 50 or 100")
    level: Optional[StudentLevel] = None
    jamb_number: Optional[str] = Field(None, max_length=50)
    matric_number: Optional[str] = Field(None, max_length=50)
    phone_number: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=500)
    original_reference: Optional[str] = Field(None, max_length=64)

    @field_validator("level")
    @classmethod
    def student_level_is_concrete(cls, v: Optional[StudentLevel]) -> Optional[StudentLevel]:
        if v is StudentLevel.ALL:
            raise ValueError("level must be one of L100-L600")
        return v

    @field_validator("student_name", "jamb_number", "matric_number", "phone_number", "address", "original_reference")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def require_fee_selection(self) -> "InitiatePaymentRequest":
        if self.fee_id is None and not self.fee_ids:
            raise ValueError("feeId or feeIds is required")
        return self

    @property
    def selected_fee_ids(self) -> List[UUID]:
        ids: List[UUID] = []
        for fee_id in ([self.fee_id] if self.fee_id else []) + list(self.fee_ids or []):
            if fee_id not in ids:
                ids.append(fee_id)
        return ids


class InitiatePaymentData(CamelModel):
    reference: str
    payment_id: UUID
    gateway: str
    redirect_url: Optional[str] = None
    amount: Decimal
    currency: str
    original_reference: Optional[str] = None


class BalanceSettlementRequest(CamelModel):
    reference: str = Field(..., min_length=1, max_length=64)
    gateway: str = Field(..., min_length=1, max_length=30)
    phone_number: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=500)


# --- Verify ---
class VerifyPaymentData(CamelModel):
    reference: str
    status: PaymentStatus
    payment_id: UUID
    amount_paid: Optional[Decimal] = None
    provider_code: Optional[str] = None
    provider_message: Optional[str] = None
    balance_due: Decimal
    percentage_paid: Decimal


# --- Lookup / balance ---
class FeeItem(CamelModel):
    fee_id: str
    fee_category: str
    amount: Decimal


class ChainPaymentItem(CamelModel):
    reference: str
    status: PaymentStatus
    payable_amount: Decimal
    amount_paid: Optional[Decimal] = None
    created_at: datetime
    verified_at: Optional[datetime] = None


class BalanceData(CamelModel):
    reference: str
    transaction_ref: str
    status: PaymentStatus
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    percentage_paid: Decimal
    student_email: str
    student_name: Optional[str] = None
    items: List[FeeItem]
    payments: List[ChainPaymentItem]


class PaymentDetail(CamelModel):
    payment_id: UUID
    reference: str
    original_reference: Optional[str] = None
    status: PaymentStatus
    payable_amount: Decimal
    amount_paid: Optional[Decimal] = None
    percent_requested: Decimal
    currency: str
    gateway: str
    student_email: str
    student_name: Optional[str] = None
    jamb_number: Optional[str] = None
    matric_number: Optional[str] = None
    level: Optional[str] = None
    items: List[FeeItem]
    created_at: datetime
    verified_at: Optional[datetime] = None
