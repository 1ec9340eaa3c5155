"""Payments service: initiation, balance settlement and lookups. The pending record is committed before any gateway call."""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, settings as default_settings
from app.core.enums import PaymentAuditAction, PaymentStatus
from app.core.exceptions import ConflictError, GatewayError, NotFoundError, ServiceError, ValidationError
from app.core.fee_catalog import (
    check_level_eligibility,
    get_fees,
    snapshot_fee_ids,
    snapshot_fees,
    snapshot_total,
)
from app.core.models import PaymentRecord
from app.core.money import compute_payable, percentage_of, round_amount, to_decimal
from app.gateways.base import ContactInfo, PaymentGateway, call_gateway
from app.gateways.registry import GatewayRegistry

from .audit import log_payment_audit
from .ledger import ChainLedger, build_ledger, get_payment_by_reference, load_chain_records, resolve_chain
from .reference import generate_transaction_reference
from .schemas import (
    BalanceData,
    BalanceSettlementRequest,
    ChainPaymentItem,
    FeeItem,
    InitiatePaymentData,
    InitiatePaymentRequest,
    PaymentDetail,
    VerifyPaymentData,
)
from .verification import VerificationResult

logger = logging.getLogger(__name__)

MAX_REFERENCE_ATTEMPTS = 5
PERCENT_QUANTUM = Decimal("0.01")


def _validate_percent(percent: int, allowed: List[int]) -> Decimal:
    if percent not in allowed:
        raise ValidationError(
            f"Unsupported payment percent: {percent}",
            details={"allowedPercents": sorted(allowed)},
        )
    return Decimal(percent)


def _guard_settlement(ledger: ChainLedger, payable: Decimal) -> None:
    if ledger.is_settled:
        raise ConflictError(
            "This payment is already fully settled",
            details={"reference": ledger.root.transaction_reference, "balanceDue": str(ledger.balance_due)},
        )
    if payable > ledger.balance_due:
        raise ConflictError(
            "Requested amount exceeds the outstanding balance",
            details={"balanceDue": str(ledger.balance_due), "requested": str(payable)},
        )


async def _load_settlement_root(db: AsyncSession, original_reference: str) -> ChainLedger:
    root = await get_payment_by_reference(db, original_reference)
    if root is None:
        raise NotFoundError("Original payment not found", details={"reference": original_reference})
    if root.original_reference is not None:
        raise ValidationError(
            "originalReference must be the reference of the first payment in the chain",
            details={"rootReference": root.original_reference},
        )
    return build_ledger(root, await load_chain_records(db, root))


async def _create_pending_record(db: AsyncSession, fields: Dict[str, Any], prefix: str) -> PaymentRecord:
    """Insert a pending record under a fresh reference, retrying on the rare collision."""
    for attempt in range(MAX_REFERENCE_ATTEMPTS):
        reference = generate_transaction_reference(prefix)
        if await get_payment_by_reference(db, reference) is not None:
            continue
        record = PaymentRecord(
            transaction_reference=reference,
            status=PaymentStatus.pending.value,
            **fields,
        )
        db.add(record)
        try:
            await db.flush()
            log_payment_audit(
                db,
                record,
                PaymentAuditAction.CREATE,
                None,
                {
                    "status": record.status,
                    "payable_amount": str(record.payable_amount),
                    "percent_requested": str(record.percent_requested),
                    "original_reference": record.original_reference,
                    "gateway": record.gateway,
                },
            )
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning("Transaction reference collision on %s (attempt %d)", reference, attempt + 1)
            continue
        await db.refresh(record)
        return record
    raise ServiceError("Could not allocate a unique transaction reference", status.HTTP_503_SERVICE_UNAVAILABLE)


async def _create_and_start(
    db: AsyncSession,
    gateway: PaymentGateway,
    contact: ContactInfo,
    fields: Dict[str, Any],
    settings: Settings,
) -> InitiatePaymentData:
    record = await _create_pending_record(db, fields, settings.transaction_reference_prefix)
    reference, payment_id = record.transaction_reference, record.id
    payable = to_decimal(record.payable_amount)
    try:
        target = await call_gateway(
            gateway.start_transaction(payable, reference, contact, record.currency),
            settings.gateway_timeout_seconds,
            f"{gateway.name} start",
        )
    except GatewayError as e:
        # The pending record stays: its reference is already known and can still be verified.
        logger.warning("Gateway %s failed to start %s: %s", gateway.name, reference, e.message)
        log_payment_audit(db, record, PaymentAuditAction.GATEWAY_START_FAILED, None, {"error": e.message})
        await db.commit()
        raise GatewayError(
            f"Could not start {gateway.name} transaction: {e.message}",
            details={"reference": reference, "paymentId": str(payment_id), "retryable": True},
            status_code=e.status_code,
        ) from e

    record.redirect_url = target.redirect_url
    record.provider_reference = target.provider_reference
    log_payment_audit(
        db,
        record,
        PaymentAuditAction.GATEWAY_START,
        None,
        {"redirect_url": target.redirect_url, "provider_reference": target.provider_reference},
    )
    await db.commit()
    await db.refresh(record)
    logger.info(
        "Initiated payment %s via %s for %s %s",
        record.transaction_reference,
        gateway.name,
        record.payable_amount,
        record.currency,
    )
    return InitiatePaymentData(
        reference=record.transaction_reference,
        payment_id=record.id,
        gateway=record.gateway,
        redirect_url=record.redirect_url,
        amount=payable,
        currency=record.currency,
        original_reference=record.original_reference,
    )


async def initiate_payment(
    db: AsyncSession,
    payload: InitiatePaymentRequest,
    gateways: GatewayRegistry,
    settings: Settings = default_settings,
) -> InitiatePaymentData:
    """
    Validate, compute the payable amount once, persist a pending record and open the gateway transaction.
    Nothing is written when validation fails.
    """
    gateway = gateways.get(payload.gateway)
    percent = _validate_percent(payload.percent, settings.allowed_payment_percents)
    contact = ContactInfo(
        email=str(payload.student_email),
        name=payload.student_name,
        phone_number=payload.phone_number,
        address=payload.address,
    )
    gateway.validate_contact(contact)
    fee_ids = payload.selected_fee_ids
    level = payload.level.value if payload.level else None

    original_reference: Optional[str] = None
    if payload.original_reference:
        ledger = await _load_settlement_root(db, payload.original_reference)
        root_fee_ids = snapshot_fee_ids(ledger.root.fee_snapshot)
        if sorted(str(i) for i in fee_ids) != sorted(root_fee_ids):
            raise ValidationError(
                "Selected fees do not match the original payment",
                details={"expectedFeeIds": root_fee_ids},
            )
        snapshot = [dict(item) for item in ledger.root.fee_snapshot]
        payable = compute_payable(ledger.total_amount_due, percent, settings.amount_quantum)
        _guard_settlement(ledger, payable)
        original_reference = ledger.root.transaction_reference
    else:
        fees = await get_fees(db, fee_ids)
        check_level_eligibility(fees, level)
        snapshot = snapshot_fees(fees)
        payable = compute_payable(snapshot_total(snapshot), percent, settings.amount_quantum)

    if payable <= 0:
        raise ValidationError("Payable amount must be greater than zero")

    fields = {
        "original_reference": original_reference,
        "fee_snapshot": snapshot,
        "payable_amount": payable,
        "percent_requested": percent,
        "currency": settings.currency,
        "student_email": str(payload.student_email),
        "student_name": payload.student_name,
        "jamb_number": payload.jamb_number,
        "matric_number": payload.matric_number,
        "level": level,
        "phone_number": payload.phone_number,
        "address": payload.address,
        "gateway": gateway.name,
    }
    return await _create_and_start(db, gateway, contact, fields, settings)


async def initiate_balance_settlement(
    db: AsyncSession,
    payload: BalanceSettlementRequest,
    gateways: GatewayRegistry,
    settings: Settings = default_settings,
) -> InitiatePaymentData:
    """Start a child payment for whatever is still owed on the chain containing ``payload.reference``."""
    gateway = gateways.get(payload.gateway)
    ledger = await resolve_chain(db, payload.reference.strip())
    root = ledger.root
    payable = ledger.balance_due
    _guard_settlement(ledger, payable)

    contact = ContactInfo(
        email=root.student_email,
        name=root.student_name,
        phone_number=payload.phone_number or root.phone_number,
        address=payload.address or root.address,
    )
    gateway.validate_contact(contact)

    fields = {
        "original_reference": root.transaction_reference,
        "fee_snapshot": [dict(item) for item in root.fee_snapshot],
        "payable_amount": payable,
        "percent_requested": round_amount(percentage_of(payable, ledger.total_amount_due), PERCENT_QUANTUM),
        "currency": root.currency,
        "student_email": root.student_email,
        "student_name": root.student_name,
        "jamb_number": root.jamb_number,
        "matric_number": root.matric_number,
        "level": root.level,
        "phone_number": contact.phone_number,
        "address": contact.address,
        "gateway": gateway.name,
    }
    return await _create_and_start(db, gateway, contact, fields, settings)


# --- Responses ---
def _fee_items(snapshot: List[dict]) -> List[FeeItem]:
    return [
        FeeItem(fee_id=item["fee_id"], fee_category=item["fee_category"], amount=to_decimal(item["amount"]))
        for item in snapshot or []
    ]


def _record_to_detail(record: PaymentRecord) -> PaymentDetail:
    return PaymentDetail(
        payment_id=record.id,
        reference=record.transaction_reference,
        original_reference=record.original_reference,
        status=record.status,
        payable_amount=to_decimal(record.payable_amount),
        amount_paid=to_decimal(record.amount_paid) if record.amount_paid is not None else None,
        percent_requested=to_decimal(record.percent_requested),
        currency=record.currency,
        gateway=record.gateway,
        student_email=record.student_email,
        student_name=record.student_name,
        jamb_number=record.jamb_number,
        matric_number=record.matric_number,
        level=record.level,
        items=_fee_items(record.fee_snapshot),
        created_at=record.created_at,
        verified_at=record.verified_at,
    )


def verification_to_response(result: VerificationResult) -> VerifyPaymentData:
    record = result.record
    return VerifyPaymentData(
        reference=record.transaction_reference,
        status=result.status,
        payment_id=record.id,
        amount_paid=to_decimal(record.amount_paid) if record.amount_paid is not None else None,
        provider_code=result.provider_code,
        provider_message=result.provider_message,
        balance_due=result.ledger.balance_due,
        percentage_paid=result.ledger.percentage_paid_display,
    )


async def get_payment_detail(db: AsyncSession, reference: str) -> PaymentDetail:
    record = await get_payment_by_reference(db, reference)
    if record is None:
        raise NotFoundError("Payment not found", details={"reference": reference})
    return _record_to_detail(record)


async def get_balance(db: AsyncSession, reference: str) -> BalanceData:
    ledger = await resolve_chain(db, reference)
    record = next(r for r in ledger.records if r.transaction_reference == reference)
    root = ledger.root
    return BalanceData(
        reference=reference,
        transaction_ref=root.transaction_reference,
        status=record.status,
        total_amount=ledger.total_amount_due,
        amount_paid=ledger.total_amount_paid,
        balance_due=ledger.balance_due,
        percentage_paid=ledger.percentage_paid_display,
        student_email=root.student_email,
        student_name=root.student_name,
        items=_fee_items(ledger.items),
        payments=[
            ChainPaymentItem(
                reference=r.transaction_reference,
                status=r.status,
                payable_amount=to_decimal(r.payable_amount),
                amount_paid=to_decimal(r.amount_paid) if r.amount_paid is not None else None,
                created_at=r.created_at,
                verified_at=r.verified_at,
            )
            for r in ledger.records
        ],
    )


async def list_payments(
    db: AsyncSession,
    status_filter: Optional[PaymentStatus] = None,
    gateway: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[PaymentDetail]:
    stmt = select(PaymentRecord)
    if status_filter is not None:
        stmt = stmt.where(PaymentRecord.status == status_filter.value)
    if gateway:
        stmt = stmt.where(PaymentRecord.gateway == gateway.strip().lower())
    stmt = stmt.order_by(PaymentRecord.created_at.desc()).limit(limit).offset(offset)
    result = await db.execute(stmt)
    return [_record_to_detail(r) for r in result.scalars().all()]
