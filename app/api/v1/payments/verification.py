"""
Verification and reconciliation engine.

Every caller (redirect return, webhook, manual re-check, reconciliation job) goes
through verify_payment. Once a record is terminal it is answered from storage and
the gateway is never asked again. Transitions for one chain are serialized by a
per-root lock plus row locks, and the credited amount is clamped so a chain can
never be paid beyond its fee total.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.enums import PaymentAuditAction, PaymentStatus
from app.core.exceptions import ConcurrencyError, GatewayError, NotFoundError, ValidationError
from app.core.models import PaymentRecord
from app.core.money import to_decimal
from app.core.receipts import ReceiptIssuer
from app.db.session import utc_now
from app.gateways.base import GatewayOutcome, call_gateway
from app.gateways.registry import GatewayRegistry

from .audit import log_payment_audit
from .ledger import ChainLedger, build_ledger, get_payment_by_reference, load_chain_records, resolve_chain
from .locks import ReferenceLocks

logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    record: PaymentRecord
    ledger: ChainLedger
    # None when the answer came from the stored terminal state
    outcome: Optional[GatewayOutcome] = None

    @property
    def status(self) -> PaymentStatus:
        return PaymentStatus(self.record.status)

    @property
    def replayed(self) -> bool:
        return self.outcome is None

    @property
    def provider_code(self) -> Optional[str]:
        if self.status is PaymentStatus.pending and self.outcome is not None:
            return self.outcome.code
        return self.record.provider_code

    @property
    def provider_message(self) -> Optional[str]:
        if self.status is PaymentStatus.pending and self.outcome is not None:
            return self.outcome.message
        return self.record.provider_message


def _check_request(record: PaymentRecord, gateway_name: Optional[str], original_reference: Optional[str]) -> None:
    if gateway_name and gateway_name.strip().lower() != record.gateway:
        raise ValidationError(
            "Gateway does not match the payment",
            details={"reference": record.transaction_reference, "gateway": record.gateway},
        )
    if original_reference and original_reference.strip() != record.root_reference:
        raise ValidationError(
            "original_reference does not match the payment chain",
            details={"reference": record.transaction_reference},
        )


async def _reload(db: AsyncSession, record_id: UUID, for_update: bool = False) -> PaymentRecord:
    stmt = select(PaymentRecord).where(PaymentRecord.id == record_id).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    record = (await db.execute(stmt)).scalar_one_or_none()
    if record is None:
        raise NotFoundError("Payment not found", details={"paymentId": str(record_id)})
    return record


async def _lock_pending(db: AsyncSession, record_id: UUID, root_reference: str) -> PaymentRecord:
    """Row-lock the chain root, then the record. Raises ConcurrencyError if it is no longer pending."""
    await db.execute(
        select(PaymentRecord.id).where(PaymentRecord.transaction_reference == root_reference).with_for_update()
    )
    record = await _reload(db, record_id, for_update=True)
    if PaymentStatus(record.status).is_terminal:
        raise ConcurrencyError()
    return record


async def _stored_result(db: AsyncSession, record: PaymentRecord) -> VerificationResult:
    return VerificationResult(record=record, ledger=await resolve_chain(db, record.transaction_reference))


async def _apply_success(db: AsyncSession, record: PaymentRecord, outcome: GatewayOutcome) -> None:
    root = record
    if record.original_reference is not None:
        root = await get_payment_by_reference(db, record.original_reference)
        if root is None:
            raise NotFoundError("Original payment not found", details={"reference": record.original_reference})
    ledger = build_ledger(root, await load_chain_records(db, root))

    reported = to_decimal(outcome.amount)
    payable = to_decimal(record.payable_amount)
    credited = max(Decimal("0"), min(reported, payable, ledger.balance_due))
    unapplied = reported - credited
    if unapplied > 0:
        logger.warning(
            "Payment %s: provider reported %s but only %s could be credited (payable=%s, chain balance=%s)",
            record.transaction_reference,
            reported,
            credited,
            payable,
            ledger.balance_due,
        )

    old_status = record.status
    record.status = PaymentStatus.successful.value
    record.amount_paid = credited
    record.unapplied_amount = unapplied if unapplied > 0 else None
    record.provider_code = outcome.code
    record.provider_message = outcome.message
    record.verified_at = utc_now()
    log_payment_audit(
        db,
        record,
        PaymentAuditAction.VERIFY_SUCCESS,
        {"status": old_status},
        {
            "status": record.status,
            "amount_paid": str(credited),
            "provider_amount": str(reported),
            "provider_code": outcome.code,
        },
    )


def _apply_failure(db: AsyncSession, record: PaymentRecord, outcome: GatewayOutcome) -> None:
    old_status = record.status
    record.status = PaymentStatus.failed.value
    record.provider_code = outcome.code
    record.provider_message = outcome.message
    record.verified_at = utc_now()
    log_payment_audit(
        db,
        record,
        PaymentAuditAction.VERIFY_FAILED,
        {"status": old_status},
        {"status": record.status, "provider_code": outcome.code, "provider_message": outcome.message},
    )


async def _issue_receipt(receipts: Optional[ReceiptIssuer], record: PaymentRecord, ledger: ChainLedger) -> None:
    if receipts is None:
        return
    try:
        await receipts.issue(record, ledger)
    except Exception:
        # The transition is committed; receipt delivery is retried by the receipt service.
        logger.exception("Receipt issuer failed for payment %s", record.transaction_reference)


async def verify_payment(
    db: AsyncSession,
    reference: str,
    *,
    gateways: GatewayRegistry,
    locks: ReferenceLocks,
    receipts: Optional[ReceiptIssuer] = None,
    gateway_name: Optional[str] = None,
    original_reference: Optional[str] = None,
    timeout: Optional[float] = None,
) -> VerificationResult:
    """
    Resolve ``reference`` against its gateway and record the outcome exactly once.

    Terminal records are answered from storage. A provider that still reports pending
    leaves the record untouched. Gateway failures and timeouts raise GatewayError
    without touching the record, so the call can simply be repeated.
    """
    timeout = settings.gateway_timeout_seconds if timeout is None else timeout
    reference = reference.strip()

    record = await get_payment_by_reference(db, reference)
    if record is None:
        raise NotFoundError("Payment not found", details={"reference": reference})
    _check_request(record, gateway_name, original_reference)
    if PaymentStatus(record.status).is_terminal:
        return await _stored_result(db, record)

    gateway = gateways.get(record.gateway)
    root_reference = record.root_reference

    async with locks.hold(root_reference):
        record = await _reload(db, record.id)
        if PaymentStatus(record.status).is_terminal:
            return await _stored_result(db, record)

        outcome = await call_gateway(gateway.check_status(reference), timeout, f"{gateway.name} status check")
        if outcome.status is PaymentStatus.successful and outcome.amount is None:
            raise GatewayError(
                f"{gateway.name} reported success without an amount",
                details={"reference": reference},
            )
        if outcome.status is PaymentStatus.pending:
            logger.info("Payment %s still pending at %s", reference, gateway.name)
            return VerificationResult(record=record, ledger=await resolve_chain(db, reference), outcome=outcome)

        # Rollback expires every instance in the session, record included
        record_id = record.id
        try:
            record = await _lock_pending(db, record_id, root_reference)
        except ConcurrencyError:
            await db.rollback()
            logger.info("Payment %s was resolved concurrently; returning stored outcome", reference)
            record = await _reload(db, record_id)
            return await _stored_result(db, record)

        try:
            if outcome.status is PaymentStatus.successful:
                await _apply_success(db, record, outcome)
            else:
                _apply_failure(db, record, outcome)
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise

    logger.info(
        "Payment %s resolved as %s (amount_paid=%s, provider_code=%s)",
        reference,
        record.status,
        record.amount_paid,
        record.provider_code,
    )
    ledger = await resolve_chain(db, reference)
    if record.status == PaymentStatus.successful.value:
        await _issue_receipt(receipts, record, ledger)
    return VerificationResult(record=record, ledger=ledger, outcome=outcome)
