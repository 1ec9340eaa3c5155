from decimal import Decimal

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.payments.ledger import get_payment_by_reference
from app.api.v1.payments.schemas import BalanceSettlementRequest, InitiatePaymentRequest
from app.api.v1.payments.service import initiate_balance_settlement, initiate_payment
from app.api.v1.payments.verification import verify_payment
from app.core.enums import PaymentAuditAction, PaymentStatus, StudentLevel
from app.core.exceptions import ConflictError, GatewayError, NotFoundError, ValidationError
from app.gateways.globalpay import GlobalPayGateway
from app.gateways.registry import GatewayRegistry
from helpers import audit_actions, count_records


@pytest.mark.asyncio
async def test_initiate_half_payment(db_session: AsyncSession, make_fee, start_payment, sandbox) -> None:
    fee = await make_fee("150000")

    data = await start_payment(fee, percent=50)

    assert data.amount == Decimal("75000")
    assert data.gateway == "sandbox"
    assert data.redirect_url.endswith(data.reference)
    assert data.reference.startswith("UNI-")
    assert sandbox.started[data.reference] == Decimal("75000")

    record = await get_payment_by_reference(db_session, data.reference)
    assert record.status == PaymentStatus.pending.value
    assert record.payable_amount == Decimal("75000")
    assert record.percent_requested == Decimal("50")
    assert record.original_reference is None
    assert record.fee_snapshot == [{"fee_id": str(fee.id), "fee_category": "Tuition", "amount": "150000.00"}]
    assert await audit_actions(db_session, data.reference) == sorted(
        [PaymentAuditAction.CREATE.value, PaymentAuditAction.GATEWAY_START.value]
    )


@pytest.mark.asyncio
async def test_initiate_multiple_fees_sums_snapshot(db_session: AsyncSession, make_fee, start_payment) -> None:
    tuition = await make_fee("150000")
    hostel = await make_fee("50001", fee_category="Hostel")

    data = await start_payment(tuition, percent=50, fee_ids=[tuition.id, hostel.id])

    assert data.amount == Decimal("100001")
    record = await get_payment_by_reference(db_session, data.reference)
    assert [item["fee_category"] for item in record.fee_snapshot] == ["Tuition", "Hostel"]


@pytest.mark.asyncio
async def test_ineligible_level_creates_no_record(db_session: AsyncSession, make_fee, start_payment) -> None:
    fee = await make_fee("150000", levels=["L100", "L200"])

    with pytest.raises(ValidationError):
        await start_payment(fee, level=StudentLevel.L300)

    assert await count_records(db_session) == 0


@pytest.mark.asyncio
async def test_fee_open_to_all_levels(db_session: AsyncSession, make_fee, start_payment) -> None:
    fee = await make_fee("150000", levels=["ALL"])

    data = await start_payment(fee, level=StudentLevel.L500)

    assert data.amount == Decimal("150000")


@pytest.mark.asyncio
async def test_unsupported_percent_rejected(db_session: AsyncSession, make_fee, start_payment) -> None:
    fee = await make_fee("150000")

    with pytest.raises(ValidationError) as exc:
        await start_payment(fee, percent=30)

    assert exc.value.details == {"allowedPercents": [50, 100]}
    assert await count_records(db_session) == 0


@pytest.mark.asyncio
async def test_unknown_gateway_rejected(db_session: AsyncSession, make_fee, start_payment) -> None:
    fee = await make_fee("150000")

    with pytest.raises(ValidationError) as exc:
        await start_payment(fee, gateway="stripe")

    assert exc.value.details == {"enabledGateways": ["sandbox"]}


@pytest.mark.asyncio
async def test_inactive_fee_not_found(db_session: AsyncSession, make_fee, start_payment) -> None:
    fee = await make_fee("150000", is_active=False)

    with pytest.raises(NotFoundError):
        await start_payment(fee)

    assert await count_records(db_session) == 0


@pytest.mark.asyncio
async def test_gateway_start_failure_keeps_pending_record(
    db_session: AsyncSession, make_fee, start_payment, sandbox
) -> None:
    fee = await make_fee("150000")
    sandbox.fail_next_start()

    with pytest.raises(GatewayError) as exc:
        await start_payment(fee)

    reference = exc.value.details["reference"]
    assert exc.value.details["retryable"] is True
    record = await get_payment_by_reference(db_session, reference)
    assert record.status == PaymentStatus.pending.value
    assert record.redirect_url is None
    assert PaymentAuditAction.GATEWAY_START_FAILED.value in await audit_actions(db_session, reference)


@pytest.mark.asyncio
async def test_globalpay_requires_eleven_digit_phone(db_session: AsyncSession, make_fee) -> None:
    fee = await make_fee("150000")
    globalpay = GlobalPayGateway(
        "gp-key",
        callback_url="http://portal.test/payment/callback",
        base_url="https://globalpay.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    registry = GatewayRegistry([globalpay])
    payload = InitiatePaymentRequest(
        fee_ids=[fee.id],
        student_email="ada@student.example.edu",
        gateway="global",
        percent=100,
        level=StudentLevel.L100,
        phone_number="0803123",
    )

    with pytest.raises(ValidationError) as exc:
        await initiate_payment(db_session, payload, registry)

    assert exc.value.details[0]["field"] == "phoneNumber"
    assert await count_records(db_session) == 0
    await globalpay.aclose()


@pytest.mark.asyncio
async def test_child_payment_with_original_reference(
    db_session: AsyncSession, make_fee, start_payment, sandbox, gateways, locks
) -> None:
    fee = await make_fee("150000")
    root = await start_payment(fee, percent=50)
    sandbox.set_outcome(root.reference, PaymentStatus.successful)
    await verify_payment(db_session, root.reference, gateways=gateways, locks=locks)

    child = await start_payment(fee, percent=50, original_reference=root.reference)

    assert child.original_reference == root.reference
    assert child.amount == Decimal("75000")


@pytest.mark.asyncio
async def test_child_payment_cannot_exceed_balance(
    db_session: AsyncSession, make_fee, start_payment, sandbox, gateways, locks
) -> None:
    fee = await make_fee("150000")
    root = await start_payment(fee, percent=50)
    sandbox.set_outcome(root.reference, PaymentStatus.successful)
    await verify_payment(db_session, root.reference, gateways=gateways, locks=locks)
    before = await count_records(db_session)

    with pytest.raises(ConflictError):
        await start_payment(fee, percent=100, original_reference=root.reference)

    assert await count_records(db_session) == before


@pytest.mark.asyncio
async def test_original_reference_must_be_chain_root(
    db_session: AsyncSession, make_fee, start_payment, sandbox, gateways
) -> None:
    fee = await make_fee("150000")
    root = await start_payment(fee, percent=50)
    child = await initiate_balance_settlement(
        db_session, BalanceSettlementRequest(reference=root.reference, gateway="sandbox"), gateways
    )

    with pytest.raises(ValidationError):
        await start_payment(fee, percent=50, original_reference=child.reference)


@pytest.mark.asyncio
async def test_original_reference_fees_must_match(db_session: AsyncSession, make_fee, start_payment) -> None:
    tuition = await make_fee("150000")
    hostel = await make_fee("40000", fee_category="Hostel")
    root = await start_payment(tuition, percent=50)

    with pytest.raises(ValidationError) as exc:
        await start_payment(hostel, percent=50, original_reference=root.reference)

    assert exc.value.details == {"expectedFeeIds": [str(tuition.id)]}


@pytest.mark.asyncio
async def test_unknown_original_reference(db_session: AsyncSession, make_fee, start_payment) -> None:
    fee = await make_fee("150000")

    with pytest.raises(NotFoundError):
        await start_payment(fee, percent=50, original_reference="UNI-20260101-NOPE")


def test_request_requires_fee_selection() -> None:
    with pytest.raises(ValueError):
        InitiatePaymentRequest(student_email="ada@student.example.edu", gateway="sandbox", percent=100)


def test_request_rejects_all_as_student_level() -> None:
    with pytest.raises(ValueError):
        InitiatePaymentRequest(
            fee_id="0b6a4b4e-0d2f-4a55-9b8b-3e7b8f1f7e11",
            student_email="ada@student.example.edu",
            gateway="sandbox",
            percent=100,
            level="ALL",
        )


def test_request_accepts_camel_case_and_dedupes_fees() -> None:
    fee_id = "0b6a4b4e-0d2f-4a55-9b8b-3e7b8f1f7e11"
    payload = InitiatePaymentRequest.model_validate(
        {
            "feeId": fee_id,
            "feeIds": [fee_id],
            "studentEmail": "ada@student.example.edu",
            "gateway": "sandbox",
            "percent": 100,
        }
    )

    assert [str(i) for i in payload.selected_fee_ids] == [fee_id]
    assert payload.percent == 100


def test_request_requires_explicit_percent() -> None:
    with pytest.raises(ValueError) as exc:
        InitiatePaymentRequest.model_validate(
            {
                "feeId": "0b6a4b4e-0d2f-4a55-9b8b-3e7b8f1f7e11",
                "studentEmail": "ada@student.example.edu",
                "gateway": "sandbox",
            }
        )

    assert "percent" in str(exc.value)
