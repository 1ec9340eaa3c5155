from datetime import timedelta

import pytest

from app.api.v1.payments.ledger import get_payment_by_reference
from app.core.enums import PaymentStatus
from app.core.exceptions import GatewayError
from app.db.session import utc_now
from app.scripts.reconcile_pending_payments import get_stale_pending_references, reconcile_pending_payments


@pytest.mark.asyncio
async def test_reconcile_resolves_stale_pending_payments(
    session_factory, make_fee, start_payment, sandbox, gateways, receipts
) -> None:
    fee = await make_fee("150000")
    paid = await start_payment(fee)
    declined = await start_payment(fee)
    waiting = await start_payment(fee)
    broken = await start_payment(fee)
    sandbox.set_outcome(paid.reference, PaymentStatus.successful)
    sandbox.set_outcome(declined.reference, PaymentStatus.failed)

    original_check = sandbox.check_status

    async def flaky_check(reference):
        if reference == broken.reference:
            raise GatewayError("provider unavailable")
        return await original_check(reference)

    sandbox.check_status = flaky_check

    tally = await reconcile_pending_payments(
        session_factory, gateways, receipts=receipts, older_than=timedelta(0), limit=10
    )

    assert tally == {"successful": 1, "failed": 1, "pending": 1, "gateway_error": 1}
    assert receipts.issued == [paid.reference]

    async with session_factory() as session:
        remaining = await get_stale_pending_references(session, timedelta(0), 10)
    assert sorted(remaining) == sorted([waiting.reference, broken.reference])


@pytest.mark.asyncio
async def test_reconcile_skips_recent_payments(session_factory, make_fee, start_payment, gateways, sandbox) -> None:
    fee = await make_fee("150000")
    data = await start_payment(fee)

    tally = await reconcile_pending_payments(session_factory, gateways, older_than=timedelta(hours=1))

    assert sum(tally.values()) == 0
    assert sandbox.status_calls[data.reference] == 0


@pytest.mark.asyncio
async def test_stale_cutoff_uses_aware_utc_timestamps(db_session, session_factory, make_fee, start_payment) -> None:
    fee = await make_fee("150000")
    old = await start_payment(fee)
    fresh = await start_payment(fee)
    record = await get_payment_by_reference(db_session, old.reference)
    record.created_at = utc_now() - timedelta(hours=2)
    await db_session.commit()

    async with session_factory() as session:
        stale = await get_stale_pending_references(session, timedelta(hours=1), 10)

    assert stale == [old.reference]
    assert fresh.reference not in stale
