"""
Re-check payments that are still pending after the payer should have finished.

Covers payers who closed the browser before the redirect and webhooks that never
arrived. Safe to run repeatedly: resolved payments are never asked about again and
gateway errors leave the record pending for the next run.
Usage: python -m app.scripts.reconcile_pending_payments [--older-than-minutes 30] [--limit 200]
"""

import argparse
import asyncio
import logging
import sys
from collections import Counter
from datetime import timedelta
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.payments.locks import ReferenceLocks
from app.api.v1.payments.verification import verify_payment
from app.core.config import settings
from app.core.enums import PaymentStatus
from app.core.exceptions import GatewayError, ServiceError
from app.core.logging import configure_logging
from app.core.models import PaymentRecord
from app.core.receipts import LoggingReceiptIssuer, ReceiptIssuer
from app.db.session import AsyncSessionLocal, utc_now
from app.gateways.registry import GatewayRegistry, build_gateway_registry

logger = logging.getLogger(__name__)


async def get_stale_pending_references(
    session: AsyncSession, older_than: timedelta, limit: int
) -> List[str]:
    """Oldest first, so a capped run still makes progress on the backlog."""
    cutoff = utc_now() - older_than
    result = await session.execute(
        select(PaymentRecord.transaction_reference)
        .where(
            PaymentRecord.status == PaymentStatus.pending.value,
            PaymentRecord.created_at <= cutoff,
        )
        .order_by(PaymentRecord.created_at)
        .limit(limit)
    )
    return list(result.scalars().all())


async def reconcile_pending_payments(
    session_factory: Callable[[], AsyncSession],
    gateways: GatewayRegistry,
    locks: Optional[ReferenceLocks] = None,
    receipts: Optional[ReceiptIssuer] = None,
    older_than: timedelta = timedelta(minutes=30),
    limit: int = 200,
) -> Counter:
    """Verify each stale pending payment in its own session. Returns a tally keyed by outcome."""
    locks = locks or ReferenceLocks()
    tally: Counter = Counter()

    async with session_factory() as session:
        references = await get_stale_pending_references(session, older_than, limit)
    if not references:
        print("No stale pending payments found.")
        return tally

    print(f"Found {len(references)} pending payment(s). Checking with gateways...")
    for reference in references:
        async with session_factory() as session:
            try:
                result = await verify_payment(
                    session, reference, gateways=gateways, locks=locks, receipts=receipts
                )
            except GatewayError as e:
                tally["gateway_error"] += 1
                print(f"  {reference}: gateway error ({e.message}); will retry next run", file=sys.stderr)
                continue
            except ServiceError as e:
                tally["error"] += 1
                print(f"  SKIP: {reference}: {e.message}", file=sys.stderr)
                continue
        tally[result.status.value] += 1
        print(f"  {reference} -> {result.status.value}")

    print("Done. " + ", ".join(f"{key}={count}" for key, count in sorted(tally.items())))
    return tally


async def _run(older_than_minutes: int, limit: int) -> None:
    gateways = build_gateway_registry(settings)
    try:
        await reconcile_pending_payments(
            AsyncSessionLocal,
            gateways,
            receipts=LoggingReceiptIssuer(),
            older_than=timedelta(minutes=older_than_minutes),
            limit=limit,
        )
    finally:
        await gateways.aclose()


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Verify payments left pending with their gateways.")
    parser.add_argument("--older-than-minutes", type=int, default=30)
    parser.add_argument("--limit", type=int, default=200)
    args = parser.parse_args(argv)
    configure_logging(settings.log_level)
    asyncio.run(_run(args.older_than_minutes, args.limit))


if __name__ == "__main__":
    main()
