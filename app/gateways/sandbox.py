"""
In-memory sandbox gateway for local runs and tests.

Outcomes are scripted per reference with ``set_outcome``; unscripted references stay
pending. Call counters make it possible to assert how often the engine reached out.
"""

import asyncio
from collections import Counter
from decimal import Decimal
from typing import Dict, Optional

from app.core.enums import GatewayName, PaymentStatus
from app.core.exceptions import GatewayError

from .base import ContactInfo, GatewayOutcome, PaymentGateway, RedirectTarget


class SandboxGateway(PaymentGateway):
    name = GatewayName.SANDBOX.value

    def __init__(self, checkout_base_url: str = "https://sandbox.invalid/checkout", latency: float = 0.0) -> None:
        self.checkout_base_url = checkout_base_url.rstrip("/")
        self.latency = latency
        self.started: Dict[str, Decimal] = {}
        self.status_calls: Counter = Counter()
        self._outcomes: Dict[str, GatewayOutcome] = {}
        self._start_error: Optional[Exception] = None
        self._status_error: Optional[Exception] = None

    def set_outcome(
        self,
        reference: str,
        status: PaymentStatus,
        amount: Optional[Decimal] = None,
        code: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        if status is PaymentStatus.successful and amount is None:
            amount = self.started.get(reference)
        self._outcomes[reference] = GatewayOutcome(status=status, amount=amount, code=code, message=message)

    def fail_next_start(self, error: Optional[Exception] = None) -> None:
        self._start_error = error or GatewayError("Sandbox start failed")

    def fail_status_checks(self, error: Optional[Exception] = None) -> None:
        """Make every check_status raise until ``clear_status_failure`` is called."""
        self._status_error = error or GatewayError("Sandbox status check failed")

    def clear_status_failure(self) -> None:
        self._status_error = None

    async def start_transaction(
        self, amount: Decimal, reference: str, contact: ContactInfo, currency: str
    ) -> RedirectTarget:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._start_error is not None:
            error, self._start_error = self._start_error, None
            raise error
        self.started[reference] = amount
        return RedirectTarget(
            redirect_url=f"{self.checkout_base_url}/{reference}",
            provider_reference=f"SBX-{reference}",
        )

    async def check_status(self, reference: str) -> GatewayOutcome:
        self.status_calls[reference] += 1
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._status_error is not None:
            raise self._status_error
        return self._outcomes.get(reference, GatewayOutcome(status=PaymentStatus.pending, message="Awaiting payment"))
