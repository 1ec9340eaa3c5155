"""Paystack adapter. Amounts go over the wire in kobo."""

import hashlib
import hmac
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Mapping, Optional

import httpx

from app.core.enums import GatewayName, PaymentStatus
from app.core.exceptions import GatewayError

from .base import ContactInfo, GatewayOutcome, HttpGateway, RedirectTarget, parse_amount

KOBO_PER_NAIRA = 100

_SUCCESS = {"success"}
_FAILED = {"failed", "reversed", "abandoned"}


def to_kobo(amount: Decimal) -> int:
    return int((amount * KOBO_PER_NAIRA).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaystackGateway(HttpGateway):
    name = GatewayName.PAYSTACK.value
    callback_keys = ("reference", "trxref")

    def __init__(
        self,
        secret_key: str,
        callback_url: str,
        base_url: str = "https://api.paystack.co",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(
            base_url,
            headers={"Authorization": f"Bearer {secret_key}", "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        self._secret_key = secret_key
        self._callback_url = callback_url

    async def start_transaction(
        self, amount: Decimal, reference: str, contact: ContactInfo, currency: str
    ) -> RedirectTarget:
        payload: Dict[str, Any] = {
            "email": contact.email,
            "amount": to_kobo(amount),
            "currency": currency,
            "reference": reference,
            "callback_url": f"{self._callback_url}?gateway={self.name}",
            "metadata": {"student_name": contact.name, "phone_number": contact.phone_number},
        }
        body = await self._request("POST", "/transaction/initialize", json=payload)
        data = body.get("data") or {}
        if not body.get("status") or not data.get("authorization_url"):
            raise GatewayError(
                f"Paystack initialize failed: {body.get('message') or 'no authorization_url'}",
                details={"reference": reference},
            )
        return RedirectTarget(redirect_url=data["authorization_url"], provider_reference=data.get("access_code"))

    async def check_status(self, reference: str) -> GatewayOutcome:
        body = await self._request("GET", f"/transaction/verify/{reference}")
        data = body.get("data")
        if not body.get("status") or not isinstance(data, dict):
            # Paystack answers 4xx with status=false for references it has never seen.
            raise GatewayError(
                f"Paystack verify failed: {body.get('message') or 'missing data'}",
                details={"reference": reference},
            )
        raw_status = str(data.get("status") or "").lower()
        if raw_status in _SUCCESS:
            status = PaymentStatus.successful
        elif raw_status in _FAILED:
            status = PaymentStatus.failed
        else:
            status = PaymentStatus.pending
        amount = None
        if data.get("amount") is not None:
            amount = parse_amount(data["amount"], self.name) / KOBO_PER_NAIRA
        return GatewayOutcome(
            status=status,
            amount=amount,
            code=raw_status or None,
            message=data.get("gateway_response") or body.get("message"),
            raw=data,
        )

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> bool:
        signature = headers.get("x-paystack-signature") or ""
        digest = hmac.new(self._secret_key.encode("utf-8"), body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(digest, signature)
