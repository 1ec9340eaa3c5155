"""Flutterwave (v3 standard checkout) adapter."""

import hmac
from decimal import Decimal
from typing import Mapping, Optional

import httpx

from app.core.enums import GatewayName, PaymentStatus
from app.core.exceptions import GatewayError

from .base import ContactInfo, GatewayOutcome, HttpGateway, RedirectTarget, parse_amount

_SUCCESS = {"successful"}
_FAILED = {"failed", "cancelled"}


class FlutterwaveGateway(HttpGateway):
    name = GatewayName.FLUTTERWAVE.value
    callback_keys = ("tx_ref", "txRef", "reference")

    def __init__(
        self,
        secret_key: str,
        callback_url: str,
        webhook_hash: Optional[str] = None,
        base_url: str = "https://api.flutterwave.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(
            base_url,
            headers={"Authorization": f"Bearer {secret_key}", "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        self._callback_url = callback_url
        self._webhook_hash = webhook_hash

    async def start_transaction(
        self, amount: Decimal, reference: str, contact: ContactInfo, currency: str
    ) -> RedirectTarget:
        payload = {
            "tx_ref": reference,
            "amount": str(amount),
            "currency": currency,
            "redirect_url": f"{self._callback_url}?gateway={self.name}",
            "customer": {
                "email": contact.email,
                "name": contact.name or contact.email,
                "phonenumber": contact.phone_number,
            },
            "customizations": {"title": "University fee payment"},
        }
        body = await self._request("POST", "/v3/payments", json=payload)
        link = (body.get("data") or {}).get("link")
        if body.get("status") != "success" or not link:
            raise GatewayError(
                f"Flutterwave payment link failed: {body.get('message') or 'no link'}",
                details={"reference": reference},
            )
        return RedirectTarget(redirect_url=link)

    async def check_status(self, reference: str) -> GatewayOutcome:
        body = await self._request("GET", "/v3/transactions/verify_by_reference", params={"tx_ref": reference})
        data = body.get("data")
        if body.get("status") != "success" or not isinstance(data, dict):
            raise GatewayError(
                f"Flutterwave verify failed: {body.get('message') or 'missing data'}",
                details={"reference": reference},
            )
        raw_status = str(data.get("status") or "").lower()
        if raw_status in _SUCCESS:
            status = PaymentStatus.successful
        elif raw_status in _FAILED:
            status = PaymentStatus.failed
        else:
            status = PaymentStatus.pending
        amount = parse_amount(data["amount"], self.name) if data.get("amount") is not None else None
        return GatewayOutcome(
            status=status,
            amount=amount,
            code=raw_status or None,
            message=data.get("processor_response") or body.get("message"),
            raw=data,
        )

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> bool:
        if not self._webhook_hash:
            return False
        return hmac.compare_digest(headers.get("verif-hash") or "", self._webhook_hash)
