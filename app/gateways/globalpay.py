"""GlobalPay adapter. GlobalPay requires an 11-digit customer phone number."""

import re
from decimal import Decimal
from typing import Optional

import httpx

from app.core.enums import GatewayName, PaymentStatus
from app.core.exceptions import GatewayError, ValidationError

from .base import ContactInfo, GatewayOutcome, HttpGateway, RedirectTarget, parse_amount

PHONE_PATTERN = re.compile(r"^\d{11}$")
MIN_ADDRESS_LENGTH = 6

_SUCCESS = {"successful", "success"}
_FAILED = {"failed", "declined", "cancelled"}


class GlobalPayGateway(HttpGateway):
    name = GatewayName.GLOBALPAY.value
    callback_keys = ("globalpay_ref", "txnref", "Ref", "reference")

    def __init__(
        self,
        api_key: str,
        callback_url: str,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(
            base_url,
            headers={"apikey": api_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        self._callback_url = callback_url

    def validate_contact(self, contact: ContactInfo) -> None:
        phone = (contact.phone_number or "").strip()
        if not phone:
            raise ValidationError("Phone number is required for GlobalPay", details=[{"field": "phoneNumber", "message": "required"}])
        if not PHONE_PATTERN.match(phone):
            raise ValidationError(
                "Phone number must be exactly 11 digits",
                details=[{"field": "phoneNumber", "message": "must be exactly 11 digits"}],
            )
        if contact.address is not None and len(contact.address.strip()) < MIN_ADDRESS_LENGTH:
            raise ValidationError(
                f"Address must be at least {MIN_ADDRESS_LENGTH} characters",
                details=[{"field": "address", "message": f"must be at least {MIN_ADDRESS_LENGTH} characters"}],
            )

    async def start_transaction(
        self, amount: Decimal, reference: str, contact: ContactInfo, currency: str
    ) -> RedirectTarget:
        names = (contact.name or "").split(maxsplit=1)
        payload = {
            "amount": str(amount),
            "merchantTransactionReference": reference,
            "redirectUrl": f"{self._callback_url}?gateway={self.name}&globalpay_ref={reference}",
            "customer": {
                "firstName": names[0] if names else "",
                "lastName": names[1] if len(names) > 1 else "",
                "currency": currency,
                "phoneNumber": contact.phone_number,
                "address": contact.address or "",
                "emailAddress": contact.email,
            },
        }
        body = await self._request("POST", "/api/v3/Payment/SetRequest", json=payload)
        data = body.get("data") or {}
        checkout_url = data.get("checkoutUrl")
        if not body.get("isSuccessful") or not checkout_url:
            raise GatewayError(
                f"GlobalPay request failed: {body.get('successMessage') or body.get('error') or 'no checkoutUrl'}",
                details={"reference": reference},
            )
        return RedirectTarget(redirect_url=checkout_url, provider_reference=data.get("transactionReference"))

    async def check_status(self, reference: str) -> GatewayOutcome:
        body = await self._request(
            "POST",
            "/api/v3/ParamQuery/Payment",
            json={"merchantTransactionReference": reference},
        )
        data = body.get("data")
        if not body.get("isSuccessful") or not isinstance(data, dict):
            raise GatewayError(
                f"GlobalPay query failed: {body.get('successMessage') or body.get('error') or 'missing data'}",
                details={"reference": reference},
            )
        raw_status = str(data.get("paymentStatus") or "").lower()
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
            code=str(body.get("responseCode") or raw_status or "") or None,
            message=body.get("successMessage") or data.get("paymentStatus"),
            raw=data,
        )
