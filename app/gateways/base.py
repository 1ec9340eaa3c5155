"""
Gateway adapter contract.

Every provider adapter turns its own request/response shapes, status vocabulary and
callback parameter names into the types below. The reconciliation engine only ever
sees a GatewayOutcome.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, Dict, Mapping, Optional, Sequence, TypeVar

import httpx

from app.core.enums import PaymentStatus
from app.core.exceptions import GatewayError, GatewayTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CALLBACK_KEYS: Sequence[str] = ("reference", "trxref", "tx_ref", "txnref", "globalpay_ref", "Ref")


@dataclass(frozen=True)
class ContactInfo:
    email: str
    name: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class RedirectTarget:
    redirect_url: str
    provider_reference: Optional[str] = None


@dataclass(frozen=True)
class GatewayOutcome:
    """Normalized provider answer for one transaction reference."""

    status: PaymentStatus
    amount: Optional[Decimal] = None
    code: Optional[str] = None
    message: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


class PaymentGateway(ABC):
    """Base class for provider adapters."""

    name: str = ""
    callback_keys: Sequence[str] = DEFAULT_CALLBACK_KEYS

    def validate_contact(self, contact: ContactInfo) -> None:
        """Raise ValidationError when the provider needs contact fields that are missing or malformed."""
        return None

    @abstractmethod
    async def start_transaction(
        self,
        amount: Decimal,
        reference: str,
        contact: ContactInfo,
        currency: str,
    ) -> RedirectTarget:
        """
        Open a transaction with the provider and return where to send the payer.

        Called at most once per reference; implementations need not be idempotent.
        Raises GatewayError on any network, HTTP or response-shape failure.
        """
        ...

    @abstractmethod
    async def check_status(self, reference: str) -> GatewayOutcome:
        """Ask the provider for the current state of ``reference``. Safe to call repeatedly."""
        ...

    def reference_from_callback(self, params: Mapping[str, Any]) -> Optional[str]:
        """Pick the transaction reference out of redirect query params or a webhook body."""
        data = params.get("data") if isinstance(params.get("data"), Mapping) else None
        for source in (params, data or {}):
            for key in self.callback_keys:
                value = source.get(key)
                if value:
                    return str(value).strip()
        return None

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> bool:
        return True

    async def aclose(self) -> None:
        return None


class HttpGateway(PaymentGateway):
    """Adapter backed by an httpx.AsyncClient. Pass ``transport`` to stub the provider in tests."""

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers or {},
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise GatewayTimeoutError(f"{self.name} request timed out", details={"url": url}) from e
        except httpx.HTTPError as e:
            raise GatewayError(f"{self.name} request failed: {e}", details={"url": url}) from e

        if resp.status_code >= 500:
            raise GatewayError(
                f"{self.name} returned {resp.status_code}",
                details={"url": url, "statusCode": resp.status_code},
            )
        try:
            body = resp.json()
        except ValueError as e:
            raise GatewayError(f"{self.name} returned a non-JSON response", details={"url": url}) from e
        if not isinstance(body, dict):
            raise GatewayError(f"{self.name} returned an unexpected response shape", details={"url": url})
        if resp.status_code >= 400:
            body.setdefault("_http_status", resp.status_code)
        return body

    async def aclose(self) -> None:
        await self._client.aclose()


async def call_gateway(awaitable: Awaitable[T], timeout: float, action: str) -> T:
    """Bound a gateway call by ``timeout`` seconds; a timeout becomes a retryable GatewayTimeoutError."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.warning("Gateway %s timed out after %ss", action, timeout)
        raise GatewayTimeoutError(f"Gateway {action} timed out") from e


def parse_amount(value: Any, provider: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (ArithmeticError, ValueError) as e:
        raise GatewayError(f"{provider} reported an invalid amount: {value!r}") from e
