"""Enabled gateway adapters, keyed by the name clients send in ``gateway``."""

import logging
from typing import Dict, Iterable, List

from app.core.config import Settings
from app.core.exceptions import ValidationError

from .base import PaymentGateway
from .flutterwave import FlutterwaveGateway
from .globalpay import GlobalPayGateway
from .paystack import PaystackGateway
from .sandbox import SandboxGateway

logger = logging.getLogger(__name__)


class GatewayRegistry:
    def __init__(self, gateways: Iterable[PaymentGateway] = ()) -> None:
        self._gateways: Dict[str, PaymentGateway] = {}
        for gateway in gateways:
            self.register(gateway)

    def register(self, gateway: PaymentGateway) -> None:
        self._gateways[gateway.name] = gateway

    def get(self, name: str) -> PaymentGateway:
        gateway = self._gateways.get(str(name or "").strip().lower())
        if gateway is None:
            raise ValidationError(
                f"Unsupported payment gateway: {name}",
                details={"enabledGateways": self.names()},
            )
        return gateway

    def names(self) -> List[str]:
        return sorted(self._gateways)

    async def aclose(self) -> None:
        for gateway in self._gateways.values():
            await gateway.aclose()


def build_gateway_registry(settings: Settings) -> GatewayRegistry:
    """Register every provider whose credentials are configured."""
    registry = GatewayRegistry()
    timeout = settings.gateway_timeout_seconds
    if settings.paystack_secret_key:
        registry.register(
            PaystackGateway(
                settings.paystack_secret_key,
                callback_url=settings.payment_callback_url,
                base_url=settings.paystack_base_url,
                timeout=timeout,
            )
        )
    if settings.flutterwave_secret_key:
        registry.register(
            FlutterwaveGateway(
                settings.flutterwave_secret_key,
                callback_url=settings.payment_callback_url,
                webhook_hash=settings.flutterwave_webhook_hash,
                base_url=settings.flutterwave_base_url,
                timeout=timeout,
            )
        )
    if settings.globalpay_api_key:
        registry.register(
            GlobalPayGateway(
                settings.globalpay_api_key,
                callback_url=settings.payment_callback_url,
                base_url=settings.globalpay_base_url,
                timeout=timeout,
            )
        )
    if settings.sandbox_gateway_enabled:
        registry.register(SandboxGateway())
    if not registry.names():
        logger.warning("No payment gateways configured; initiation requests will be rejected")
    else:
        logger.info("Payment gateways enabled: %s", ", ".join(registry.names()))
    return registry
