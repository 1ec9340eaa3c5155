"""Shared payment collaborators live on app.state; routes reach them through these dependencies."""

from fastapi import Request

from app.core.receipts import ReceiptIssuer
from app.gateways.registry import GatewayRegistry

from .locks import ReferenceLocks


def get_gateway_registry(request: Request) -> GatewayRegistry:
    return request.app.state.gateways


def get_reference_locks(request: Request) -> ReferenceLocks:
    return request.app.state.reference_locks


def get_receipt_issuer(request: Request) -> ReceiptIssuer:
    return request.app.state.receipt_issuer
