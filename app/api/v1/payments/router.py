"""Payments router: initiate, verify, balance lookup and settlement, provider callbacks, admin listing."""

import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_admin
from app.core.enums import PaymentStatus
from app.core.exceptions import ValidationError
from app.core.receipts import ReceiptIssuer
from app.db.session import get_db
from app.gateways.registry import GatewayRegistry

from .dependencies import get_gateway_registry, get_receipt_issuer, get_reference_locks
from .locks import ReferenceLocks
from .schemas import (
    ApiResponse,
    BalanceData,
    BalanceSettlementRequest,
    ErrorResponse,
    InitiatePaymentData,
    InitiatePaymentRequest,
    PaymentDetail,
    VerifyPaymentData,
)
from .verification import verify_payment
from . import service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/payments",
    tags=["payments"],
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)


# --- Initiate ---
@router.post(
    "/initiate",
    response_model=ApiResponse[InitiatePaymentData],
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def initiate_payment(
    payload: InitiatePaymentRequest,
    db: AsyncSession = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry),
) -> ApiResponse[InitiatePaymentData]:
    data = await service.initiate_payment(db, payload, gateways)
    return ApiResponse(data=data)


@router.post(
    "/balance/initiate",
    response_model=ApiResponse[InitiatePaymentData],
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def initiate_balance_settlement(
    payload: BalanceSettlementRequest,
    db: AsyncSession = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry),
) -> ApiResponse[InitiatePaymentData]:
    data = await service.initiate_balance_settlement(db, payload, gateways)
    return ApiResponse(data=data)


# --- Verify ---
@router.get(
    "/verify/{reference}",
    response_model=ApiResponse[VerifyPaymentData],
    response_model_by_alias=True,
)
async def verify(
    reference: str,
    gateway: Optional[str] = Query(None, description="Gateway the payment was started with"),
    original_reference: Optional[str] = Query(None, description="Root reference of the payment chain"),
    db: AsyncSession = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry),
    locks: ReferenceLocks = Depends(get_reference_locks),
    receipts: ReceiptIssuer = Depends(get_receipt_issuer),
) -> ApiResponse[VerifyPaymentData]:
    result = await verify_payment(
        db,
        reference,
        gateways=gateways,
        locks=locks,
        receipts=receipts,
        gateway_name=gateway,
        original_reference=original_reference,
    )
    return ApiResponse(data=service.verification_to_response(result))


@router.get(
    "/callback/{gateway}",
    response_model=ApiResponse[VerifyPaymentData],
    response_model_by_alias=True,
)
async def gateway_callback(
    gateway: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry),
    locks: ReferenceLocks = Depends(get_reference_locks),
    receipts: ReceiptIssuer = Depends(get_receipt_issuer),
) -> ApiResponse[VerifyPaymentData]:
    """Payer returned from the provider's checkout page."""
    adapter = gateways.get(gateway)
    reference = adapter.reference_from_callback(dict(request.query_params))
    if not reference:
        raise ValidationError(
            "Callback carries no transaction reference",
            details={"expectedParams": list(adapter.callback_keys)},
        )
    result = await verify_payment(
        db, reference, gateways=gateways, locks=locks, receipts=receipts, gateway_name=adapter.name
    )
    return ApiResponse(data=service.verification_to_response(result))


@router.post(
    "/webhooks/{gateway}",
    response_model=ApiResponse[VerifyPaymentData],
    response_model_by_alias=True,
)
async def gateway_webhook(
    gateway: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry),
    locks: ReferenceLocks = Depends(get_reference_locks),
    receipts: ReceiptIssuer = Depends(get_receipt_issuer),
) -> ApiResponse[VerifyPaymentData]:
    """Provider notification. The body is only used to find the reference; the outcome comes from check_status."""
    adapter = gateways.get(gateway)
    body = await request.body()
    if not adapter.verify_webhook(body, request.headers):
        logger.warning("Rejected %s webhook with an invalid signature", adapter.name)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")
    try:
        event = json.loads(body or b"{}")
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON")
    if not isinstance(event, dict):
        raise ValidationError("Webhook body must be a JSON object")

    reference = adapter.reference_from_callback(event)
    if not reference:
        raise ValidationError("Webhook carries no transaction reference")
    result = await verify_payment(
        db, reference, gateways=gateways, locks=locks, receipts=receipts, gateway_name=adapter.name
    )
    return ApiResponse(data=service.verification_to_response(result))


# --- Lookups ---
@router.get(
    "/by-ref/{reference}",
    response_model=ApiResponse[PaymentDetail],
    response_model_by_alias=True,
)
async def read_payment(
    reference: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[PaymentDetail]:
    return ApiResponse(data=await service.get_payment_detail(db, reference.strip()))


@router.get(
    "/balance/by-ref/{reference}",
    response_model=ApiResponse[BalanceData],
    response_model_by_alias=True,
)
async def read_balance(
    reference: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[BalanceData]:
    return ApiResponse(data=await service.get_balance(db, reference.strip()))


@router.get(
    "",
    response_model=ApiResponse[List[PaymentDetail]],
    response_model_by_alias=True,
    dependencies=[Depends(get_current_admin)],
)
async def list_payments(
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    gateway: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[List[PaymentDetail]]:
    payments = await service.list_payments(db, status_filter=status_filter, gateway=gateway, limit=limit, offset=offset)
    return ApiResponse(data=payments)
