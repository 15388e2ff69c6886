import os
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from fastapi import APIRouter, Body, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from app.auth import verify_webhook_signature
from app.confirmation import ConfirmationEngine
from app.exceptions import ProviderVerificationError, ValidationError
from app.flutterwave import verify_transaction
from app.logging_config import get_logger
from app.lookup import OrderLookup
from app.store import DocumentStore, get_store

router = APIRouter()
logger = get_logger(__name__)

SUCCESSFUL = "successful"


class VerifyRequest(BaseModel):
    transaction_id: Optional[Union[int, str]] = None
    tx_ref: Optional[str] = None
    expectedAmount: Optional[Union[int, float, str]] = None
    currency: Optional[str] = None
    orderData: Optional[dict] = None
    quoteId: Optional[str] = None
    brandId: Optional[str] = None


class LookupRequest(BaseModel):
    trackingRef: Optional[str] = None
    brandId: Optional[str] = None


def default_brand_id() -> str:
    return os.getenv("DEFAULT_BRAND_ID") or "serac"


def _is_successful(status: Any) -> bool:
    return isinstance(status, str) and status.lower() == SUCCESSFUL


def _to_number(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return int(number) if number.is_integer() else number


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


@router.post("/webhook", dependencies=[Depends(verify_webhook_signature)])
async def flutterwave_webhook(
    request: Request,
    brandId: Optional[str] = None,
    store: DocumentStore = Depends(get_store),
):
    try:
        event = await request.json()
    except ValueError:
        raise ValidationError("Invalid webhook payload")

    data = event.get("data") if isinstance(event, dict) else None
    if not isinstance(data, dict):
        raise ValidationError("Invalid webhook payload")

    transaction_id = data.get("id")
    tx_ref = data.get("tx_ref")

    # Providers notify every state change; only the successful one matters
    if not _is_successful(data.get("status")):
        logger.info(
            "flutterwave_webhook_ignored",
            transaction_id=transaction_id,
            tx_ref=tx_ref,
            status=data.get("status"),
        )
        return {"status": "ignored", "message": "Transaction not successful"}

    engine = ConfirmationEngine(store, brandId or default_brand_id())
    result = await run_in_threadpool(
        engine.record_confirmed_payment,
        transaction_id,
        tx_ref,
        _to_number(data.get("amount")),
        data.get("currency"),
        event,
        raw_field="flutterwave_webhook",
    )

    if result.already_processed:
        return {"status": "success", "message": "Already processed", "orderId": result.order_id}

    logger.info("flutterwave_webhook_processed", tx_ref=tx_ref, order_id=result.order_id)
    return {
        "status": "success",
        "message": "Webhook processed successfully",
        "orderId": result.order_id,
    }


@router.post("/verify")
def verify_payment(request: VerifyRequest, store: DocumentStore = Depends(get_store)):
    if not request.transaction_id and not request.tx_ref:
        raise ValidationError("Missing transaction_id or tx_ref")

    engine = ConfirmationEngine(store, request.brandId or default_brand_id())

    # A refreshed "processing" page must not trigger a second provider call
    if request.transaction_id:
        existing = engine.find_order(request.transaction_id)
        if existing is not None:
            return {
                "status": "success",
                "verified": True,
                "alreadyProcessed": True,
                "orderId": existing.id,
                "orderDoc": existing.data,
            }

    transaction_id = str(request.transaction_id) if request.transaction_id else None
    data = verify_transaction(transaction_id=transaction_id, tx_ref=request.tx_ref)

    if not _is_successful(data.get("status")):
        raise ProviderVerificationError("Transaction not successful", data=data)

    if request.expectedAmount is not None:
        expected = _decimal(request.expectedAmount)
        if expected is None:
            raise ValidationError(f"Invalid expectedAmount: {request.expectedAmount}")
        if _decimal(data.get("amount")) != expected:
            raise ProviderVerificationError(
                f"Amount mismatch (expected {request.expectedAmount}, got {data.get('amount')})",
                data=data,
            )

    if request.currency and data.get("currency") != request.currency:
        raise ProviderVerificationError(
            f"Currency mismatch (expected {request.currency}, got {data.get('currency')})",
            data=data,
        )

    result = engine.record_confirmed_payment(
        data.get("id") or request.transaction_id,
        data.get("tx_ref") or request.tx_ref,
        data.get("amount"),
        data.get("currency"),
        data,
        raw_field="flutterwave_response",
        extra_fields=request.orderData,
        quote_id=request.quoteId,
    )

    if result.already_processed:
        return {
            "status": "success",
            "verified": True,
            "alreadyProcessed": True,
            "orderId": result.order_id,
            "orderDoc": result.order,
        }

    logger.info("payment_verified", order_id=result.order_id, transaction_id=data.get("id"))
    return {
        "status": "success",
        "verified": True,
        "orderId": result.order_id,
        "data": data,
    }


def _lookup(store: DocumentStore, tracking_ref: Optional[str], brand_id: Optional[str], tenant_scoped: bool):
    if not tracking_ref:
        raise ValidationError("Missing trackingRef")
    if tenant_scoped and not brand_id:
        raise ValidationError("Missing brandId")

    order = OrderLookup(store).find(tracking_ref, brand_id if tenant_scoped else default_brand_id())
    if order is None:
        if tenant_scoped:
            return {"found": False, "message": "Tracking reference not valid for this brand"}
        return {"found": False}
    return {"found": True, "order": order}


@router.get("/orders/lookup")
def lookup_order(
    trackingRef: Optional[str] = None,
    brandId: Optional[str] = None,
    store: DocumentStore = Depends(get_store),
):
    return _lookup(store, trackingRef, brandId, tenant_scoped=True)


@router.post("/orders/lookup")
def lookup_order_by_body(
    body: Optional[LookupRequest] = Body(None),
    store: DocumentStore = Depends(get_store),
):
    body = body or LookupRequest()
    return _lookup(store, body.trackingRef, body.brandId, tenant_scoped=True)


@router.get("/orders/lookup/default")
def lookup_default_brand_order(
    trackingRef: Optional[str] = None,
    store: DocumentStore = Depends(get_store),
):
    return _lookup(store, trackingRef, None, tenant_scoped=False)


@router.post("/orders/lookup/default")
def lookup_default_brand_order_by_body(
    body: Optional[LookupRequest] = Body(None),
    store: DocumentStore = Depends(get_store),
):
    body = body or LookupRequest()
    return _lookup(store, body.trackingRef, None, tenant_scoped=False)
