import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from payment_hub import adyen_service, mollie_service, paypal_service, stripe_service
from payment_hub.auth import verify_token
from payment_hub.config import get_settings
from payment_hub.database import SessionLocal
from payment_hub.exceptions import ProviderError
from payment_hub.store import PaymentRecordStore
from payment_hub.urls import redirect_url, webhook_url

logger = logging.getLogger(__name__)

router = APIRouter()

ADAPTERS = {
    "stripe": stripe_service.create_session,
    "mollie": mollie_service.create_session,
    "adyen": adyen_service.create_session,
    "paypal": paypal_service.create_session,
}


class CheckoutRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    description: str = "Payment"


class CheckoutResponse(BaseModel):
    checkoutUrl: Optional[str]
    sessionId: str
    sessionData: Optional[str] = None


class PaymentRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    session_id: Optional[str]
    payment_intent_id: Optional[str]
    charge_id: Optional[str]
    customer_email: Optional[str]
    amount_total: Optional[int]
    currency: Optional[str]
    payment_status: Optional[str]
    payment_method_type: Optional[str]
    receipt_url: Optional[str]
    billing_name: Optional[str]
    billing_email: Optional[str]
    billing_address_line1: Optional[str]
    billing_address_line2: Optional[str]
    billing_address_city: Optional[str]
    billing_address_state: Optional[str]
    billing_address_postal_code: Optional[str]
    billing_address_country: Optional[str]
    error_message: Optional[str]
    created_at: datetime
    updated_at: datetime


def _provider_failed(provider: str, exc: ProviderError):
    logger.error("%s checkout failed: %s", provider, exc)
    return JSONResponse(status_code=502, content={"error": f"{provider.capitalize()} checkout failed"})


@router.post("/create-payment/{provider}", response_model=CheckoutResponse)
def create_payment_api(provider: str, request: CheckoutRequest, auth=Depends(verify_token)):
    adapter = ADAPTERS.get(provider)
    if adapter is None:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")

    try:
        handle = adapter(request.amount, request.description, get_settings())
    except ProviderError as exc:
        return _provider_failed(provider, exc)

    return CheckoutResponse(
        checkoutUrl=handle.checkout_url,
        sessionId=handle.session_id,
        sessionData=handle.session_data,
    )


@router.get("/stripe-session/{session_id}")
def stripe_session(session_id: str, auth=Depends(verify_token)):
    try:
        session = stripe_service.retrieve_session(session_id, get_settings())
    except ProviderError as exc:
        logger.error("Stripe fetch error: %s", exc)
        raise HTTPException(status_code=502, detail="Failed to fetch Stripe session")
    return session.to_dict()


@router.get("/mollie-session/{payment_id}")
def mollie_session(payment_id: str, auth=Depends(verify_token)):
    # unrendered template ids like "{id}" come from a misconfigured redirect
    if payment_id == "{id}" or "{" in payment_id or "}" in payment_id:
        raise HTTPException(status_code=400, detail=f"Invalid payment ID format: {payment_id}")
    try:
        return mollie_service.get_payment(payment_id, get_settings())
    except ProviderError as exc:
        logger.error("Mollie fetch error for %s: %s", payment_id, exc)
        raise HTTPException(status_code=502, detail="Failed to fetch Mollie payment session")


@router.get("/payments/{session_id}", response_model=PaymentRecordOut)
def get_payment_record(session_id: str, auth=Depends(verify_token)):
    record = PaymentRecordStore(SessionLocal).get_by_session(session_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Payment not found")
    return record


@router.get("/test-mollie-config")
def mollie_config():
    settings = get_settings()
    return {
        "frontendUrl": settings.frontend_url,
        "webhookUrl": webhook_url(settings) or "Not configured",
        "redirectUrl": redirect_url(settings, "test_payment_id"),
        "mollieApiKey": "Set" if settings.mollie_api_key else "Not set",
        "isLocalhost": "localhost" in settings.frontend_url,
    }
