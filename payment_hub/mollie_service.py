import logging
import time
import uuid
from decimal import Decimal

import httpx

from payment_hub.checkout import CheckoutHandle, format_major_units
from payment_hub.config import Settings
from payment_hub.exceptions import ProviderError
from payment_hub.urls import redirect_url, webhook_url

logger = logging.getLogger(__name__)


def _headers(settings: Settings) -> dict:
    return {
        "Authorization": f"Bearer {settings.mollie_api_key}",
        "Content-Type": "application/json",
    }


def new_order_id() -> str:
    return f"order-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def create_session(amount: Decimal, description: str, settings: Settings) -> CheckoutHandle:
    """
    Create a Mollie payment and return its hosted checkout link.

    The payment is created with the bare success URL first, because the
    payment id is only known afterwards; the redirect is then patched to
    carry ``mollie_id``. Failing to patch is logged and otherwise ignored.
    """
    payload = {
        "amount": {"currency": "EUR", "value": format_major_units(amount)},
        "description": description or "Payment",
        "redirectUrl": redirect_url(settings),
        "metadata": {"orderId": new_order_id()},
    }
    hook = webhook_url(settings)
    if hook:
        payload["webhookUrl"] = hook

    with httpx.Client(base_url=settings.mollie_api_base, headers=_headers(settings), timeout=30.0) as client:
        try:
            resp = client.post("/payments", json=payload)
            resp.raise_for_status()
            payment = resp.json()
            payment_id = payment["id"]
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            raise ProviderError("mollie", f"{type(exc).__name__}: {exc}") from exc
        logger.info("Mollie payment created: %s", payment_id)

        try:
            client.patch(
                f"/payments/{payment_id}",
                json={"redirectUrl": redirect_url(settings, payment_id)},
            ).raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Could not update redirect URL for %s: %s", payment_id, exc)

    checkout_url = payment.get("_links", {}).get("checkout", {}).get("href")
    if not checkout_url:
        raise ProviderError("mollie", "no checkout URL returned")
    return CheckoutHandle(checkout_url=checkout_url, session_id=payment_id)


def get_payment(payment_id: str, settings: Settings) -> dict:
    try:
        resp = httpx.get(
            f"{settings.mollie_api_base}/payments/{payment_id}",
            headers=_headers(settings),
            timeout=20.0,
        )
        resp.raise_for_status()
        return resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise ProviderError("mollie", f"{type(exc).__name__}: {exc}") from exc
