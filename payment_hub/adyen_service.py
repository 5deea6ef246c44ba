import logging
from decimal import Decimal

import httpx

from payment_hub.checkout import CheckoutHandle, to_minor_units
from payment_hub.config import Settings
from payment_hub.exceptions import ProviderError
from payment_hub.urls import redirect_url

logger = logging.getLogger(__name__)

COUNTRY_CODE = "NL"


def create_session(amount: Decimal, description: str, settings: Settings) -> CheckoutHandle:
    """Create an Adyen Checkout session; the drop-in needs both id and sessionData."""
    payload = {
        "amount": {"currency": "EUR", "value": to_minor_units(amount)},
        "countryCode": COUNTRY_CODE,
        "merchantAccount": settings.adyen_merchant_account,
        "reference": description,
        "returnUrl": redirect_url(settings),
    }
    try:
        resp = httpx.post(
            f"{settings.adyen_checkout_base}/sessions",
            json=payload,
            headers={"X-API-Key": settings.adyen_api_key or "", "Content-Type": "application/json"},
            timeout=30.0,
        )
        resp.raise_for_status()
        body = resp.json()
        session_id = body["id"]
    except (httpx.HTTPError, ValueError, KeyError) as exc:
        logger.error("Adyen Error creating session: %s", exc)
        raise ProviderError("adyen", f"{type(exc).__name__}: {exc}") from exc

    return CheckoutHandle(
        checkout_url=body.get("url"),
        session_id=session_id,
        session_data=body.get("sessionData"),
    )
