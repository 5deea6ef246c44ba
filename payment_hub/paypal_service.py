from decimal import Decimal

import httpx

from payment_hub.checkout import CheckoutHandle, format_major_units
from payment_hub.config import Settings
from payment_hub.exceptions import ProviderError


def _access_token(client: httpx.Client, settings: Settings) -> str:
    resp = client.post(
        "/v1/oauth2/token",
        data={"grant_type": "client_credentials"},
        auth=(settings.paypal_client_id or "", settings.paypal_secret or ""),
    )
    resp.raise_for_status()
    return resp.json()["access_token"]


def create_session(amount: Decimal, description: str, settings: Settings) -> CheckoutHandle:
    order = {
        "intent": "CAPTURE",
        "purchase_units": [
            {
                "amount": {"currency_code": "EUR", "value": format_major_units(amount)},
                "description": description,
            }
        ],
    }
    try:
        with httpx.Client(base_url=settings.paypal_api_base, timeout=30.0) as client:
            token = _access_token(client, settings)
            resp = client.post(
                "/v2/checkout/orders",
                json=order,
                headers={"Authorization": f"Bearer {token}"},
            )
            resp.raise_for_status()
        body = resp.json()
        order_id = body["id"]
    except (httpx.HTTPError, ValueError, KeyError) as exc:
        raise ProviderError("paypal", f"{type(exc).__name__}: {exc}") from exc

    approve = next((link["href"] for link in body.get("links", []) if link.get("rel") == "approve"), None)
    return CheckoutHandle(checkout_url=approve, session_id=order_id)
