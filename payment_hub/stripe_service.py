from decimal import Decimal

import stripe

from payment_hub.checkout import CheckoutHandle, to_minor_units
from payment_hub.config import Settings
from payment_hub.exceptions import ProviderError

PAYMENT_METHOD_TYPES = ["card", "ideal", "bancontact", "sofort", "giropay", "eps"]


def create_session(amount: Decimal, description: str, settings: Settings) -> CheckoutHandle:
    return_url = f"{settings.frontend_url}/success?session_id={{CHECKOUT_SESSION_ID}}"
    try:
        session = stripe.checkout.Session.create(
            api_key=settings.stripe_secret_key,
            payment_method_types=PAYMENT_METHOD_TYPES,
            line_items=[
                {
                    "price_data": {
                        "currency": "eur",
                        "product_data": {"name": description},
                        "unit_amount": to_minor_units(amount),
                    },
                    "quantity": 1,
                }
            ],
            mode="payment",
            success_url=return_url,
            cancel_url=return_url,
        )
    except stripe.StripeError as exc:
        raise ProviderError("stripe", str(exc)) from exc

    return CheckoutHandle(checkout_url=session.url, session_id=session.id)


def retrieve_session(session_id: str, settings: Settings):
    try:
        return stripe.checkout.Session.retrieve(
            session_id,
            api_key=settings.stripe_secret_key,
            expand=["line_items", "payment_intent"],
        )
    except stripe.StripeError as exc:
        raise ProviderError("stripe", str(exc)) from exc
