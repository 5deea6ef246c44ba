"""
Classification of verified Stripe events.

Each recognised Stripe event type maps to one frozen dataclass; anything else
becomes ``Unrecognized``. ``fields()`` on every variant returns only the store
columns the payload actually carried (JSON ``null`` counts as absent), which is
what gives the reconciliation engine its partial-merge behaviour.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Union

logger = logging.getLogger(__name__)


def _present(**values) -> dict:
    return {name: value for name, value in values.items() if value is not None}


def _id(value):
    # expanded objects carry their id inside
    if isinstance(value, dict):
        return value.get("id")
    return value


@dataclass(frozen=True)
class BillingDetails:
    name: Optional[str] = None
    email: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None

    @classmethod
    def from_stripe(cls, details):
        details = details or {}
        address = details.get("address") or {}
        return cls(
            name=details.get("name"),
            email=details.get("email"),
            line1=address.get("line1"),
            line2=address.get("line2"),
            city=address.get("city"),
            state=address.get("state"),
            postal_code=address.get("postal_code"),
            country=address.get("country"),
        )

    def fields(self) -> dict:
        return _present(
            billing_name=self.name,
            billing_email=self.email,
            billing_address_line1=self.line1,
            billing_address_line2=self.line2,
            billing_address_city=self.city,
            billing_address_state=self.state,
            billing_address_postal_code=self.postal_code,
            billing_address_country=self.country,
        )


@dataclass(frozen=True)
class SessionCompleted:
    session_id: str
    payment_intent_id: Optional[str] = None
    customer_email: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    payment_status: Optional[str] = None

    kind = "session_completed"
    key_name = "session_id"

    @property
    def key(self):
        return self.session_id

    def fields(self) -> dict:
        return _present(
            payment_intent_id=self.payment_intent_id,
            customer_email=self.customer_email,
            amount_total=self.amount_total,
            currency=self.currency,
            payment_status=self.payment_status,
        )


@dataclass(frozen=True)
class IntentSucceeded:
    payment_intent_id: str
    payment_status: str = "succeeded"

    kind = "intent_succeeded"
    key_name = "payment_intent_id"

    @property
    def key(self):
        return self.payment_intent_id

    def fields(self) -> dict:
        return {"payment_status": self.payment_status}


@dataclass(frozen=True)
class IntentFailed:
    payment_intent_id: str
    error_message: Optional[str] = None
    payment_status: str = "failed"

    kind = "intent_failed"
    key_name = "payment_intent_id"

    @property
    def key(self):
        return self.payment_intent_id

    def fields(self) -> dict:
        return _present(payment_status=self.payment_status, error_message=self.error_message)


@dataclass(frozen=True)
class ChargeUpdated:
    payment_intent_id: str
    charge_id: Optional[str] = None
    receipt_url: Optional[str] = None
    payment_status: Optional[str] = None
    payment_method_type: Optional[str] = None
    billing_details: BillingDetails = field(default_factory=BillingDetails)

    kind = "charge_updated"
    key_name = "payment_intent_id"

    @property
    def key(self):
        return self.payment_intent_id

    def fields(self) -> dict:
        values = _present(
            charge_id=self.charge_id,
            receipt_url=self.receipt_url,
            payment_status=self.payment_status,
            payment_method_type=self.payment_method_type,
        )
        values.update(self.billing_details.fields())
        return values


@dataclass(frozen=True)
class Unrecognized:
    event_type: str
    reason: str = "unhandled event type"

    kind = "unrecognized"
    key_name = None
    key = None

    def fields(self) -> dict:
        return {}


ClassifiedEvent = Union[SessionCompleted, IntentSucceeded, IntentFailed, ChargeUpdated, Unrecognized]


def _session_completed(obj):
    customer_email = obj.get("customer_email") or (obj.get("customer_details") or {}).get("email")
    return SessionCompleted(
        session_id=obj.get("id"),
        payment_intent_id=_id(obj.get("payment_intent")),
        customer_email=customer_email,
        amount_total=obj.get("amount_total"),
        currency=obj.get("currency"),
        payment_status=obj.get("payment_status"),
    )


def _intent_succeeded(obj):
    return IntentSucceeded(payment_intent_id=obj.get("id"))


def _intent_failed(obj):
    error = obj.get("last_payment_error") or {}
    return IntentFailed(payment_intent_id=obj.get("id"), error_message=error.get("message"))


def _charge_updated(obj):
    method = obj.get("payment_method_details") or {}
    return ChargeUpdated(
        payment_intent_id=_id(obj.get("payment_intent")),
        charge_id=obj.get("id"),
        receipt_url=obj.get("receipt_url"),
        payment_status=obj.get("status"),
        payment_method_type=method.get("type"),
        billing_details=BillingDetails.from_stripe(obj.get("billing_details")),
    )


EVENT_PARSERS = {
    "checkout.session.completed": _session_completed,
    "payment_intent.succeeded": _intent_succeeded,
    "payment_intent.payment_failed": _intent_failed,
    "charge.updated": _charge_updated,
}


def classify(envelope: dict) -> ClassifiedEvent:
    event_type = envelope.get("type", "")
    parser = EVENT_PARSERS.get(event_type)
    if parser is None:
        return Unrecognized(event_type)

    event = parser(envelope["data"]["object"])
    if not event.key:
        logger.warning("Event %s %s has no %s", event_type, envelope.get("id"), event.key_name)
        return Unrecognized(event_type, reason=f"missing {event.key_name}")
    return event
