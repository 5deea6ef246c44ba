"""
Stripe webhook signature verification.

The ``Stripe-Signature`` header looks like ``t=1492774577,v1=5257a8...``.
Header parsing and the tolerance window are checked here so each failure can
be told apart; the HMAC comparison itself is left to the stripe library. The
body must be the exact bytes received; re-serialised JSON will not verify.
"""
import json
import logging
import time
from typing import Optional

import stripe

from payment_hub.exceptions import (
    AuthenticationError,
    MalformedPayload,
    MalformedSignatureHeader,
    SignatureMismatch,
    StaleTimestamp,
)

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 300


def _parse_timestamp(sig_header):
    if not sig_header:
        raise MalformedSignatureHeader("missing signature header")

    timestamp = None
    has_signature = False
    for item in sig_header.split(","):
        name, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if name == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise MalformedSignatureHeader("unable to parse timestamp from header") from None
        elif name == stripe.WebhookSignature.EXPECTED_SCHEME:
            has_signature = True

    if timestamp is None or not has_signature:
        raise MalformedSignatureHeader("unable to extract timestamp and signatures from header")
    return timestamp


def verify_event(
    payload: bytes,
    sig_header: Optional[str],
    secret: str,
    tolerance: int = DEFAULT_TOLERANCE,
    now: Optional[int] = None,
) -> dict:
    """Verify ``payload`` against ``sig_header`` and return the decoded event."""
    try:
        timestamp = _parse_timestamp(sig_header)

        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedPayload("invalid payload: body is not UTF-8") from None

        try:
            # tolerance is enforced below, in both directions
            stripe.WebhookSignature.verify_header(text, sig_header, secret, tolerance=None)
        except stripe.SignatureVerificationError as exc:
            raise SignatureMismatch(str(exc)) from None

        current = int(time.time()) if now is None else now
        if tolerance and abs(current - timestamp) > tolerance:
            raise StaleTimestamp(
                f"timestamp outside the tolerance zone ({current - timestamp}s > {tolerance}s)"
            )

        return _decode(text)
    except AuthenticationError as exc:
        logger.warning("Webhook rejected (%s): %s", type(exc).__name__, exc)
        raise


def _decode(text: str) -> dict:
    try:
        event = json.loads(text)
    except json.JSONDecodeError:
        raise MalformedPayload("invalid payload: body is not JSON") from None

    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        raise MalformedPayload("invalid payload: missing event type")
    data = event.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("object"), dict):
        raise MalformedPayload("invalid payload: missing data.object")
    return event
