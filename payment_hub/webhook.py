import logging

from fastapi import APIRouter, Header, Request
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from payment_hub.config import get_settings
from payment_hub.database import SessionLocal
from payment_hub.events import Unrecognized, classify
from payment_hub.exceptions import AuthenticationError
from payment_hub.reconciliation import ReconciliationEngine
from payment_hub.signature import verify_event
from payment_hub.store import PaymentRecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("")
@router.post("/stripe")
async def stripe_webhook(request: Request, stripe_signature: str = Header(None)):
    # signature covers the exact bytes, never the parsed JSON
    payload = await request.body()
    settings = get_settings()
    if not settings.stripe_webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not set, rejecting webhook")
        return PlainTextResponse("Webhook Error: webhook secret not configured", status_code=400)

    try:
        envelope = verify_event(
            payload,
            stripe_signature,
            settings.stripe_webhook_secret,
            tolerance=settings.stripe_webhook_tolerance,
        )
    except AuthenticationError as exc:
        return PlainTextResponse(f"Webhook Error: {exc}", status_code=400)

    try:
        event = classify(envelope)
    except Exception:
        logger.exception("needs_followup: could not classify %s (%s)",
                         envelope["type"], envelope.get("id"))
        event = Unrecognized(envelope["type"], reason="unparseable event payload")
    logger.info("Received %s (%s)", envelope["type"], envelope.get("id"))

    reconciler = ReconciliationEngine(PaymentRecordStore(SessionLocal))
    result = await run_in_threadpool(reconciler.apply, event)
    logger.debug("Webhook %s -> %s", envelope.get("id"), result.outcome.value)

    return {"received": True}
