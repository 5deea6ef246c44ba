"""
Reconciliation of classified Stripe events into payment records.

Merge policy per event kind:

* ``SessionCompleted`` creates the record or, on redelivery, overwrites the
  same fields.
* ``IntentSucceeded`` / ``IntentFailed`` only update an existing record.
  Transport ordering is not guaranteed, so a missing record is a no-op.
* ``ChargeUpdated`` updates by payment intent and creates a minimal record
  when none exists yet.
* ``Unrecognized`` is acknowledged and skipped.

Nothing raised in here reaches the webhook boundary, unexpected errors
included: once a signature has verified, Stripe must get a 2xx or it will
redeliver.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from payment_hub.events import (
    ChargeUpdated,
    ClassifiedEvent,
    IntentFailed,
    IntentSucceeded,
    SessionCompleted,
    Unrecognized,
)
from payment_hub.exceptions import PersistenceFailure, RecordNotFound
from payment_hub.store import PaymentRecordStore

logger = logging.getLogger(__name__)


class Outcome(str, enum.Enum):
    APPLIED = "applied"
    NOT_FOUND = "not_found"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass(frozen=True)
class ApplyResult:
    outcome: Outcome
    kind: str
    key: Optional[str] = None
    detail: Optional[str] = None


# event class -> may the merge create a missing record
MERGE_CREATES = {
    SessionCompleted: True,
    IntentSucceeded: False,
    IntentFailed: False,
    ChargeUpdated: True,
}


class ReconciliationEngine:
    def __init__(self, store: PaymentRecordStore):
        self.store = store

    def apply(self, event: ClassifiedEvent) -> ApplyResult:
        if isinstance(event, Unrecognized):
            logger.info("Ignoring %s event: %s", event.event_type or "<untyped>", event.reason)
            return ApplyResult(Outcome.IGNORED, event.kind, detail=event.reason)

        create = MERGE_CREATES.get(type(event))
        if create is None:
            logger.error("No merge policy for %r", event)
            return ApplyResult(Outcome.IGNORED, event.kind, event.key, "no merge policy")

        try:
            self.store.merge(event.key_name, event.key, event.fields(), create=create)
        except RecordNotFound as exc:
            logger.warning("%s for %s arrived before its record, skipping: %s",
                           event.kind, event.key, exc)
            return ApplyResult(Outcome.NOT_FOUND, event.kind, event.key, str(exc))
        except PersistenceFailure as exc:
            logger.error(
                "needs_followup: could not persist %s for %s=%s: %s",
                event.kind, event.key_name, event.key, exc.cause,
                extra={"event_kind": event.kind, "event_key": event.key, "fields": event.fields()},
            )
            return ApplyResult(Outcome.FAILED, event.kind, event.key, str(exc))
        except Exception as exc:
            logger.exception(
                "needs_followup: unexpected error applying %s for %s=%r",
                event.kind, event.key_name, event.key,
                extra={"event_kind": event.kind, "event_key": repr(event.key)},
            )
            return ApplyResult(Outcome.FAILED, event.kind, event.key, f"{type(exc).__name__}: {exc}")

        logger.info("Applied %s for %s=%s", event.kind, event.key_name, event.key)
        return ApplyResult(Outcome.APPLIED, event.kind, event.key)
