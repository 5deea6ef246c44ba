"""
Payment record store.

Every merge runs in one transaction, under an in-process lock for the payment
intent (or session) it touches:

* a conditional ``UPDATE ... WHERE <key> = :key`` against the existing record,
* when nothing matched and the merge may create, an
  ``INSERT ... ON CONFLICT (<key>) DO UPDATE`` so that a concurrent insert
  from another process still ends up as a merge.

Only the columns handed in are written, so absent fields keep their stored
value. ``payment_intent_id`` goes through ``COALESCE(existing, incoming)`` and
therefore never changes once set.
"""
import logging
import threading
from contextlib import contextmanager

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from payment_hub.exceptions import PersistenceFailure, RecordNotFound
from payment_hub.models import PaymentRecord, utcnow

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class KeyedLock:
    """In-process mutual exclusion per key. Entries are dropped once unused."""

    def __init__(self):
        self._guard = threading.Lock()
        self._entries = {}

    @contextmanager
    def hold(self, key):
        with self._guard:
            entry = self._entries.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self):
        with self._guard:
            return len(self._entries)


_process_locks = KeyedLock()


def _pinned(fields):
    """Column values for an UPDATE that never replaces a set payment_intent_id."""
    if "payment_intent_id" not in fields:
        return fields
    values = dict(fields)
    values["payment_intent_id"] = func.coalesce(
        PaymentRecord.payment_intent_id, fields["payment_intent_id"]
    )
    return values


class PaymentRecordStore:
    def __init__(self, session_factory, locks: KeyedLock = None):
        self._session_factory = session_factory
        self._locks = locks if locks is not None else _process_locks

    def get_by_session(self, session_id: str):
        with self._session_factory() as db:
            return db.scalars(
                select(PaymentRecord).where(PaymentRecord.session_id == session_id)
            ).first()

    def get_by_intent(self, payment_intent_id: str):
        with self._session_factory() as db:
            return db.scalars(
                select(PaymentRecord).where(PaymentRecord.payment_intent_id == payment_intent_id)
            ).first()

    def merge(self, key_name: str, key: str, fields: dict, create: bool = True) -> None:
        """
        Merge ``fields`` into the record whose ``key_name`` column equals ``key``.

        With ``create`` the record is inserted when absent. A session merge that
        carries a payment intent id first adopts an orphan record (one created
        by a charge event, no session id yet) for that intent.

        Raises RecordNotFound when ``create`` is false and nothing matched, and
        PersistenceFailure when the database rejects the statement.
        """
        if key_name not in ("session_id", "payment_intent_id"):
            raise ValueError(f"unsupported merge key: {key_name}")

        lock_key = fields.get("payment_intent_id") or key
        now = utcnow()

        with self._locks.hold(lock_key), self._session_factory() as db:
            try:
                matched = self._update(db, key_name, key, fields, now)
                if not matched and create:
                    if key_name == "session_id" and fields.get("payment_intent_id") and \
                            self._adopt_orphan(db, key, fields, now):
                        logger.info("Adopted orphan record for %s into session %s",
                                    fields["payment_intent_id"], key)
                    else:
                        self._upsert(db, key_name, key, fields, now)
                    matched = True
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                raise PersistenceFailure(key_name, key, exc) from exc

        if not matched:
            raise RecordNotFound(key_name, key)

    def _insert(self, db):
        dialect = db.get_bind().dialect.name
        try:
            return _DIALECT_INSERTS[dialect]
        except KeyError:
            raise PersistenceFailure(
                "dialect", dialect, NotImplementedError("upsert not supported")
            ) from None

    def _upsert(self, db, key_name, key, fields, now):
        insert = self._insert(db)
        stmt = insert(PaymentRecord).values(
            **fields, **{key_name: key}, created_at=now, updated_at=now
        )
        set_ = {name: stmt.excluded[name] for name in fields if name != "payment_intent_id"}
        if "payment_intent_id" in fields:
            set_["payment_intent_id"] = func.coalesce(
                PaymentRecord.__table__.c.payment_intent_id,
                stmt.excluded.payment_intent_id,
            )
        set_["updated_at"] = now
        db.execute(stmt.on_conflict_do_update(index_elements=[key_name], set_=set_))

    def _update(self, db, key_name, key, fields, now) -> bool:
        column = getattr(PaymentRecord, key_name)
        result = db.execute(
            update(PaymentRecord).where(column == key).values(**_pinned(fields), updated_at=now)
        )
        return result.rowcount > 0

    def _adopt_orphan(self, db, session_id, fields, now) -> bool:
        result = db.execute(
            update(PaymentRecord)
            .where(
                PaymentRecord.payment_intent_id == fields["payment_intent_id"],
                PaymentRecord.session_id.is_(None),
            )
            .values(**_pinned(fields), session_id=session_id, updated_at=now)
        )
        return result.rowcount > 0
