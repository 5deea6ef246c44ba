from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String
from payment_hub.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class PaymentRecord(Base):
    __tablename__ = "stripe_payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String, unique=True, index=True, nullable=True)         # cs_..., null for orphan charge records
    payment_intent_id = Column(String, unique=True, index=True, nullable=True)  # pi_..., immutable once set
    charge_id = Column(String)

    customer_email = Column(String)
    amount_total = Column(Integer)                 # minor units
    currency = Column(String)
    payment_status = Column(String)                # provider value, passed through
    payment_method_type = Column(String)
    receipt_url = Column(String)

    billing_name = Column(String)
    billing_email = Column(String)
    billing_address_line1 = Column(String)
    billing_address_line2 = Column(String)
    billing_address_city = Column(String)
    billing_address_state = Column(String)
    billing_address_postal_code = Column(String)
    billing_address_country = Column(String)

    error_message = Column(String)                 # failure events only

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return (
            f"<PaymentRecord session_id={self.session_id!r} "
            f"payment_intent_id={self.payment_intent_id!r} status={self.payment_status!r}>"
        )
