"""Provider-neutral checkout handle and amount formatting."""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from payment_hub.config import Settings


@dataclass(frozen=True)
class CheckoutHandle:
    checkout_url: Optional[str]
    session_id: str
    session_data: Optional[str] = None  # Adyen drop-in payload


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_major_units(amount: Decimal) -> str:
    return str(Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))

