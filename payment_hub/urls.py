import logging
from typing import Optional

from payment_hub.config import Settings

logger = logging.getLogger(__name__)

PLACEHOLDER_DOMAIN = "yourdomain.com"


def redirect_url(settings: Settings, payment_id: Optional[str] = None) -> str:
    base = f"{settings.frontend_url}/success"
    if payment_id:
        return f"{base}?mollie_id={payment_id}"
    return base


def webhook_url(settings: Settings) -> Optional[str]:
    """Public Mollie webhook URL, or None when WEBHOOK_URL is unset or a placeholder."""
    if not settings.webhook_url or PLACEHOLDER_DOMAIN in settings.webhook_url:
        logger.warning("WEBHOOK_URL not properly configured. Webhooks will not work.")
        return None
    return f"{settings.webhook_url.rstrip('/')}/webhooks/mollie"
