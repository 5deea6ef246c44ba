import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)


@dataclass(frozen=True)
class Settings:
    port: int = 3000
    database_url: str = "sqlite:///./payments.db"
    log_level: str = "INFO"
    jwt_secret: Optional[str] = None

    frontend_url: str = "http://localhost:5173"
    webhook_url: Optional[str] = None

    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_webhook_tolerance: int = 300  # seconds

    mollie_api_key: Optional[str] = None
    mollie_api_base: str = "https://api.mollie.com/v2"

    adyen_api_key: Optional[str] = None
    adyen_merchant_account: Optional[str] = None
    adyen_checkout_base: str = "https://checkout-test.adyen.com/v71"

    paypal_client_id: Optional[str] = None
    paypal_secret: Optional[str] = None
    paypal_api_base: str = "https://api-m.sandbox.paypal.com"


def get_settings() -> Settings:
    """Build a Settings snapshot from the current environment."""
    defaults = Settings()
    return Settings(
        port=int(os.getenv("PORT", defaults.port)),
        database_url=os.getenv("DATABASE_URL", defaults.database_url),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        jwt_secret=os.getenv("JWT_SECRET"),
        frontend_url=os.getenv("FRONTEND_URL", defaults.frontend_url),
        webhook_url=os.getenv("WEBHOOK_URL"),
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
        stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET"),
        stripe_webhook_tolerance=int(
            os.getenv("STRIPE_WEBHOOK_TOLERANCE", defaults.stripe_webhook_tolerance)
        ),
        mollie_api_key=os.getenv("MOLLIE_API_KEY"),
        mollie_api_base=os.getenv("MOLLIE_API_BASE", defaults.mollie_api_base),
        adyen_api_key=os.getenv("ADYEN_API_KEY"),
        adyen_merchant_account=os.getenv("ADYEN_MERCHANT_ACCOUNT"),
        adyen_checkout_base=os.getenv("ADYEN_CHECKOUT_BASE", defaults.adyen_checkout_base),
        paypal_client_id=os.getenv("PAYPAL_CLIENT_ID"),
        paypal_secret=os.getenv("PAYPAL_SECRET"),
        paypal_api_base=os.getenv("PAYPAL_API_BASE", defaults.paypal_api_base),
    )
