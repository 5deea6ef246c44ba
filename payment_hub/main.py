import logging

import uvicorn
from fastapi import FastAPI

from payment_hub.config import get_settings
from payment_hub.database import Base, engine
from payment_hub.routes import router
from payment_hub.webhook import router as webhook_router
import payment_hub.models  # noqa: F401  registers tables on Base

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Payment Hub")

app.include_router(webhook_router)
app.include_router(router)

Base.metadata.create_all(bind=engine)


if __name__ == "__main__":
    uvicorn.run("payment_hub.main:app", host="0.0.0.0", port=settings.port)
