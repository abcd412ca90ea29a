"""FastAPI application entry point"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from photovault.core.config import settings
from photovault.core.logging import setup_logging
from photovault.db.session import init_db
from photovault.services.email_service import validate_email_config
from photovault.tasks import background

from photovault.api import monitoring, webhooks

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    init_db()
    email_ok, email_error = validate_email_config()
    if not email_ok:
        logger.warning(f"Email disabled: {email_error}")
    logger.info(f"PhotoVault webhook service started ({settings.ENVIRONMENT})")
    yield
    background.shutdown(wait=True)
    logger.info("PhotoVault webhook service stopped")


app = FastAPI(
    title="PhotoVault Billing Webhooks",
    description="Stripe webhook processing for PhotoVault billing",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(webhooks.router)
app.include_router(webhooks.legacy_router)
app.include_router(monitoring.router)


if __name__ == "__main__":
    # Reload needs the app as an import string
    reload = settings.ENVIRONMENT == "development"
    config = {
        "host": "0.0.0.0",
        "port": 8000,
        "timeout_graceful_shutdown": 30,
    }
    if reload:
        uvicorn.run("photovault.main:app", reload=True, **config)
    else:
        uvicorn.run(app, **config)
