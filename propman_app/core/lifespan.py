import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from core.throttling import rate_limiter_manager
from sms_notify.sms_service import send_sms

logger = logging.getLogger("startup")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Waiting for application startup...")

    try:
        await send_sms.connect()
    except Exception:
        logger.exception("Failed to connect to SMS service")

    try:
        await rate_limiter_manager.connect()
    except Exception:
        logger.exception("Rate limiter connection failed")

    logger.info("Application startup complete.")

    yield

    try:
        await send_sms.close()
    except Exception:
        logger.exception("Failed to close SMS client")

    try:
        await rate_limiter_manager.close()
    except Exception:
        logger.exception("Failed to close rate limiter")
