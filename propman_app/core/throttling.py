import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
from redis.asyncio import from_url

from .settings import settings

logger = logging.getLogger(__name__)


class RateLimitManager:
    def __init__(self):
        self.redis = None

    async def connect(self):
        if not settings.RATE_LIMIT_REDIS_URL:
            logger.warning("RATE_LIMIT_REDIS_URL not set; public rate limiting disabled.")
            return
        try:
            self.redis = from_url(
                settings.RATE_LIMIT_REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
            )
            await FastAPILimiter.init(self.redis, identifier=self.client_ip)
            logger.info("Rate limiter initialized.")
        except Exception:
            self.redis = None
            logger.exception("Rate limiter initialization failed")

    async def close(self):
        if self.redis is not None:
            await FastAPILimiter.close()
            self.redis = None

    @staticmethod
    async def limit_exceeded_handler(request: Request, exc):
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "message": "Too many requests. Please try again later.",
            },
        )

    async def client_ip(self, request: Request) -> str:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return f"ip:{forwarded.split(',')[0].strip()}"
        if request.client and request.client.host:
            return f"ip:{request.client.host}"
        return "anonymous"


rate_limiter_manager = RateLimitManager()
public_limiter = RateLimiter(
    times=settings.PUBLIC_RATE_LIMIT_TIMES,
    seconds=settings.PUBLIC_RATE_LIMIT_SECONDS,
    identifier=rate_limiter_manager.client_ip,
)


async def public_rate_limit(request: Request, response: Response):
    if FastAPILimiter.redis is None:
        return
    await public_limiter(request, response)
