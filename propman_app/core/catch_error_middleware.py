import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from .friendly_msg import get_friendly_message
from .settings import settings

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.exception(
                "Unhandled server error on %s %s", request.method, request.url.path
            )
            message = get_friendly_message(e)
            if not settings.is_production:
                message = f"{message} ({type(e).__name__})"
            return JSONResponse(
                {"success": False, "message": message},
                status_code=500,
            )
