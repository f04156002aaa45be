import logging
from functools import wraps

from fastapi import HTTPException, Request

from .errors import InternalError
from .friendly_msg import get_friendly_message

logger = logging.getLogger(__name__)


def _find_request(args, kwargs) -> Request | None:
    for arg in list(args) + list(kwargs.values()):
        if isinstance(arg, Request):
            return arg
    return None


def safe_handler(func):
    @wraps(func)
    async def wrapper(*args, **kwargs):
        request = _find_request(args, kwargs)

        try:
            return await func(*args, **kwargs)
        except HTTPException as e:
            if request:
                client_ip = request.client.host if request.client else "unknown"
                trace_id = request.headers.get("X-Request-ID", "none")
                logger.warning(
                    "[HTTPException] TraceID=%s | %s - %s from %s: %s",
                    trace_id,
                    e.status_code,
                    request.url.path,
                    client_ip,
                    e.detail,
                )
            else:
                logger.warning(
                    "[HTTPException] %s in %s: %s", e.status_code, func.__name__, e.detail
                )
            raise
        except Exception as e:
            if request:
                client_ip = request.client.host if request.client else "unknown"
                trace_id = request.headers.get("X-Request-ID", "none")
                logger.error(
                    "[Unhandled Error] TraceID=%s | in %s | Path: %s | Client: %s | Error: %s",
                    trace_id,
                    func.__name__,
                    request.url.path,
                    client_ip,
                    e,
                    exc_info=True,
                )
            else:
                logger.error("[Unhandled Error] in %s: %s", func.__name__, e, exc_info=True)
            raise InternalError(get_friendly_message(e))

    return wrapper
