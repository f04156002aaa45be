import logging

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import AppError

logger = logging.getLogger(__name__)


class ValidationErrorHandler:
    async def __call__(self, request: Request, exc: RequestValidationError):
        errors = []

        for err in exc.errors():
            loc = [str(part) for part in err.get("loc", ()) if part != "body"]
            entry = {
                "field": ".".join(loc) or "body",
                "message": str(err.get("msg")).removeprefix("Value error, "),
            }
            secret = "password" in entry["field"].lower()
            if "input" in err and not isinstance(err["input"], dict) and not secret:
                entry["value"] = err["input"]
            errors.append(entry)

        return JSONResponse(
            status_code=400,
            content=jsonable_encoder(
                {
                    "success": False,
                    "message": "Validation failed",
                    "errors": errors,
                }
            ),
        )


class HTTPErrorHandler:
    async def __call__(self, request: Request, exc: StarletteHTTPException):
        content = {"success": False, "message": str(exc.detail)}
        if isinstance(exc, AppError) and exc.errors:
            content["errors"] = exc.errors

        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(content),
            headers=getattr(exc, "headers", None),
        )
