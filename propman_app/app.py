import logging

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.catch_error_middleware import ErrorHandlerMiddleware
from core.exception_handler import HTTPErrorHandler, ValidationErrorHandler
from core.lifespan import lifespan
from core.settings import settings
from core.throttling import rate_limiter_manager
from routes.admin_routes import router as admin_router
from routes.audit_routes import router as audit_router
from routes.auth_routes import router as auth_router
from routes.invite_routes import router as invite_router
from routes.lease_routes import router as lease_router
from routes.notification_routes import router as notification_router
from routes.property_routes import router as property_router
from routes.public_routes import router as public_router
from routes.rent_routes import router as rent_router
from routes.rent_schedule_routes import router as rent_schedule_router
from routes.request_routes import router as request_router
from routes.scheduled_maintenance_routes import router as scheduled_maintenance_router
from routes.user_routes import router as user_router
from routes.vendor_routes import router as vendor_router

logging.basicConfig(level=logging.INFO)

app = FastAPI(
    lifespan=lifespan,
    title=settings.PROJECT_NAME,
    exception_handlers={429: rate_limiter_manager.limit_exceeded_handler},
    version="1.0.0",
)

API_PREFIX = "/api"

app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(user_router, prefix=API_PREFIX)
app.include_router(property_router, prefix=API_PREFIX)
app.include_router(lease_router, prefix=API_PREFIX)
app.include_router(rent_router, prefix=API_PREFIX)
app.include_router(rent_schedule_router, prefix=API_PREFIX)
app.include_router(request_router, prefix=API_PREFIX)
app.include_router(scheduled_maintenance_router, prefix=API_PREFIX)
app.include_router(vendor_router, prefix=API_PREFIX)
app.include_router(invite_router, prefix=API_PREFIX)
app.include_router(notification_router, prefix=API_PREFIX)
app.include_router(audit_router, prefix=API_PREFIX)
app.include_router(admin_router, prefix=API_PREFIX)
app.include_router(public_router, prefix=API_PREFIX)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["System"])
async def health_check():
    return {"status": "ok"}


app.add_exception_handler(RequestValidationError, ValidationErrorHandler())
app.add_exception_handler(StarletteHTTPException, HTTPErrorHandler())

app.add_middleware(ErrorHandlerMiddleware)


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8001)
