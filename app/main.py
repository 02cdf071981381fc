from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings
from app.core.errors import AppError
from app.core.logging import configure_logging
from app.core.rate_limit import RateLimitMiddleware
from app.db.base import Base, engine
from app.db import models  # noqa: F401
from app.schemas.common import fail
from app.api.routes import auth
from app.api.routes import users as users_router
from app.api.routes import services as services_router
from app.api.routes import connections as connections_router
from app.api.routes import messages as messages_router
from app.api.routes import ratings as ratings_router
from app.api.routes import notifications as notifications_router
from app.api.routes import health as health_router

configure_logging()
logger = structlog.get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info("request_completed", status_code=response.status_code)
        return response


app = FastAPI(title=settings.PROJECT_NAME)

# last added runs first: request ids are bound before rate limiting
app.add_middleware(
    RateLimitMiddleware,
    limit=settings.RATE_LIMIT_PER_MINUTE,
    trust_forwarded_for=settings.TRUST_FORWARDED_FOR,
)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("app_error", code=exc.code, error=exc.message)
    else:
        logger.info("request_rejected", code=exc.code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=fail(exc.code, exc.message))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"
    return JSONResponse(status_code=400, content=fail("VALIDATION_ERROR", message))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    codes = {401: "UNAUTHORIZED", 403: "FORBIDDEN", 404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}
    return JSONResponse(
        status_code=exc.status_code,
        content=fail(codes.get(exc.status_code, "HTTP_ERROR"), str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = structlog.contextvars.get_contextvars().get("request_id")
    logger.exception("unhandled_exception", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content=fail("INTERNAL_ERROR", f"Internal server error (request id: {request_id})"),
        headers={"X-Request-ID": request_id} if request_id else None,
    )


@app.on_event("startup")
def startup():
    Base.metadata.create_all(bind=engine)
    logger.info("startup", environment=settings.ENVIRONMENT)


app.include_router(auth.router, prefix="/api/auth")
app.include_router(users_router.router)
app.include_router(services_router.router)
app.include_router(connections_router.router)
app.include_router(messages_router.router)
app.include_router(ratings_router.router)
app.include_router(notifications_router.router)
app.include_router(health_router.router)
