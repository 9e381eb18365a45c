"""
Main FastAPI application for the Remote Work Hub API.
Serves catalog, checkout, M-Pesa payments, support tickets, the Telegram
webhook, admin endpoints, health and metrics.
"""
import logging
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.logging import configure_logging
from app.api.routes import admin, auth, catalog, health, orders, payments, support, tasks, telegram
from app.services.payments.errors import PaymentError, RateLimited
from app.utils.metrics import router as metrics_router


configure_logging()
logger = logging.getLogger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.db_auto_create:
        from app.db.init_db import init_db
        init_db()
    yield


app = FastAPI(
    title="Remote Work Hub API",
    description="Job-account storefront with M-Pesa checkout and Telegram support",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    header = settings.request_id_header
    request_id = request.headers.get(header) or uuid4().hex
    request.state.request_id = request_id
    start = time.time()
    response = await call_next(request)
    response.headers[header] = request_id
    logger.info(
        "http_request",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_ms": round((time.time() - start) * 1000, 1),
        },
    )
    return response


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message, **extra})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        # pydantic prefixes custom messages with "Value error, "
        message = str(errors[0].get("msg", message)).removeprefix("Value error, ")
    detail = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]
    return _error(400, message, detail=detail)


@app.exception_handler(RateLimited)
async def rate_limited_handler(request: Request, exc: RateLimited):
    response = _error(exc.status_code, exc.message, retryAfter=exc.retry_after)
    response.headers["Retry-After"] = str(exc.retry_after)
    return response


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    return _error(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    response = _error(exc.status_code, str(exc.detail), detail=exc.detail)
    for key, value in (exc.headers or {}).items():
        response.headers[key] = value
    return response


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(
        "unhandled_error",
        extra={"path": request.url.path, "request_id": getattr(request.state, "request_id", None)},
    )
    return _error(500, "Internal server error")


# Routers
app.include_router(health.router, tags=["health"])
app.include_router(auth.router)
app.include_router(catalog.router)
app.include_router(orders.router)
app.include_router(payments.router)
app.include_router(support.router)
app.include_router(tasks.router)
app.include_router(telegram.router)
app.include_router(admin.router)
app.include_router(metrics_router)
