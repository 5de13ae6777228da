"""MotorHub FastAPI application.

Serves the cart, order, booking, availability and payment routers. Every
domain failure leaves the API as ``{"error": {"code", "message", "details"}}``
with the status its category maps to.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from booking.api.routes import availability_router, booking_router
from ordering.api.routes import cart_router, order_router
from payments.api.routes import payment_router
from shared.config import get_settings
from shared.database import get_engine, setup_db
from shared.errors import CommerceError, ErrorCode
from shared.utils.logging import add_context, clear_context, configure_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    settings = get_settings()
    engine = get_engine()
    if not settings.is_production:
        # Production schemas are managed with `manage.py setup-db`.
        setup_db(engine)
    logger.info("MotorHub API started", env=settings.env)
    yield


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="MotorHub API",
    description="Vehicle sales and service commerce: carts, orders, bookings and payments",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Tag every log line written while serving a request with its id and path."""
    request_id = request.headers.get("x-request-id") or uuid4().hex
    add_context(request_id=request_id, path=request.url.path)
    try:
        response = await call_next(request)
    finally:
        clear_context()
    response.headers["X-Request-Id"] = request_id
    return response


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------
def _error_response(status_code: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "details": details or {}}},
    )


@app.exception_handler(CommerceError)
async def commerce_error_handler(request: Request, exc: CommerceError) -> JSONResponse:
    logger.info(
        "Request failed",
        path=request.url.path,
        code=exc.code.value,
        category=exc.category,
    )
    return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields: dict[str, list[str]] = {}
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"] if part != "body")
        fields.setdefault(location or "body", []).append(error["msg"])
    return _error_response(422, ErrorCode.VALIDATION_ERROR.value, "Request validation failed", fields)


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Unexpected storage error", path=request.url.path)
    return _error_response(500, ErrorCode.INTERNAL_ERROR.value, "An unexpected error occurred")


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(cart_router)
app.include_router(order_router)
app.include_router(booking_router)
app.include_router(availability_router)
app.include_router(payment_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "env": get_settings().env,
            "contexts": ["ordering", "booking", "payments"],
        }
    )
