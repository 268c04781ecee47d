"""Storefront orders FastAPI application.

Checkout, payment reconciliation, dispatch and tracking over HTTP.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.api import register_exception_handlers
from shared.config import get_settings
from shared.logging import add_context, clear_context, configure_logging

configure_logging()

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Storefront Orders API",
    description="Checkout, M-Pesa payment reconciliation, dispatch and delivery tracking",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def logging_context_middleware(request: Request, call_next):
    """Bind a request id and path to every log line emitted while serving the request."""
    clear_context()
    add_context(request_id=request.headers.get("x-request-id") or uuid4().hex, path=request.url.path)
    try:
        return await call_next(request)
    finally:
        clear_context()


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from dispatch.api.routes import courier_router, tracking_router  # noqa: E402
from ordering.api.routes import order_router  # noqa: E402
from payments.api.routes import payment_router  # noqa: E402

app.include_router(payment_router)
app.include_router(order_router)
app.include_router(courier_router)
app.include_router(tracking_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    settings = get_settings()
    return JSONResponse(
        content={
            "status": "ok",
            "environment": settings.environment,
            "payment_gateway": settings.payment_gateway,
            "mpesa_environment": settings.mpesa_environment,
        }
    )
