"""Pickup marketplace FastAPI application.

Web server that processes commands synchronously via HTTP, wrapping every
request in the ordering domain's context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

from uuid import uuid4

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - unset / "test" → event_processing = "sync"  (handlers fire in UoW)
#   - "production"   → event_processing = "async" (handlers fire via Engine)
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from ordering.domain import ordering  # noqa: E402
from ordering.utils.logging import add_context, clear_context, configure_logging
from protean.integrations.fastapi import register_exception_handlers

configure_logging()
ordering.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Pickup Marketplace API",
    description="Multi-retailer pickup marketplace: carts, checkout, settlement and points",
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
async def domain_context_middleware(request: Request, call_next):
    """Push the ordering domain context and bind request details to the logs."""
    clear_context()
    add_context(
        request_id=request.headers.get("x-request-id", uuid4().hex),
        customer_id=request.headers.get("x-customer-id"),
    )
    with ordering.domain_context():
        response = await call_next(request)
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from ordering.api.routes import (  # noqa: E402
    cart_router,
    checkout_router,
    discount_router,
    order_router,
    payment_router,
    points_router,
    retailer_router,
)

app.include_router(cart_router)
app.include_router(checkout_router)
app.include_router(discount_router)
app.include_router(points_router)
app.include_router(order_router)
app.include_router(retailer_router)
app.include_router(payment_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {
                "ordering": {"name": ordering.name},
            },
        }
    )
