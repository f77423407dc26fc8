"""Checkout FastAPI application.

Receives payment-gateway webhooks and processes them synchronously inside
the checkout domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# PROTEAN_ENV selects the config overlay:
#   - unset / "test" → in-memory stores, sync event processing
#   - "production"   → PostgreSQL, async event processing
from checkout.domain import checkout  # noqa: E402
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

checkout.init()

_DOMAIN_PREFIXES = ("/webhooks", "/admin")

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Checkout API",
    description="Payment-gateway webhook reconciliation and order fulfillment",
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the checkout domain context for domain routes."""
    if request.url.path.startswith(_DOMAIN_PREFIXES):
        with checkout.domain_context():
            response = await call_next(request)
        return response
    # Health check, docs
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from checkout.api import admin_router, webhook_router  # noqa: E402

app.include_router(webhook_router)
app.include_router(admin_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": checkout.name})
