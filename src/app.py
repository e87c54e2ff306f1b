"""Event planner billing FastAPI application.

Web server for the billing domain; commands are processed synchronously per
request inside the billing domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       -> in-memory providers, sync event processing
#   - "production" -> postgresql, async event processing via the Engine
from uuid import uuid4

from billing.domain import billing  # noqa: E402
from billing.utils.logging import add_context, clear_context  # noqa: E402
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

billing.init()

_BILLING_PREFIXES = ("/plans", "/subscriptions", "/payments", "/webhooks")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Event Planner Billing API",
    description="Plans, subscriptions and mobile-money payments",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the billing domain context and a request-scoped log context for billing routes."""
    if request.url.path.startswith(_BILLING_PREFIXES):
        clear_context()
        add_context(request_id=request.headers.get("X-Request-Id") or uuid4().hex, path=request.url.path)
        try:
            with billing.domain_context():
                response = await call_next(request)
        finally:
            clear_context()
        return response
    # Health check, docs, etc.
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from billing.api import (  # noqa: E402
    payment_router,
    plan_router,
    register_billing_exception_handlers,
    subscription_router,
    webhook_router,
)

app.include_router(plan_router)
app.include_router(subscription_router)
app.include_router(payment_router)
app.include_router(webhook_router)
register_billing_exception_handlers(app)


@app.on_event("startup")
def seed_catalog():
    from billing.plan.catalog import seed_default_plans

    with billing.domain_context():
        seed_default_plans()


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {
                "billing": {"name": billing.name},
            },
        }
    )
