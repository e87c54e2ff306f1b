"""Billing domain API package."""

from billing.api.errors import register_billing_exception_handlers
from billing.api.routes import payment_router, plan_router, subscription_router, webhook_router

__all__ = [
    "payment_router",
    "plan_router",
    "register_billing_exception_handlers",
    "subscription_router",
    "webhook_router",
]
