"""HTTP status codes for billing errors.

Protean's handlers cover plain validation (400) and missing objects (404);
the billing taxonomy refines them. Starlette resolves handlers along the
exception's MRO, so the subclasses below win over ``ValidationError``.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from billing.errors import (
    BillingError,
    DuplicateActiveSubscription,
    InvalidInput,
    InvalidSignature,
    InvalidStateTransition,
    ProviderError,
    StaleWrite,
    UnsupportedProvider,
)

STATUS_CODES = {
    InvalidInput: 400,
    InvalidSignature: 401,
    DuplicateActiveSubscription: 409,
    InvalidStateTransition: 409,
    StaleWrite: 409,
    UnsupportedProvider: 422,
    ProviderError: 502,
}


async def _billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    status_code = next((code for cls, code in STATUS_CODES.items() if isinstance(exc, cls)), 400)
    content = {"error": exc.code, "detail": exc.messages}
    if isinstance(exc, ProviderError) and exc.payment_id:
        content["payment_id"] = exc.payment_id
    if isinstance(exc, DuplicateActiveSubscription) and exc.subscription_id:
        content["subscription_id"] = exc.subscription_id
    return JSONResponse(status_code=status_code, content=content)


def register_billing_exception_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    app.add_exception_handler(BillingError, _billing_error_handler)
