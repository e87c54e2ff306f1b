"""FastAPI routes for the Billing domain: plans, subscriptions, payments and provider webhooks."""

import os

from fastapi import APIRouter, HTTPException, Request

from billing import engine
from billing.api.schemas import (
    CancelSubscriptionRequest,
    ConfigureGatewayRequest,
    CreateSubscriptionRequest,
    GatewayConfigResponse,
    InitiatePaymentRequest,
    InitiationResponse,
    PaymentResponse,
    PaymentStatusResponse,
    PlanComparisonRequest,
    PlanComparisonResponse,
    PlanLimitsRequest,
    PlanResponse,
    PricingRequest,
    PricingResponse,
    QuotaDecisionResponse,
    RefundPaymentRequest,
    RenewSubscriptionRequest,
    RetryPaymentRequest,
    StatusResponse,
    SubscriptionResponse,
    UpgradeSubscriptionRequest,
)
from billing.errors import UnsupportedProvider
from billing.gateway import get_gateway
from billing.gateway.fake_adapter import FakeMobileMoneyGateway
from billing.gateway.port import PaymentProvider, ProviderStatus
from billing.payment.queries import get_payment, payments_for_subscription
from billing.subscription.queries import get_subscription

SIGNATURE_HEADERS = {
    PaymentProvider.MTN_MOBILE_MONEY: "X-Callback-Signature",
    PaymentProvider.AIRTEL_MONEY: "X-Airtel-Signature",
}


def _initiation_response(result) -> InitiationResponse:
    return InitiationResponse(
        payment=PaymentResponse.from_payment(result.payment),
        reference=result.reference,
        provider=result.provider.value,
        created=result.created,
    )


# ---------------------------------------------------------------------------
# Plan Router
# ---------------------------------------------------------------------------
plan_router = APIRouter(prefix="/plans", tags=["plans"])


@plan_router.get("", response_model=list[PlanResponse])
async def list_plans(owner_id: str | None = None) -> list[PlanResponse]:
    """Active plans in display order, without one-time plans the owner already used."""
    return [PlanResponse.from_plan(plan) for plan in engine.list_active_plans(owner_id)]


@plan_router.post("/pricing", response_model=PricingResponse)
async def calculate_price(body: PricingRequest) -> PricingResponse:
    return PricingResponse(**engine.calculate_price(body.plan_type, body.guest_count).to_dict())


@plan_router.post("/compare", response_model=list[PlanComparisonResponse])
async def compare_plans(body: PlanComparisonRequest) -> list[PlanComparisonResponse]:
    """Active plans side by side, each priced for the same guest count."""
    return [
        PlanComparisonResponse(**comparison.to_dict())
        for comparison in engine.compare_plans(body.guest_count, owner_id=body.owner_id)
    ]


@plan_router.post("/limits", response_model=dict[str, QuotaDecisionResponse])
async def check_plan_limits(body: PlanLimitsRequest) -> dict[str, QuotaDecisionResponse]:
    decisions = engine.check_plan_limits(body.owner_id, event_id=body.event_id, counts=body.counts)
    return {key: QuotaDecisionResponse.from_decision(decision) for key, decision in decisions.items()}


# ---------------------------------------------------------------------------
# Subscription Router
# ---------------------------------------------------------------------------
subscription_router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@subscription_router.post("", status_code=201, response_model=SubscriptionResponse)
async def create_subscription(body: CreateSubscriptionRequest) -> SubscriptionResponse:
    subscription = engine.create_subscription(
        owner_id=body.owner_id,
        plan_type=body.plan_type,
        guest_count=body.guest_count,
        event_id=body.event_id,
    )
    return SubscriptionResponse.from_subscription(subscription)


@subscription_router.get("/{subscription_id}", response_model=SubscriptionResponse)
async def read_subscription(subscription_id: str) -> SubscriptionResponse:
    return SubscriptionResponse.from_subscription(get_subscription(subscription_id))


@subscription_router.put("/{subscription_id}/upgrade", response_model=SubscriptionResponse)
async def upgrade_subscription(subscription_id: str, body: UpgradeSubscriptionRequest) -> SubscriptionResponse:
    subscription = engine.upgrade_subscription(
        subscription_id,
        plan_type=body.plan_type,
        guest_count=body.guest_count,
        expected_version=body.expected_version,
    )
    return SubscriptionResponse.from_subscription(subscription)


@subscription_router.put("/{subscription_id}/renew", response_model=SubscriptionResponse)
async def renew_subscription(subscription_id: str, body: RenewSubscriptionRequest) -> SubscriptionResponse:
    subscription = engine.renew_subscription(subscription_id, expected_version=body.expected_version)
    return SubscriptionResponse.from_subscription(subscription)


@subscription_router.put("/{subscription_id}/cancel", response_model=StatusResponse)
async def cancel_subscription(subscription_id: str, body: CancelSubscriptionRequest) -> StatusResponse:
    engine.cancel_subscription(subscription_id, reason=body.reason, expected_version=body.expected_version)
    return StatusResponse(status="cancelled")


@subscription_router.get("/{subscription_id}/payments", response_model=list[PaymentResponse])
async def list_subscription_payments(subscription_id: str) -> list[PaymentResponse]:
    get_subscription(subscription_id)
    return [PaymentResponse.from_payment(payment) for payment in payments_for_subscription(subscription_id)]


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("", status_code=201, response_model=InitiationResponse)
async def initiate_payment(body: InitiatePaymentRequest) -> InitiationResponse:
    """Ask the payer's mobile-money provider to collect the subscription price."""
    result = engine.initiate_payment(
        subscription_id=body.subscription_id,
        phone_number=body.phone_number,
        idempotency_key=body.idempotency_key,
        expected_version=body.expected_version,
    )
    return _initiation_response(result)


@payment_router.get("/{payment_id}", response_model=PaymentResponse)
async def read_payment(payment_id: str) -> PaymentResponse:
    return PaymentResponse.from_payment(get_payment(payment_id))


@payment_router.post("/{payment_id}/poll", response_model=PaymentStatusResponse)
async def poll_payment_status(payment_id: str) -> PaymentStatusResponse:
    """Ask the provider for news on a pending payment."""
    result = engine.poll_payment_status(payment_id)
    return PaymentStatusResponse(
        payment=PaymentResponse.from_payment(result.payment),
        provider_status=result.provider_status,
    )


@payment_router.post("/{payment_id}/retry", status_code=201, response_model=InitiationResponse)
async def retry_payment(payment_id: str, body: RetryPaymentRequest) -> InitiationResponse:
    """Retry a failed payment with a new attempt."""
    result = engine.retry_payment(payment_id, body.phone_number, idempotency_key=body.idempotency_key)
    return _initiation_response(result)


@payment_router.post("/{payment_id}/refund", response_model=PaymentResponse)
async def refund_payment(payment_id: str, body: RefundPaymentRequest) -> PaymentResponse:
    """Record a refund for a completed payment (bookkeeping only)."""
    return PaymentResponse.from_payment(engine.refund_payment(payment_id, body.reason))


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the fake gateway of one provider (non-production only).

    This endpoint is only available when PROTEAN_ENV is not 'production'.
    """
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway(body.provider)
    if not isinstance(gateway, FakeMobileMoneyGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for the fake gateway")

    try:
        default_status = ProviderStatus(body.default_status.lower())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Unknown status: {body.default_status}") from exc

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        default_status=default_status,
        unavailable=body.unavailable,
    )
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        provider=gateway.provider.value,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        default_status=gateway.default_status.value,
        unavailable=gateway.unavailable,
    )


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/{provider}", response_model=StatusResponse)
async def provider_callback(provider: str, request: Request) -> StatusResponse:
    """Receive a provider callback. The signature covers the raw request body."""
    try:
        resolved = PaymentProvider.from_alias(provider)
    except ValueError as exc:
        raise UnsupportedProvider(f"Unknown payment provider: {provider!r}") from exc

    raw_body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADERS[resolved])
    payment = engine.handle_provider_callback(resolved, raw_body, signature)
    return StatusResponse(status="processed" if payment is not None else "ignored")
