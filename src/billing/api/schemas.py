"""Pydantic request/response schemas for the Billing API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

# --- Plan Schemas ---


class PricingRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"plan_type": "pro", "guest_count": 120}]}}

    plan_type: str = Field(..., max_length=50)
    guest_count: int = 0


class PricingResponse(BaseModel):
    plan_type: str
    base_price: int
    included_guests: int
    guest_count: int
    extra_guests: int
    price_per_extra_guest: int
    extra_guest_price: int
    total_price: int
    currency: str


class PlanComparisonRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"guest_count": 250, "owner_id": "user-042"}]}}

    guest_count: int = 0
    owner_id: str | None = None


class PlanComparisonResponse(BaseModel):
    slug: str
    name: str
    description: str | None = None
    duration_days: int
    is_trial: bool
    pricing: PricingResponse
    limits: dict = {}
    features: list[str] = []


class PlanResponse(BaseModel):
    id: str
    name: str
    slug: str
    description: str | None = None
    price: int
    included_guests: int
    guest_unit_price: int
    duration_days: int
    is_trial: bool
    is_one_time_use: bool
    limits: dict = {}
    features: dict = {}
    sort_order: int = 0

    @classmethod
    def from_plan(cls, plan) -> PlanResponse:
        return cls(
            id=str(plan.id),
            name=plan.name,
            slug=plan.slug,
            description=plan.description,
            price=plan.price,
            included_guests=plan.included_guests,
            guest_unit_price=plan.guest_unit_price,
            duration_days=plan.duration_days,
            is_trial=bool(plan.is_trial),
            is_one_time_use=bool(plan.is_one_time_use),
            limits=plan.limits or {},
            features=plan.features or {},
            sort_order=plan.sort_order or 0,
        )


# --- Subscription Schemas ---


class CreateSubscriptionRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "owner_id": "user-042",
                    "event_id": "event-2024-mariage",
                    "plan_type": "starter",
                    "guest_count": 80,
                }
            ]
        }
    }

    owner_id: str
    event_id: str | None = None
    plan_type: str = Field(..., max_length=50)
    guest_count: int = 0


class UpgradeSubscriptionRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"plan_type": "pro", "guest_count": 250, "expected_version": 1}]}}

    plan_type: str = Field(..., max_length=50)
    guest_count: int
    expected_version: int | None = None


class RenewSubscriptionRequest(BaseModel):
    expected_version: int | None = None


class CancelSubscriptionRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"reason": "Event postponed"}]}}

    reason: str | None = Field(None, max_length=500)
    expected_version: int | None = None


class SubscriptionResponse(BaseModel):
    id: str
    owner_id: str
    event_id: str | None = None
    plan_type: str
    base_price: int
    guest_count: int
    guest_price_per_unit: int
    total_price: int
    amount_paid: int
    payment_status: str
    pending_change: str | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    expires_at: datetime | None = None
    is_active: bool
    lock_version: int

    @classmethod
    def from_subscription(cls, subscription) -> SubscriptionResponse:
        return cls(
            id=str(subscription.id),
            owner_id=str(subscription.owner_id),
            event_id=str(subscription.event_id) if subscription.event_id else None,
            plan_type=subscription.plan_type,
            base_price=subscription.base_price,
            guest_count=subscription.guest_count,
            guest_price_per_unit=subscription.guest_price_per_unit,
            total_price=subscription.total_price,
            amount_paid=subscription.amount_paid or 0,
            payment_status=subscription.payment_status,
            pending_change=subscription.pending_change,
            payment_method=subscription.payment_method,
            payment_reference=subscription.payment_reference,
            expires_at=subscription.expires_at,
            is_active=subscription.is_active,
            lock_version=subscription.lock_version or 0,
        )


class QuotaDecisionResponse(BaseModel):
    allowed: bool
    remaining: int
    limit: int
    current: int
    percentage_used: int
    warning: str | None = None

    @classmethod
    def from_decision(cls, decision) -> QuotaDecisionResponse:
        return cls(
            allowed=decision.allowed,
            remaining=decision.remaining,
            limit=decision.limit,
            current=decision.current,
            percentage_used=decision.percentage_used,
            warning=decision.warning.value if decision.warning else None,
        )


class PlanLimitsRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "owner_id": "user-042",
                    "event_id": "event-2024-mariage",
                    "counts": {"guests.max_per_event": 45, "photos.max_per_event": 12},
                }
            ]
        }
    }

    owner_id: str
    event_id: str | None = None
    counts: dict[str, int] = {}


# --- Payment Schemas ---


class InitiatePaymentRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "subscription_id": "3f0c2a8e-6a55-4c1e-9d7a-2b1f8f4c9e11",
                    "phone_number": "+242 06 123 4567",
                    "idempotency_key": "checkout-7781",
                }
            ]
        }
    }

    subscription_id: str
    phone_number: str = Field(..., max_length=30)
    idempotency_key: str | None = Field(None, max_length=255)
    expected_version: int | None = None


class RetryPaymentRequest(BaseModel):
    phone_number: str = Field(..., max_length=30)
    idempotency_key: str | None = Field(None, max_length=255)


class RefundPaymentRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"reason": "Event cancelled by the venue"}]}}

    reason: str = Field(..., min_length=1, max_length=500)


class PaymentResponse(BaseModel):
    id: str
    subscription_id: str
    amount: int
    currency: str
    payment_method: str
    status: str
    transaction_reference: str | None = None
    failure_reason: str | None = None
    retry_of: str | None = None
    details: dict = {}

    @classmethod
    def from_payment(cls, payment) -> PaymentResponse:
        return cls(
            id=str(payment.id),
            subscription_id=str(payment.subscription_id),
            amount=payment.amount,
            currency=payment.currency,
            payment_method=payment.payment_method,
            status=payment.status,
            transaction_reference=payment.transaction_reference,
            failure_reason=payment.failure_reason,
            retry_of=str(payment.retry_of) if payment.retry_of else None,
            details=payment.details or {},
        )


class InitiationResponse(BaseModel):
    payment: PaymentResponse
    reference: str | None = None
    provider: str
    created: bool


class PaymentStatusResponse(BaseModel):
    payment: PaymentResponse
    provider_status: str | None = None


class StatusResponse(BaseModel):
    status: str = "ok"


# --- Gateway Configuration Schemas (non-production only) ---


class ConfigureGatewayRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {"provider": "mtn", "should_succeed": True, "default_status": "completed"},
                {"provider": "airtel", "should_succeed": False, "failure_reason": "Insufficient balance"},
            ]
        }
    }

    provider: str
    should_succeed: bool = True
    failure_reason: str = "Payer declined the request"
    default_status: str = "pending"
    unavailable: bool = False


class GatewayConfigResponse(BaseModel):
    gateway: str
    provider: str
    should_succeed: bool
    failure_reason: str
    default_status: str
    unavailable: bool
