"""Public operations of the billing engine.

Controllers, background jobs and other bounded contexts call these functions
instead of building commands themselves. Every function expects an active
``billing`` domain context and takes the acting owner, subscription or
payment explicitly.
"""

from billing.payment.orchestrator import (
    InitiationResult,
    PollResult,
    handle_provider_callback,
    initiate_payment,
    poll_payment_status,
    reconcile_payment,
    refund_payment,
    retry_payment,
)
from billing.plan.catalog import list_active_plans
from billing.plan.pricing import PlanComparison, PricingResult, compare_plans, quote, validate_guest_count
from billing.quota.evaluator import QuotaDecision, QuotaWarning, can_add, check_plan_limits, quota_warnings
from billing.subscription.lifecycle import (
    CancelSubscription,
    CreateSubscription,
    RenewSubscription,
    UpgradeSubscription,
)
from billing.subscription.queries import get_subscription
from billing.subscription.subscription import Subscription
from billing.utils.commands import process

__all__ = [
    "InitiationResult",
    "PlanComparison",
    "PollResult",
    "PricingResult",
    "QuotaDecision",
    "QuotaWarning",
    "calculate_price",
    "can_add",
    "cancel_subscription",
    "check_plan_limits",
    "compare_plans",
    "create_subscription",
    "handle_provider_callback",
    "initiate_payment",
    "list_active_plans",
    "poll_payment_status",
    "quota_warnings",
    "reconcile_payment",
    "refund_payment",
    "renew_subscription",
    "retry_payment",
    "upgrade_subscription",
]


def calculate_price(plan_type: str, guest_count: int) -> PricingResult:
    return quote(plan_type, guest_count)


def create_subscription(
    owner_id: str,
    plan_type: str,
    guest_count: int = 0,
    event_id: str | None = None,
) -> Subscription:
    subscription_id = process(
        CreateSubscription(
            owner_id=owner_id,
            event_id=event_id,
            plan_type=plan_type,
            guest_count=validate_guest_count(guest_count),
        )
    )
    return get_subscription(subscription_id)


def upgrade_subscription(
    subscription_id: str,
    plan_type: str,
    guest_count: int,
    expected_version: int | None = None,
) -> Subscription:
    process(
        UpgradeSubscription(
            subscription_id=subscription_id,
            plan_type=plan_type,
            guest_count=validate_guest_count(guest_count),
            expected_version=expected_version,
        )
    )
    return get_subscription(subscription_id)


def renew_subscription(subscription_id: str, expected_version: int | None = None) -> Subscription:
    process(RenewSubscription(subscription_id=subscription_id, expected_version=expected_version))
    return get_subscription(subscription_id)


def cancel_subscription(
    subscription_id: str,
    reason: str | None = None,
    expected_version: int | None = None,
) -> None:
    process(
        CancelSubscription(
            subscription_id=subscription_id,
            reason=reason,
            expected_version=expected_version,
        )
    )
