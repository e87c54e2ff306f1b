"""Shared BDD fixtures and step definitions for the Billing domain."""

import pytest
from billing import engine
from billing.errors import InvalidStateTransition
from billing.payment.orchestrator import reconcile_payment
from billing.plan.catalog import seed_default_plans
from billing.subscription.queries import get_subscription
from pytest_bdd import given, parsers, then


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Container for captured billing errors."""
    return {"exc": None}


@pytest.fixture()
def payments():
    """Initiation results in the order the owner started them."""
    return []


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("the default plan catalog")
def default_plan_catalog():
    seed_default_plans()


@given(
    parsers.cfparse('a pending "{plan_type}" subscription for {guest_count:d} guests'),
    target_fixture="subscription",
)
def pending_subscription(plan_type, guest_count):
    return engine.create_subscription("owner-1", plan_type, guest_count=guest_count)


@given(
    parsers.cfparse('an active "{plan_type}" subscription for {guest_count:d} guests'),
    target_fixture="subscription",
)
def active_subscription(plan_type, guest_count):
    subscription = engine.create_subscription("owner-1", plan_type, guest_count=guest_count)
    if not subscription.is_active:
        result = engine.initiate_payment(subscription.id, "061234567")
        reconcile_payment(str(result.payment.id), "completed")
    return get_subscription(subscription.id)


# ---------------------------------------------------------------------------
# Then steps (shared)
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the subscription status is "{status}"'))
def subscription_status_is(subscription, status):
    assert get_subscription(subscription.id).payment_status == status


@then("the subscription is active")
def subscription_is_active(subscription):
    assert get_subscription(subscription.id).is_active is True


@then("the subscription is not active")
def subscription_is_not_active(subscription):
    assert get_subscription(subscription.id).is_active is False


@then(parsers.cfparse("the amount paid is {amount:d}"))
def amount_paid_is(subscription, amount):
    assert get_subscription(subscription.id).amount_paid == amount


@then("the action fails with an invalid state transition")
def action_fails_with_invalid_transition(error):
    assert error["exc"] is not None, "Expected an invalid state transition but none was raised"
    assert isinstance(error["exc"], InvalidStateTransition)
