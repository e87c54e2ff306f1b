"""BDD tests for creating, changing and closing subscriptions."""

from billing import engine
from billing.errors import InvalidStateTransition
from billing.subscription.queries import get_subscription, subscriptions_for_owner
from pytest_bdd import parsers, scenarios, then, when

scenarios("features/subscription_lifecycle.feature")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(
    parsers.cfparse('the owner subscribes to "{plan_type}" for {guest_count:d} guests'),
    target_fixture="subscription",
)
def owner_subscribes(plan_type, guest_count):
    return engine.create_subscription("owner-1", plan_type, guest_count=guest_count)


@when(parsers.cfparse('the owner upgrades to "{plan_type}" for {guest_count:d} guests'))
def owner_upgrades(subscription, plan_type, guest_count):
    engine.upgrade_subscription(subscription.id, plan_type, guest_count=guest_count)


@when("the owner cancels the subscription")
def owner_cancels(subscription, error):
    try:
        engine.cancel_subscription(subscription.id, reason="No longer needed")
    except InvalidStateTransition as exc:
        error["exc"] = exc


@when("the owner renews the subscription")
def owner_renews(subscription, error):
    try:
        engine.renew_subscription(subscription.id)
    except InvalidStateTransition as exc:
        error["exc"] = exc


@when(parsers.cfparse('the paying payment is refunded for "{reason}"'))
def paying_payment_refunded(subscription, reason):
    engine.refund_payment(get_subscription(subscription.id).authoritative_payment_id, reason)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the trial subscription is "{status}"'))
def trial_subscription_is(subscription, status):
    trials = [s for s in subscriptions_for_owner("owner-1") if s.is_trial and s.id != subscription.id]
    assert [trial.payment_status for trial in trials] == [status]


@then(parsers.cfparse("the subscription total is {total:d}"))
def subscription_total_is(subscription, total):
    assert get_subscription(subscription.id).total_price == total
