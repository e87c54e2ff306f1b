"""Application tests for subscription lifecycle operations through the engine API."""

import pytest
from billing import engine
from billing.errors import (
    DuplicateActiveSubscription,
    InvalidInput,
    InvalidStateTransition,
    NotCancellable,
    StaleWrite,
)
from billing.payment.orchestrator import reconcile_payment
from billing.subscription.lifecycle import CreateSubscription
from billing.subscription.queries import get_subscription, subscriptions_for_owner
from billing.subscription.subscription import Subscription, SubscriptionStatus
from protean import current_domain

PHONE = "+242 06 123 45 67"


def _pay(subscription_id):
    result = engine.initiate_payment(subscription_id, PHONE)
    reconcile_payment(str(result.payment.id), "completed", transaction_id="txn-1")
    return get_subscription(subscription_id)


class TestCreateSubscription:
    def test_create_prices_and_persists(self, seeded_plans):
        subscription = engine.create_subscription("owner-1", "pro", guest_count=250)
        stored = current_domain.repository_for(Subscription).get(subscription.id)
        assert stored.total_price == 10000 + 50 * 30
        assert stored.status == SubscriptionStatus.PENDING

    def test_unknown_plan(self, seeded_plans):
        with pytest.raises(InvalidInput):
            engine.create_subscription("owner-1", "platinum", guest_count=10)

    def test_negative_guests(self, seeded_plans):
        with pytest.raises(InvalidInput):
            engine.create_subscription("owner-1", "pro", guest_count=-1)

    def test_negative_guests_in_command(self, seeded_plans):
        with pytest.raises(InvalidInput):
            current_domain.process(
                CreateSubscription(owner_id="owner-1", plan_type="pro", guest_count=-1),
                asynchronous=False,
            )
        assert subscriptions_for_owner("owner-1") == []

    def test_pending_subscription_does_not_block_another(self, seeded_plans):
        engine.create_subscription("owner-1", "starter", guest_count=10)
        engine.create_subscription("owner-1", "pro", guest_count=10)
        assert len(subscriptions_for_owner("owner-1")) == 2

    def test_active_paid_subscription_blocks_same_scope(self, seeded_plans):
        paid = _pay(engine.create_subscription("owner-1", "starter", guest_count=10, event_id="event-1").id)

        with pytest.raises(DuplicateActiveSubscription) as exc:
            engine.create_subscription("owner-1", "pro", guest_count=10, event_id="event-1")
        assert exc.value.subscription_id == str(paid.id)

    def test_other_scope_is_independent(self, seeded_plans):
        _pay(engine.create_subscription("owner-1", "starter", guest_count=10, event_id="event-1").id)

        other_event = engine.create_subscription("owner-1", "starter", guest_count=10, event_id="event-2")
        account = engine.create_subscription("owner-1", "pro", guest_count=10)

        assert other_event.status == SubscriptionStatus.PENDING
        assert account.event_id is None

    def test_trial_is_superseded(self, seeded_plans):
        trial = engine.create_subscription("owner-1", "essai-gratuit")
        assert trial.is_active is True

        paid = engine.create_subscription("owner-1", "pro", guest_count=10)

        trial = get_subscription(trial.id)
        assert trial.status == SubscriptionStatus.CANCELLED
        assert "Pro" in trial.cancellation_reason
        assert paid.status == SubscriptionStatus.PENDING

    def test_one_time_plan_cannot_be_reused(self, seeded_plans):
        trial = engine.create_subscription("owner-1", "essai-gratuit")
        engine.cancel_subscription(trial.id)

        with pytest.raises(InvalidInput) as exc:
            engine.create_subscription("owner-1", "essai-gratuit")
        assert "plan_type" in exc.value.messages


class TestUpgradeSubscription:
    def test_upgrade_above_paid_amount_requires_payment(self, seeded_plans):
        paid = _pay(engine.create_subscription("owner-1", "starter", guest_count=50).id)

        upgraded = engine.upgrade_subscription(paid.id, "pro", guest_count=300)

        assert upgraded.plan_type == "pro"
        assert upgraded.total_price == 10000 + 100 * 30
        assert upgraded.status == SubscriptionStatus.PENDING
        assert upgraded.pending_change == "upgrade"

    def test_upgrade_within_paid_amount_stays_paid(self, seeded_plans):
        paid = _pay(engine.create_subscription("owner-1", "starter", guest_count=150).id)
        assert paid.amount_paid == 5000 + 100 * 50

        upgraded = engine.upgrade_subscription(paid.id, "pro", guest_count=150)

        assert upgraded.total_price == 10000
        assert upgraded.status == SubscriptionStatus.PAID

    def test_upgrade_payment_settles_subscription(self, seeded_plans):
        paid = _pay(engine.create_subscription("owner-1", "starter", guest_count=50).id)
        upgraded = engine.upgrade_subscription(paid.id, "agence", guest_count=500)

        settled = _pay(upgraded.id)

        assert settled.status == SubscriptionStatus.PAID
        assert settled.amount_paid == 25000
        assert settled.plan_type == "agence"

    def test_stale_version_rejected(self, seeded_plans):
        subscription = engine.create_subscription("owner-1", "starter", guest_count=50)
        version = subscription.lock_version
        _pay(subscription.id)

        with pytest.raises(StaleWrite):
            engine.upgrade_subscription(subscription.id, "pro", guest_count=300, expected_version=version)

        assert get_subscription(subscription.id).plan_type == "starter"

    def test_inactive_target_plan(self, seeded_plans):
        subscription = engine.create_subscription("owner-1", "starter", guest_count=50)
        with pytest.raises(InvalidInput):
            engine.upgrade_subscription(subscription.id, "platinum", guest_count=10)

    def test_negative_guests_rejected(self, seeded_plans):
        subscription = engine.create_subscription("owner-1", "starter", guest_count=50)
        with pytest.raises(InvalidInput):
            engine.upgrade_subscription(subscription.id, "pro", guest_count=-5)
        assert get_subscription(subscription.id).plan_type == "starter"


class TestRenewSubscription:
    def test_renew_keeps_expiry_until_paid(self, seeded_plans):
        paid = _pay(engine.create_subscription("owner-1", "pro", guest_count=10).id)
        expires_at = paid.expires_at

        renewed = engine.renew_subscription(paid.id)

        assert renewed.status == SubscriptionStatus.PENDING
        assert renewed.pending_change == "renewal"
        assert renewed.expires_at == expires_at

    def test_renewal_payment_extends_window(self, seeded_plans):
        paid = _pay(engine.create_subscription("owner-1", "pro", guest_count=10).id)
        expires_at = paid.expires_at
        engine.renew_subscription(paid.id)

        renewed = _pay(paid.id)

        assert (renewed.expires_at - expires_at).days == 30

    def test_renew_cancelled_rejected(self, seeded_plans):
        subscription = engine.create_subscription("owner-1", "pro", guest_count=10)
        engine.cancel_subscription(subscription.id)
        with pytest.raises(InvalidStateTransition):
            engine.renew_subscription(subscription.id)
        assert get_subscription(subscription.id).status == SubscriptionStatus.CANCELLED


class TestCancelSubscription:
    def test_cancel_paid(self, seeded_plans):
        paid = _pay(engine.create_subscription("owner-1", "pro", guest_count=10).id)

        engine.cancel_subscription(paid.id, reason="Event called off")

        cancelled = get_subscription(paid.id)
        assert cancelled.status == SubscriptionStatus.CANCELLED
        assert cancelled.is_active is False
        assert cancelled.cancellation_reason == "Event called off"

    def test_cancel_twice_is_not_cancellable_and_writes_nothing(self, seeded_plans):
        subscription = engine.create_subscription("owner-1", "pro", guest_count=10)
        engine.cancel_subscription(subscription.id, reason="first")
        before = get_subscription(subscription.id)

        with pytest.raises(NotCancellable):
            engine.cancel_subscription(subscription.id, reason="second")

        after = get_subscription(subscription.id)
        assert after.cancellation_reason == "first"
        assert after.lock_version == before.lock_version
        assert after.updated_at == before.updated_at

    def test_unknown_subscription(self, seeded_plans):
        with pytest.raises(InvalidInput):
            engine.cancel_subscription("missing")
