"""Subscription lifecycle: CreateSubscription, UpgradeSubscription, RenewSubscription, CancelSubscription.

Commands that change an existing subscription accept ``expected_version``,
the ``lock_version`` the caller read; a mismatch raises StaleWrite before
anything is written.
"""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from billing.domain import billing
from billing.errors import DuplicateActiveSubscription, InvalidInput
from billing.plan.catalog import get_plan, require_plan
from billing.plan.pricing import calculate_price
from billing.subscription.queries import get_subscription, has_used_plan, subscriptions_in_scope
from billing.subscription.subscription import Subscription
from billing.utils.logging import get_logger

logger = get_logger(__name__)


@billing.command(part_of="Subscription")
class CreateSubscription:
    owner_id = Identifier(required=True)
    event_id = Identifier()
    plan_type = String(required=True, max_length=50)
    guest_count = Integer(default=0)


@billing.command(part_of="Subscription")
class UpgradeSubscription:
    subscription_id = Identifier(required=True)
    plan_type = String(required=True, max_length=50)
    guest_count = Integer(required=True)
    expected_version = Integer()


@billing.command(part_of="Subscription")
class RenewSubscription:
    subscription_id = Identifier(required=True)
    expected_version = Integer()


@billing.command(part_of="Subscription")
class CancelSubscription:
    subscription_id = Identifier(required=True)
    reason = String(max_length=500)
    expected_version = Integer()


@billing.command_handler(part_of=Subscription)
class SubscriptionLifecycleHandler:
    @handle(CreateSubscription)
    def create_subscription(self, command):
        repo = current_domain.repository_for(Subscription)
        plan = require_plan(command.plan_type)
        pricing = calculate_price(plan, command.guest_count or 0)

        if plan.is_one_time_use and has_used_plan(command.owner_id, plan.slug):
            raise InvalidInput({"plan_type": [f"Plan {plan.name} can only be used once"]})

        active = [s for s in subscriptions_in_scope(command.owner_id, command.event_id) if s.is_active]
        blocking = [s for s in active if not s.is_trial]
        if blocking:
            raise DuplicateActiveSubscription(
                {"subscription": ["An active subscription already covers this scope"]},
                subscription_id=str(blocking[0].id),
            )

        # A paid plan supersedes a running trial
        for trial in active:
            trial.cancel(reason=f"Superseded by a {plan.name} subscription")
            repo.add(trial)
            logger.info("Trial subscription superseded", subscription_id=str(trial.id), plan_type=plan.slug)

        subscription = Subscription.create(
            owner_id=command.owner_id,
            plan=plan,
            pricing=pricing,
            event_id=command.event_id,
        )
        repo.add(subscription)

        logger.info(
            "Subscription created",
            subscription_id=str(subscription.id),
            owner_id=str(command.owner_id),
            event_id=command.event_id,
            plan_type=plan.slug,
            total_price=subscription.total_price,
            payment_status=subscription.payment_status,
        )
        return str(subscription.id)

    @handle(UpgradeSubscription)
    def upgrade_subscription(self, command):
        repo = current_domain.repository_for(Subscription)
        subscription = get_subscription(command.subscription_id)
        subscription.ensure_version(command.expected_version)

        plan = require_plan(command.plan_type)
        pricing = calculate_price(plan, command.guest_count)
        payment_required = subscription.upgrade(plan, pricing)
        repo.add(subscription)

        logger.info(
            "Subscription upgraded",
            subscription_id=str(subscription.id),
            plan_type=plan.slug,
            total_price=subscription.total_price,
            payment_required=payment_required,
        )
        return payment_required

    @handle(RenewSubscription)
    def renew_subscription(self, command):
        repo = current_domain.repository_for(Subscription)
        subscription = get_subscription(command.subscription_id)
        subscription.ensure_version(command.expected_version)

        # Renewals use today's catalog prices, even for a plan that was since retired
        plan = get_plan(subscription.plan_type, include_inactive=True)
        if plan is None:
            raise InvalidInput({"plan_type": [f"Plan {subscription.plan_type!r} no longer exists"]})
        pricing = calculate_price(plan, subscription.guest_count or 0)
        subscription.renew(plan, pricing)
        repo.add(subscription)

        logger.info(
            "Subscription renewal requested",
            subscription_id=str(subscription.id),
            total_price=subscription.total_price,
        )

    @handle(CancelSubscription)
    def cancel_subscription(self, command):
        repo = current_domain.repository_for(Subscription)
        subscription = get_subscription(command.subscription_id)
        subscription.ensure_version(command.expected_version)
        subscription.cancel(reason=command.reason)
        repo.add(subscription)

        logger.info(
            "Subscription cancelled",
            subscription_id=str(subscription.id),
            reason=command.reason,
        )
