"""Domain events for the Subscription aggregate."""

from protean.fields import Boolean, DateTime, Identifier, Integer, String

from billing.domain import billing


@billing.event(part_of="Subscription")
class SubscriptionCreated:
    """A subscription was opened for an owner (and optionally one event)."""

    __version__ = 1

    subscription_id: Identifier(required=True)
    owner_id: Identifier(required=True)
    event_id: Identifier()
    plan_type: String(required=True)
    guest_count: Integer(default=0)
    total_price: Integer(default=0)
    payment_status: String(required=True)
    expires_at: DateTime()
    created_at: DateTime(required=True)


@billing.event(part_of="Subscription")
class SubscriptionUpgraded:
    """Plan or guest count changed; payment is due again if the price went up."""

    __version__ = 1

    subscription_id: Identifier(required=True)
    owner_id: Identifier(required=True)
    previous_plan_type: String(required=True)
    plan_type: String(required=True)
    previous_total_price: Integer(default=0)
    total_price: Integer(default=0)
    payment_required: Boolean(default=False)
    upgraded_at: DateTime(required=True)


@billing.event(part_of="Subscription")
class SubscriptionRenewalRequested:
    __version__ = 1

    subscription_id: Identifier(required=True)
    owner_id: Identifier(required=True)
    plan_type: String(required=True)
    total_price: Integer(default=0)
    requested_at: DateTime(required=True)


@billing.event(part_of="Subscription")
class SubscriptionAwaitingPayment:
    """A failed subscription was reopened for a new payment attempt."""

    __version__ = 1

    subscription_id: Identifier(required=True)
    owner_id: Identifier(required=True)
    payment_method: String()
    reopened_at: DateTime(required=True)


@billing.event(part_of="Subscription")
class SubscriptionPaid:
    """A completed payment made the subscription active."""

    __version__ = 1

    subscription_id: Identifier(required=True)
    owner_id: Identifier(required=True)
    event_id: Identifier()
    payment_id: Identifier(required=True)
    plan_type: String(required=True)
    amount_paid: Integer(default=0)
    settled_change: String()
    expires_at: DateTime()
    paid_at: DateTime(required=True)


@billing.event(part_of="Subscription")
class SubscriptionPaymentFailed:
    __version__ = 1

    subscription_id: Identifier(required=True)
    owner_id: Identifier(required=True)
    payment_id: Identifier(required=True)
    failed_at: DateTime(required=True)


@billing.event(part_of="Subscription")
class SubscriptionCancelled:
    __version__ = 1

    subscription_id: Identifier(required=True)
    owner_id: Identifier(required=True)
    reason: String(max_length=500)
    cancelled_at: DateTime(required=True)


@billing.event(part_of="Subscription")
class SubscriptionRefunded:
    __version__ = 1

    subscription_id: Identifier(required=True)
    owner_id: Identifier(required=True)
    payment_id: Identifier(required=True)
    refunded_at: DateTime(required=True)
