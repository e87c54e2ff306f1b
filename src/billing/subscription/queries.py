"""Read-side helpers over the Subscription repository."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from billing.errors import InvalidInput
from billing.subscription.subscription import Subscription


def get_subscription(subscription_id: str) -> Subscription:
    try:
        return current_domain.repository_for(Subscription).get(subscription_id)
    except ObjectNotFoundError as exc:
        raise InvalidInput({"subscription_id": [f"Subscription {subscription_id} not found"]}) from exc


def subscriptions_for_owner(owner_id: str) -> list[Subscription]:
    """All of an owner's subscriptions, newest first."""
    repo = current_domain.repository_for(Subscription)
    items = repo._dao.query.filter(owner_id=str(owner_id)).all().items
    return sorted(items, key=lambda s: s.created_at, reverse=True)


def subscriptions_in_scope(owner_id: str, event_id: str | None = None) -> list[Subscription]:
    """Subscriptions covering one event, or the account when ``event_id`` is None."""
    scope = str(event_id) if event_id else None
    return [s for s in subscriptions_for_owner(owner_id) if (str(s.event_id) if s.event_id else None) == scope]


def find_active_subscription(owner_id: str, event_id: str | None = None) -> Subscription | None:
    """The subscription that governs quotas for a scope: the newest active one."""
    for subscription in subscriptions_in_scope(owner_id, event_id):
        if subscription.is_active:
            return subscription
    return None


def has_used_plan(owner_id: str, plan_type: str) -> bool:
    return any(s.plan_type == plan_type for s in subscriptions_for_owner(owner_id))
