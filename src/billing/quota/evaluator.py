"""Quota evaluation: may an owner create one more guest, photo, collaborator or event?

Limits come from the plan of the owner's active subscription for the scope
(an event, or the account); without one the default tier applies. ``-1``
means unlimited throughout. Only the plan catalog is cached; the subscription
is read fresh on every check.
"""

from dataclasses import dataclass
from enum import Enum

from billing.config import get_settings
from billing.plan.catalog import get_plan
from billing.plan.plan import UNLIMITED
from billing.subscription.queries import find_active_subscription


class ResourceKind(Enum):
    EVENTS = "events.creations_per_billing_period"
    GUESTS = "guests.max_per_event"
    COLLABORATORS = "collaborators.max_per_event"
    PHOTOS = "photos.max_per_event"


class QuotaWarning(Enum):
    """Usage thresholds worth telling the owner about."""

    APPROACHING = "quota_80"
    NEARLY_FULL = "quota_90"
    REACHED = "quota_reached"


_WARNING_THRESHOLDS = (
    (100, QuotaWarning.REACHED),
    (90, QuotaWarning.NEARLY_FULL),
    (80, QuotaWarning.APPROACHING),
)


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    remaining: int
    limit: int
    current: int

    @property
    def is_unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def percentage_used(self) -> int:
        """Share of the limit in use, rounded half up. Unlimited is 0, a zero limit 100."""
        if self.is_unlimited:
            return 0
        if self.limit <= 0:
            return 100
        return (self.current * 200 + self.limit) // (self.limit * 2)

    @property
    def warning(self) -> QuotaWarning | None:
        percentage = self.percentage_used
        for threshold, warning in _WARNING_THRESHOLDS:
            if percentage >= threshold:
                return warning
        return None


def _resource_key(resource: ResourceKind | str) -> str:
    if isinstance(resource, ResourceKind):
        return resource.value
    return ResourceKind(resource).value


def evaluate(resource: ResourceKind | str, limit: int, current_count: int) -> QuotaDecision:
    """Pure limit check. ``limit=-1`` is unlimited, reported as ``remaining=-1``."""
    _resource_key(resource)
    current_count = max(0, current_count or 0)

    if limit == UNLIMITED:
        return QuotaDecision(allowed=True, remaining=UNLIMITED, limit=UNLIMITED, current=current_count)

    limit = max(0, limit)
    return QuotaDecision(
        allowed=current_count < limit,
        remaining=max(0, limit - current_count),
        limit=limit,
        current=current_count,
    )


def default_tier(overrides: dict | None = None) -> dict[str, int]:
    limits = dict(get_settings().free_tier)
    for key, value in (overrides or {}).items():
        limits[_resource_key(key)] = value
    return limits


def resolve_limits(owner_id: str, event_id: str | None = None, default_limits: dict | None = None) -> dict[str, int]:
    """Effective limit for every resource kind in a scope."""
    fallback = default_tier(default_limits)
    subscription = find_active_subscription(owner_id, event_id)
    if subscription is None:
        return fallback

    plan = get_plan(subscription.plan_type, include_inactive=True)
    limits = {}
    for kind in ResourceKind:
        limit = plan.get_limit(kind.value) if plan is not None else None
        if limit is None and kind == ResourceKind.GUESTS:
            # Guest-priced plans cap guests at what was bought
            limit = subscription.guest_count or 0
        limits[kind.value] = fallback[kind.value] if limit is None else limit
    return limits


def check_plan_limits(
    owner_id: str,
    event_id: str | None = None,
    counts: dict | None = None,
    default_limits: dict | None = None,
) -> dict[str, QuotaDecision]:
    """Decide every resource kind for a scope given the current ``counts``."""
    current = {_resource_key(key): value for key, value in (counts or {}).items()}
    limits = resolve_limits(owner_id, event_id, default_limits)
    return {key: evaluate(key, limits[key], current.get(key, 0)) for key in limits}


def can_add(
    resource: ResourceKind | str,
    owner_id: str,
    current_count: int,
    event_id: str | None = None,
    default_limits: dict | None = None,
) -> QuotaDecision:
    """Single-resource check for callers about to insert one more item."""
    key = _resource_key(resource)
    limits = resolve_limits(owner_id, event_id, default_limits)
    return evaluate(key, limits[key], current_count)


def has_feature(owner_id: str, feature: str, event_id: str | None = None) -> bool:
    subscription = find_active_subscription(owner_id, event_id)
    if subscription is None:
        return False
    plan = get_plan(subscription.plan_type, include_inactive=True)
    return plan is not None and plan.has_feature(feature)


def quota_warnings(
    owner_id: str,
    event_id: str | None = None,
    counts: dict | None = None,
    default_limits: dict | None = None,
) -> dict[str, QuotaWarning]:
    """Resources of a scope at or above 80% of their limit, with the threshold crossed."""
    decisions = check_plan_limits(owner_id, event_id=event_id, counts=counts, default_limits=default_limits)
    return {key: decision.warning for key, decision in decisions.items() if decision.warning is not None}
