"""Domain events for the Plan aggregate."""

from protean.fields import Boolean, DateTime, Dict, Identifier, Integer, String

from billing.domain import billing


@billing.event(part_of="Plan")
class PlanCreated:
    """A plan was added to the catalog."""

    __version__ = 1

    plan_id: Identifier(required=True)
    slug: String(required=True)
    name: String(required=True)
    price: Integer(default=0)
    is_trial: Boolean(default=False)
    created_at: DateTime(required=True)


@billing.event(part_of="Plan")
class PlanUpdated:
    """An administrator edited a plan. Existing subscriptions keep their prices."""

    __version__ = 1

    plan_id: Identifier(required=True)
    slug: String(required=True)
    changes: Dict()
    updated_at: DateTime(required=True)
