"""Plan aggregate: a purchasable tier in the catalog.

Prices are integer minor units of the configured currency. ``price`` is the
base price, covering ``included_guests`` guests; every guest beyond that costs
``guest_unit_price``. Limits map a resource key to a count, ``-1`` meaning
unlimited.
"""

from datetime import UTC, datetime

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Dict, Integer, String, Text

from billing.domain import billing
from billing.plan.events import PlanCreated, PlanUpdated

UNLIMITED = -1

_EDITABLE_FIELDS = (
    "name",
    "description",
    "price",
    "included_guests",
    "guest_unit_price",
    "duration_days",
    "is_one_time_use",
    "is_active",
    "limits",
    "features",
    "sort_order",
)


@billing.aggregate
class Plan:
    name: String(required=True, max_length=100)
    slug: String(required=True, max_length=50, unique=True)
    description: Text()
    price: Integer(min_value=0, default=0)
    included_guests: Integer(min_value=0, default=0)
    guest_unit_price: Integer(min_value=0, default=0)
    duration_days: Integer(min_value=1, default=30)
    is_trial: Boolean(default=False)
    is_one_time_use: Boolean(default=False)
    is_active: Boolean(default=True)
    limits: Dict()
    features: Dict()
    sort_order: Integer(default=0)
    created_at: DateTime()
    updated_at: DateTime()

    @invariant.post
    def limits_are_counts_or_unlimited(self):
        for key, value in (self.limits or {}).items():
            if not isinstance(value, int) or isinstance(value, bool) or value < UNLIMITED:
                raise ValidationError({"limits": [f"Limit {key!r} must be a count or -1 (unlimited)"]})

    @invariant.post
    def trial_plans_are_free(self):
        if self.is_trial and self.price:
            raise ValidationError({"price": ["Trial plans cannot have a price"]})

    @classmethod
    def create(
        cls,
        name,
        slug,
        price=0,
        included_guests=0,
        guest_unit_price=0,
        duration_days=30,
        is_trial=False,
        is_one_time_use=False,
        limits=None,
        features=None,
        description=None,
        sort_order=0,
    ):
        now = datetime.now(UTC)
        plan = cls(
            name=name,
            slug=slug,
            description=description,
            price=price,
            included_guests=included_guests,
            guest_unit_price=guest_unit_price,
            duration_days=duration_days,
            is_trial=is_trial,
            is_one_time_use=is_one_time_use,
            is_active=True,
            limits=limits or {},
            features=features or {},
            sort_order=sort_order,
            created_at=now,
            updated_at=now,
        )
        plan.raise_(
            PlanCreated(
                plan_id=str(plan.id),
                slug=slug,
                name=name,
                price=price,
                is_trial=is_trial,
                created_at=now,
            )
        )
        return plan

    def update(self, **changes):
        """Apply an administrator's edit. Only catalog fields can change."""
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError({"plan": [f"Cannot edit fields: {', '.join(sorted(unknown))}"]})

        applied = {key: value for key, value in changes.items() if value is not None}
        if not applied:
            return

        now = datetime.now(UTC)
        with atomic_change(self):
            for key, value in applied.items():
                setattr(self, key, value)
            self.updated_at = now

        self.raise_(
            PlanUpdated(
                plan_id=str(self.id),
                slug=self.slug,
                changes=applied,
                updated_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get_limit(self, key: str, default: int | None = None) -> int | None:
        return (self.limits or {}).get(key, default)

    def is_unlimited(self, key: str) -> bool:
        return self.get_limit(key) == UNLIMITED

    def has_feature(self, key: str) -> bool:
        return bool((self.features or {}).get(key, False))
