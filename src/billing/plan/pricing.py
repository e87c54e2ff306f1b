"""Usage-based pricing: base price plus a per-guest price beyond the included guests.

    total = base_price + guest_unit_price * max(0, guest_count - included_guests)

Integer arithmetic only; amounts are minor units of the configured currency.
"""

from dataclasses import asdict, dataclass

from billing.config import get_settings
from billing.errors import InvalidInput
from billing.plan.catalog import list_active_plans, require_plan
from billing.plan.plan import Plan


@dataclass(frozen=True)
class PricingResult:
    plan_type: str
    base_price: int
    included_guests: int
    guest_count: int
    extra_guests: int
    price_per_extra_guest: int
    extra_guest_price: int
    total_price: int
    currency: str

    def to_dict(self) -> dict:
        return asdict(self)


def validate_guest_count(guest_count) -> int:
    if isinstance(guest_count, bool) or not isinstance(guest_count, int):
        raise InvalidInput({"guest_count": [f"Guest count must be an integer, got {guest_count!r}"]})
    if guest_count < 0:
        raise InvalidInput({"guest_count": ["Guest count cannot be negative"]})
    return guest_count


def total_for(base_price: int, included_guests: int, guest_unit_price: int, guest_count: int) -> int:
    return base_price + guest_unit_price * max(0, guest_count - included_guests)


def calculate_price(plan: Plan, guest_count: int) -> PricingResult:
    guest_count = validate_guest_count(guest_count)

    base_price = plan.price or 0
    included = plan.included_guests or 0
    unit_price = plan.guest_unit_price or 0
    extra_guests = max(0, guest_count - included)

    return PricingResult(
        plan_type=plan.slug,
        base_price=base_price,
        included_guests=included,
        guest_count=guest_count,
        extra_guests=extra_guests,
        price_per_extra_guest=unit_price,
        extra_guest_price=extra_guests * unit_price,
        total_price=total_for(base_price, included, unit_price, guest_count),
        currency=get_settings().currency,
    )


def quote(plan_type: str, guest_count: int) -> PricingResult:
    """Price ``guest_count`` guests on the catalog plan ``plan_type``."""
    validate_guest_count(guest_count)
    return calculate_price(require_plan(plan_type), guest_count)


@dataclass(frozen=True)
class PlanComparison:
    """One catalog plan side by side with the others, priced for the same guest count."""

    slug: str
    name: str
    description: str | None
    duration_days: int
    is_trial: bool
    pricing: PricingResult
    limits: dict
    features: list[str]

    def to_dict(self) -> dict:
        return asdict(self)


def compare_plans(guest_count: int = 0, owner_id: str | None = None) -> list[PlanComparison]:
    """Every active plan in display order, quoted for ``guest_count`` guests.

    ``features`` lists the enabled feature keys only. With an ``owner_id``,
    one-time-use plans the owner already used are left out.
    """
    guest_count = validate_guest_count(guest_count)
    return [
        PlanComparison(
            slug=plan.slug,
            name=plan.name,
            description=plan.description,
            duration_days=plan.duration_days,
            is_trial=bool(plan.is_trial),
            pricing=calculate_price(plan, guest_count),
            limits=dict(plan.limits or {}),
            features=sorted(key for key, enabled in (plan.features or {}).items() if enabled),
        )
        for plan in list_active_plans(owner_id)
    ]
