"""Plan catalog: cached plan lookups, listing and default seeding.

Plans are read on every price quote and quota check, so they are cached
in-process by slug. The admin commands in ``billing.plan.management`` drop
the cache entry they touch.
"""

from protean.utils.globals import current_domain

from billing.errors import InvalidInput
from billing.plan.plan import UNLIMITED, Plan
from billing.utils.logging import get_logger

logger = get_logger(__name__)

_cache: dict[str, Plan] = {}


DEFAULT_PLANS = [
    {
        "name": "Essai Gratuit",
        "slug": "essai-gratuit",
        "description": "Découvrez la plateforme sans engagement pendant 14 jours",
        "price": 0,
        "included_guests": 100,
        "guest_unit_price": 0,
        "duration_days": 14,
        "is_trial": True,
        "is_one_time_use": True,
        "sort_order": 1,
        "limits": {
            "events.creations_per_billing_period": 1,
            "guests.max_per_event": 100,
            "collaborators.max_per_event": 1,
            "photos.max_per_event": 10,
        },
        "features": {
            "budget.enabled": True,
            "tasks.enabled": True,
            "guests.manage": True,
            "guests.import": False,
            "guests.export": False,
            "collaborators.manage": True,
            "exports.pdf": False,
            "reporting.enabled": False,
        },
    },
    {
        "name": "Starter",
        "slug": "starter",
        "description": "Idéal pour les petits événements",
        "price": 5000,
        "included_guests": 50,
        "guest_unit_price": 50,
        "duration_days": 120,
        "sort_order": 2,
        # No guest limit: the purchased guest count applies
        "limits": {
            "events.creations_per_billing_period": 1,
            "collaborators.max_per_event": 2,
            "photos.max_per_event": 50,
        },
        "features": {
            "budget.enabled": True,
            "tasks.enabled": True,
            "guests.manage": True,
            "guests.import": True,
            "guests.export": True,
            "collaborators.manage": True,
            "exports.pdf": False,
            "reporting.enabled": False,
        },
    },
    {
        "name": "Pro",
        "slug": "pro",
        "description": "Pour organisateurs indépendants & freelances",
        "price": 10000,
        "included_guests": 200,
        "guest_unit_price": 30,
        "duration_days": 30,
        "sort_order": 3,
        "limits": {
            "events.creations_per_billing_period": 200,
            "guests.max_per_event": UNLIMITED,
            "collaborators.max_per_event": UNLIMITED,
            "photos.max_per_event": UNLIMITED,
        },
        "features": {
            "budget.enabled": True,
            "tasks.enabled": True,
            "guests.manage": True,
            "guests.import": True,
            "guests.export": True,
            "collaborators.manage": True,
            "exports.pdf": True,
            "reporting.enabled": True,
        },
    },
    {
        "name": "Agence",
        "slug": "agence",
        "description": "Pour agences, églises, ONG, entreprises",
        "price": 25000,
        "included_guests": 0,
        "guest_unit_price": 0,
        "duration_days": 30,
        "sort_order": 4,
        "limits": {
            "events.creations_per_billing_period": 500,
            "guests.max_per_event": UNLIMITED,
            "collaborators.max_per_event": UNLIMITED,
            "photos.max_per_event": UNLIMITED,
        },
        "features": {
            "budget.enabled": True,
            "tasks.enabled": True,
            "guests.manage": True,
            "guests.import": True,
            "guests.export": True,
            "collaborators.manage": True,
            "exports.pdf": True,
            "reporting.enabled": True,
            "branding.custom": True,
            "multi_client.enabled": True,
        },
    },
]


def _load(slug: str) -> Plan | None:
    plans = current_domain.repository_for(Plan)._dao.query.filter(slug=slug).all().items
    return plans[0] if plans else None


def get_plan(slug: str, include_inactive: bool = False) -> Plan | None:
    """Return the plan for ``slug`` from the cache, loading it on a miss."""
    if not slug:
        return None

    plan = _cache.get(slug)
    if plan is None:
        plan = _load(slug)
        if plan is None:
            return None
        _cache[slug] = plan

    if not plan.is_active and not include_inactive:
        return None
    return plan


def require_plan(slug: str) -> Plan:
    """Like ``get_plan`` but unknown or inactive slugs are an ``InvalidInput``."""
    plan = get_plan(slug)
    if plan is None:
        raise InvalidInput({"plan_type": [f"Unknown or inactive plan: {slug!r}"]})
    return plan


def invalidate(slug: str | None = None) -> None:
    """Drop one cached plan, or the whole cache."""
    if slug is None:
        _cache.clear()
    else:
        _cache.pop(slug, None)


def list_active_plans(owner_id: str | None = None) -> list[Plan]:
    """Active plans in display order.

    With an ``owner_id``, one-time-use plans the owner already used are hidden.
    """
    plans = current_domain.repository_for(Plan)._dao.query.filter(is_active=True).all().items
    plans = sorted(plans, key=lambda plan: (plan.sort_order, plan.price))

    if owner_id is None:
        return plans

    from billing.subscription.queries import has_used_plan

    return [plan for plan in plans if not (plan.is_one_time_use and has_used_plan(owner_id, plan.slug))]


def seed_default_plans() -> list[str]:
    """Install the default catalog. Existing slugs are left untouched."""
    from billing.plan.management import CreatePlan

    created = []
    for definition in DEFAULT_PLANS:
        if _load(definition["slug"]) is not None:
            continue
        plan_id = current_domain.process(CreatePlan(**definition), asynchronous=False)
        created.append(plan_id)
        logger.info("Seeded plan", slug=definition["slug"], plan_id=plan_id)

    return created
