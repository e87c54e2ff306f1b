"""Plan administration: CreatePlan, UpdatePlan.

Both handlers drop the catalog read cache so the edit is visible to the next
price quote or quota check.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Boolean, Dict, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from billing.domain import billing
from billing.plan import catalog
from billing.plan.plan import Plan

_UPDATABLE_FIELDS = (
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


@billing.command(part_of="Plan")
class CreatePlan:
    name = String(required=True, max_length=100)
    slug = String(required=True, max_length=50)
    description = Text()
    price = Integer(min_value=0, default=0)
    included_guests = Integer(min_value=0, default=0)
    guest_unit_price = Integer(min_value=0, default=0)
    duration_days = Integer(min_value=1, default=30)
    is_trial = Boolean(default=False)
    is_one_time_use = Boolean(default=False)
    limits = Dict()
    features = Dict()
    sort_order = Integer(default=0)


@billing.command(part_of="Plan")
class UpdatePlan:
    plan_id = Identifier(required=True)
    name = String(max_length=100)
    description = Text()
    price = Integer(min_value=0)
    included_guests = Integer(min_value=0)
    guest_unit_price = Integer(min_value=0)
    duration_days = Integer(min_value=1)
    is_one_time_use = Boolean()
    is_active = Boolean()
    limits = Dict()
    features = Dict()
    sort_order = Integer()


@billing.command_handler(part_of=Plan)
class PlanManagementHandler:
    @handle(CreatePlan)
    def create_plan(self, command):
        repo = current_domain.repository_for(Plan)
        if repo._dao.query.filter(slug=command.slug).all().items:
            raise ValidationError({"slug": [f"A plan with slug {command.slug!r} already exists"]})

        plan = Plan.create(
            name=command.name,
            slug=command.slug,
            description=command.description,
            price=command.price,
            included_guests=command.included_guests,
            guest_unit_price=command.guest_unit_price,
            duration_days=command.duration_days,
            is_trial=command.is_trial,
            is_one_time_use=command.is_one_time_use,
            limits=command.limits,
            features=command.features,
            sort_order=command.sort_order,
        )
        repo.add(plan)
        catalog.invalidate(plan.slug)
        return str(plan.id)

    @handle(UpdatePlan)
    def update_plan(self, command):
        repo = current_domain.repository_for(Plan)
        try:
            plan = repo.get(command.plan_id)
        except ObjectNotFoundError as exc:
            raise ValidationError({"plan_id": [f"Plan {command.plan_id} not found"]}) from exc

        changes = {}
        for field in _UPDATABLE_FIELDS:
            value = getattr(command, field, None)
            # Unset optional fields arrive as None (or an empty dict for maps)
            if value is None or value == {}:
                continue
            changes[field] = value
        plan.update(**changes)
        repo.add(plan)
        catalog.invalidate(plan.slug)
