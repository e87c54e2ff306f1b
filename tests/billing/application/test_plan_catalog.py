"""Application tests for the plan catalog and admin plan commands."""

import pytest
from billing.errors import InvalidInput
from billing.plan import catalog
from billing.plan.catalog import get_plan, list_active_plans, require_plan, seed_default_plans
from billing.plan.management import CreatePlan, UpdatePlan
from billing.plan.plan import Plan
from billing.plan.pricing import compare_plans
from billing.subscription.lifecycle import CreateSubscription
from protean import current_domain
from protean.exceptions import ValidationError


def _create_plan(**overrides):
    defaults = {
        "name": "Mariage",
        "slug": "mariage",
        "price": 15000,
        "included_guests": 150,
        "guest_unit_price": 40,
        "duration_days": 60,
        "limits": {"photos.max_per_event": 300},
    }
    defaults.update(overrides)
    return current_domain.process(CreatePlan(**defaults), asynchronous=False)


class TestSeedDefaultPlans:
    def test_seeds_four_plans(self):
        created = seed_default_plans()
        assert len(created) == 4
        assert [plan.slug for plan in list_active_plans()] == ["essai-gratuit", "starter", "pro", "agence"]

    def test_seeding_twice_is_harmless(self):
        seed_default_plans()
        assert seed_default_plans() == []

    def test_trial_plan(self, seeded_plans):
        trial = seeded_plans["essai-gratuit"]
        assert trial.is_trial is True
        assert trial.is_one_time_use is True
        assert trial.price == 0
        assert trial.duration_days == 14


class TestPlanCommands:
    def test_create_plan(self):
        plan_id = _create_plan()
        plan = current_domain.repository_for(Plan).get(plan_id)
        assert plan.slug == "mariage"
        assert plan.get_limit("photos.max_per_event") == 300

    def test_duplicate_slug_rejected(self):
        _create_plan()
        with pytest.raises(ValidationError) as exc:
            _create_plan(name="Other")
        assert "slug" in exc.value.messages

    def test_update_plan_invalidates_cache(self):
        plan_id = _create_plan()
        assert get_plan("mariage").price == 15000

        current_domain.process(UpdatePlan(plan_id=plan_id, price=18000), asynchronous=False)

        assert get_plan("mariage").price == 18000

    def test_deactivated_plan_is_hidden(self):
        plan_id = _create_plan()
        current_domain.process(UpdatePlan(plan_id=plan_id, is_active=False), asynchronous=False)

        assert get_plan("mariage") is None
        assert get_plan("mariage", include_inactive=True) is not None
        assert "mariage" not in [plan.slug for plan in list_active_plans()]

    def test_update_unknown_plan(self):
        with pytest.raises(ValidationError):
            current_domain.process(UpdatePlan(plan_id="missing", price=1), asynchronous=False)


class TestCatalogLookups:
    def test_get_plan_is_cached(self, seeded_plans):
        assert get_plan("pro") is get_plan("pro")

    def test_invalidate_all(self, seeded_plans):
        first = get_plan("pro")
        catalog.invalidate()
        assert get_plan("pro") is not first

    def test_unknown_slug(self, seeded_plans):
        assert get_plan("platinum") is None
        assert get_plan("") is None

    def test_require_plan(self, seeded_plans):
        assert require_plan("starter").price == 5000


class TestListActivePlans:
    def test_used_one_time_plan_is_hidden_for_owner(self, seeded_plans):
        current_domain.process(
            CreateSubscription(owner_id="owner-1", plan_type="essai-gratuit", guest_count=0),
            asynchronous=False,
        )

        owner_slugs = [plan.slug for plan in list_active_plans(owner_id="owner-1")]
        other_slugs = [plan.slug for plan in list_active_plans(owner_id="owner-2")]

        assert "essai-gratuit" not in owner_slugs
        assert "essai-gratuit" in other_slugs


class TestComparePlans:
    def test_every_plan_priced_for_the_same_guests(self, seeded_plans):
        comparison = {plan.slug: plan for plan in compare_plans(guest_count=300)}

        assert list(comparison) == ["essai-gratuit", "starter", "pro", "agence"]
        assert comparison["starter"].pricing.total_price == 5000 + 250 * 50
        assert comparison["pro"].pricing.total_price == 10000 + 100 * 30
        assert comparison["agence"].pricing.total_price == 25000
        assert comparison["essai-gratuit"].is_trial is True

    def test_limits_and_enabled_features(self, seeded_plans):
        starter = next(plan for plan in compare_plans() if plan.slug == "starter")

        assert starter.limits["photos.max_per_event"] == 50
        assert "guests.export" in starter.features
        assert "exports.pdf" not in starter.features
        assert starter.duration_days == 120

    def test_used_trial_left_out_for_owner(self, seeded_plans):
        current_domain.process(
            CreateSubscription(owner_id="owner-1", plan_type="essai-gratuit", guest_count=0),
            asynchronous=False,
        )

        assert [plan.slug for plan in compare_plans(owner_id="owner-1")] == ["starter", "pro", "agence"]

    def test_negative_guests_rejected(self, seeded_plans):
        with pytest.raises(InvalidInput):
            compare_plans(guest_count=-1)

    def test_serialises_nested_pricing(self, seeded_plans):
        payload = compare_plans(guest_count=10)[1].to_dict()
        assert payload["pricing"]["plan_type"] == "starter"
        assert payload["pricing"]["currency"] == "XAF"
