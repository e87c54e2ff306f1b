import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def billing_bed():
    from billing.domain import billing

    bed = DomainFixture(billing)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(billing_bed):
    with billing_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def _reset_engine_state(_ctx):
    """Fresh settings, gateways, plan cache and confirmation sender per test."""
    from billing.config import reset_settings
    from billing.gateway import reset_gateways
    from billing.payment.confirmation import reset_confirmation_sender
    from billing.plan import catalog

    reset_settings()
    reset_gateways()
    reset_confirmation_sender()
    catalog.invalidate()

    yield

    reset_gateways()
    reset_confirmation_sender()
    catalog.invalidate()
    reset_settings()


@pytest.fixture()
def seeded_plans():
    """The default catalog, keyed by slug."""
    from billing.plan.catalog import get_plan, seed_default_plans

    seed_default_plans()
    return {slug: get_plan(slug) for slug in ("essai-gratuit", "starter", "pro", "agence")}


@pytest.fixture()
def fake_mtn():
    from billing.gateway import get_gateway
    from billing.gateway.port import PaymentProvider

    return get_gateway(PaymentProvider.MTN_MOBILE_MONEY)


@pytest.fixture()
def fake_airtel():
    from billing.gateway import get_gateway
    from billing.gateway.port import PaymentProvider

    return get_gateway(PaymentProvider.AIRTEL_MONEY)


@pytest.fixture()
def confirmations():
    from billing.payment.confirmation import get_confirmation_sender

    return get_confirmation_sender()
