"""Tests for provider selection, the fake gateway and the gateway registry."""

import pytest
from billing.config import ProviderSettings, get_settings, override_settings
from billing.errors import UnsupportedProvider
from billing.gateway import get_gateway, reset_gateways, set_gateway
from billing.gateway.airtel_adapter import AirtelMoneyGateway
from billing.gateway.fake_adapter import FakeMobileMoneyGateway
from billing.gateway.mtn_adapter import MtnMomoGateway
from billing.gateway.port import GatewayUnavailable, PaymentProvider, ProviderStatus
from billing.gateway.signing import compute_signature, verify_signature


class TestRegistry:
    def test_fake_by_default(self):
        gateway = get_gateway(PaymentProvider.MTN_MOBILE_MONEY)
        assert isinstance(gateway, FakeMobileMoneyGateway)
        assert gateway.provider == PaymentProvider.MTN_MOBILE_MONEY

    def test_singleton_per_provider(self):
        assert get_gateway("mtn") is get_gateway(PaymentProvider.MTN_MOBILE_MONEY)
        assert get_gateway("airtel") is not get_gateway("mtn")

    @pytest.mark.parametrize("alias", ["mtn", "MTN", "mtn_mobile_money"])
    def test_aliases(self, alias):
        assert get_gateway(alias).provider == PaymentProvider.MTN_MOBILE_MONEY

    def test_unknown_provider(self):
        with pytest.raises(UnsupportedProvider):
            get_gateway("orange")

    def test_disabled_provider(self):
        override_settings(airtel=ProviderSettings(enabled=False))
        with pytest.raises(UnsupportedProvider):
            get_gateway(PaymentProvider.AIRTEL_MONEY)

    def test_live_mode_builds_http_adapters(self):
        override_settings(gateway_mode="live")

        assert isinstance(get_gateway("mtn"), MtnMomoGateway)
        assert isinstance(get_gateway("airtel"), AirtelMoneyGateway)
        assert get_gateway("airtel").country_code == get_settings().country_code

    def test_set_and_reset(self):
        replacement = FakeMobileMoneyGateway(PaymentProvider.MTN_MOBILE_MONEY)
        set_gateway(PaymentProvider.MTN_MOBILE_MONEY, replacement)
        assert get_gateway("mtn") is replacement

        reset_gateways()
        assert get_gateway("mtn") is not replacement


class TestFakeGateway:
    def test_successful_transfer(self):
        gateway = FakeMobileMoneyGateway()
        result = gateway.request_transfer(100, "XAF", "242061234567", "pay-1", "x")

        assert result.success is True
        assert result.reference.startswith("fake_ref_")
        assert gateway.calls[0]["external_reference"] == "pay-1"

    def test_configured_rejection(self):
        gateway = FakeMobileMoneyGateway()
        gateway.configure(should_succeed=False, failure_reason="No funds")

        result = gateway.request_transfer(100, "XAF", "242061234567", "pay-1", "x")

        assert result.success is False
        assert result.failure_reason == "No funds"

    def test_status_per_reference(self):
        gateway = FakeMobileMoneyGateway()
        gateway.set_status("ref-1", ProviderStatus.COMPLETED)

        assert gateway.query_status("ref-1").status == ProviderStatus.COMPLETED
        assert gateway.query_status("ref-1").transaction_id == "fake_txn_ref-1"
        assert gateway.query_status("ref-2").status == ProviderStatus.PENDING

    def test_default_status(self):
        gateway = FakeMobileMoneyGateway()
        gateway.configure(default_status=ProviderStatus.FAILED)
        assert gateway.query_status("ref-1").status == ProviderStatus.FAILED

    def test_unavailable(self):
        gateway = FakeMobileMoneyGateway()
        gateway.configure(unavailable=True)
        with pytest.raises(GatewayUnavailable):
            gateway.query_status("ref-1")

    def test_callback_with_unknown_status(self):
        result = FakeMobileMoneyGateway().parse_callback({"reference": "ref-1", "status": "weird"})
        assert result.status == ProviderStatus.UNKNOWN
        assert result.provider_status == "weird"


class TestSigning:
    def test_round_trip(self):
        signature = compute_signature("secret", '{"a": 1}')
        assert verify_signature("secret", b'{"a": 1}', signature) is True

    def test_no_secret_never_verifies(self):
        assert verify_signature(None, b"{}", compute_signature("x", b"{}")) is False
        assert verify_signature("", b"{}", "anything") is False

    def test_no_signature_never_verifies(self):
        assert verify_signature("secret", b"{}", "") is False
