"""Mobile-money gateway registry.

Provides get_gateway() / set_gateway() per provider to swap implementations:
- FakeMobileMoneyGateway for development and testing (default)
- MtnMomoGateway / AirtelMoneyGateway when PAYMENT_GATEWAY_MODE=live
"""

from billing.config import get_settings
from billing.errors import UnsupportedProvider
from billing.gateway.fake_adapter import FakeMobileMoneyGateway
from billing.gateway.port import MobileMoneyGateway, PaymentProvider

_gateways: dict[PaymentProvider, MobileMoneyGateway] = {}


def _build(provider: PaymentProvider) -> MobileMoneyGateway:
    settings = get_settings()
    provider_settings = settings.mtn if provider == PaymentProvider.MTN_MOBILE_MONEY else settings.airtel
    if not provider_settings.enabled:
        raise UnsupportedProvider(f"{provider.label} payments are disabled")

    if settings.gateway_mode != "live":
        return FakeMobileMoneyGateway(provider)

    if provider == PaymentProvider.MTN_MOBILE_MONEY:
        from billing.gateway.mtn_adapter import MtnMomoGateway

        return MtnMomoGateway(provider_settings)

    from billing.gateway.airtel_adapter import AirtelMoneyGateway

    return AirtelMoneyGateway(provider_settings, country_code=settings.country_code)


def get_gateway(provider: PaymentProvider | str) -> MobileMoneyGateway:
    """Return the gateway for a provider (singleton per provider)."""
    if not isinstance(provider, PaymentProvider):
        try:
            provider = PaymentProvider.from_alias(provider)
        except ValueError as exc:
            raise UnsupportedProvider(f"Unknown payment provider: {provider!r}") from exc

    if provider not in _gateways:
        _gateways[provider] = _build(provider)
    return _gateways[provider]


def set_gateway(provider: PaymentProvider, gateway: MobileMoneyGateway) -> None:
    """Override the gateway for one provider (useful for tests)."""
    _gateways[provider] = gateway


def reset_gateways() -> None:
    """Reset to default gateways."""
    _gateways.clear()
