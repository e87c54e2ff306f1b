"""Environment-driven settings for the billing engine.

Protean's own configuration (databases, brokers, processing mode) lives in
``pyproject.toml`` under ``[tool.protean]``. Everything the engine needs on
top of that (currency, provider credentials, webhook secrets, default tier)
is read from the environment here.
"""

import os
from dataclasses import dataclass, field, replace


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value not in (None, "") else default


def _env_prefixes(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = os.environ.get(name)
    if not value:
        return default
    return tuple(p.strip() for p in value.split(",") if p.strip())


@dataclass(frozen=True)
class ProviderSettings:
    """Credentials and endpoints for one mobile-money provider."""

    enabled: bool = True
    environment: str = "sandbox"
    api_url: str = ""
    currency: str = "XAF"
    country: str = "CG"
    api_user: str | None = None
    api_key: str | None = None
    subscription_key: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    callback_url: str | None = None
    webhook_secret: str | None = None
    prefixes: tuple[str, ...] = ()
    timeout: float = 30.0


@dataclass(frozen=True)
class BillingSettings:
    currency: str = "XAF"
    country_code: str = "242"
    national_number_length: int = 9
    gateway_mode: str = "fake"
    free_tier: dict[str, int] = field(default_factory=dict)
    mtn: ProviderSettings = field(default_factory=ProviderSettings)
    airtel: ProviderSettings = field(default_factory=ProviderSettings)

    @classmethod
    def from_env(cls) -> "BillingSettings":
        currency = os.environ.get("CURRENCY_CODE", "XAF")
        timeout = float(os.environ.get("PAYMENT_HTTP_TIMEOUT", "30"))

        return cls(
            currency=currency,
            country_code=os.environ.get("PHONE_COUNTRY_CODE", "242"),
            national_number_length=_env_int("PHONE_NATIONAL_LENGTH", 9),
            gateway_mode=os.environ.get("PAYMENT_GATEWAY_MODE", "fake").strip().lower(),
            free_tier={
                "events.creations_per_billing_period": _env_int("FREE_TIER_MAX_EVENTS", 1),
                "guests.max_per_event": _env_int("FREE_TIER_MAX_GUESTS", 10),
                "collaborators.max_per_event": _env_int("FREE_TIER_MAX_COLLABORATORS", 1),
                "photos.max_per_event": _env_int("FREE_TIER_MAX_PHOTOS", 5),
            },
            mtn=ProviderSettings(
                enabled=_env_bool("MTN_ENABLED", True),
                environment=os.environ.get("MTN_ENVIRONMENT", "sandbox"),
                api_url=os.environ.get("MTN_API_URL", "https://sandbox.momodeveloper.mtn.com"),
                currency=os.environ.get("MTN_CURRENCY", currency),
                api_user=os.environ.get("MTN_API_USER"),
                api_key=os.environ.get("MTN_API_KEY"),
                subscription_key=os.environ.get("MTN_SUBSCRIPTION_KEY"),
                callback_url=os.environ.get("MTN_CALLBACK_URL"),
                webhook_secret=os.environ.get("MTN_WEBHOOK_SECRET"),
                prefixes=_env_prefixes("MTN_PREFIXES", ("06",)),
                timeout=timeout,
            ),
            airtel=ProviderSettings(
                enabled=_env_bool("AIRTEL_ENABLED", True),
                environment=os.environ.get("AIRTEL_ENVIRONMENT", "sandbox"),
                api_url=os.environ.get("AIRTEL_API_URL", "https://openapiuat.airtel.africa"),
                currency=currency,
                country=os.environ.get("AIRTEL_COUNTRY", "CG"),
                client_id=os.environ.get("AIRTEL_CLIENT_ID"),
                client_secret=os.environ.get("AIRTEL_CLIENT_SECRET"),
                callback_url=os.environ.get("AIRTEL_CALLBACK_URL"),
                webhook_secret=os.environ.get("AIRTEL_WEBHOOK_SECRET"),
                prefixes=_env_prefixes("AIRTEL_PREFIXES", ("04", "05")),
                timeout=timeout,
            ),
        )


_current_settings: BillingSettings | None = None


def get_settings() -> BillingSettings:
    """Return the active settings, loading them from the environment once."""
    global _current_settings
    if _current_settings is None:
        _current_settings = BillingSettings.from_env()
    return _current_settings


def override_settings(**changes) -> BillingSettings:
    """Replace selected settings (useful for tests)."""
    global _current_settings
    _current_settings = replace(get_settings(), **changes)
    return _current_settings


def reset_settings() -> None:
    """Drop overrides; the next read reloads from the environment."""
    global _current_settings
    _current_settings = None
