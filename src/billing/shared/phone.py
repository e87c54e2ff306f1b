"""Payer phone numbers: normalisation and provider classification.

Numbers in the Republic of Congo are nine digits (``06 123 45 67``) behind
the ``242`` country code. Payers type them in every shape imaginable, so all
of these normalise to the same canonical ``242061234567``:

    +242 06 123 45 67, 00242061234567, 242061234567, 061234567, 61234567
"""

import re
from dataclasses import dataclass

from billing.config import BillingSettings, get_settings
from billing.errors import InvalidInput, UnsupportedProvider
from billing.gateway.port import PaymentProvider

_SEPARATORS = re.compile(r"[\s\-().]")


@dataclass(frozen=True)
class MobileNumber:
    country_code: str
    national_number: str

    @property
    def msisdn(self) -> str:
        """Canonical international form, without the leading '+'."""
        return f"{self.country_code}{self.national_number}"

    @property
    def prefix(self) -> str:
        return self.national_number[:2]

    def __str__(self) -> str:
        return self.msisdn


def normalize_phone_number(raw: str, settings: BillingSettings | None = None) -> MobileNumber:
    settings = settings or get_settings()
    country_code = settings.country_code
    length = settings.national_number_length

    if not isinstance(raw, str) or not raw.strip():
        raise InvalidInput({"phone_number": ["Phone number is required"]})

    digits = _SEPARATORS.sub("", raw.strip())
    if digits.startswith("+"):
        digits = digits[1:]
    elif digits.startswith("00"):
        digits = digits[2:]

    if not digits.isdigit():
        raise InvalidInput({"phone_number": [f"Invalid phone number: {raw!r}"]})

    if digits.startswith(country_code) and len(digits) - len(country_code) in (length, length - 1):
        digits = digits[len(country_code) :]

    if len(digits) == length - 1 and not digits.startswith("0"):
        digits = f"0{digits}"

    if len(digits) != length or not digits.startswith("0"):
        raise InvalidInput({"phone_number": [f"Invalid phone number: {raw!r}"]})

    return MobileNumber(country_code=country_code, national_number=digits)


def classify_provider(number: MobileNumber, settings: BillingSettings | None = None) -> PaymentProvider:
    """Pick the mobile-money provider from the national number's prefix."""
    settings = settings or get_settings()

    candidates = (
        (PaymentProvider.MTN_MOBILE_MONEY, settings.mtn),
        (PaymentProvider.AIRTEL_MONEY, settings.airtel),
    )
    for provider, provider_settings in candidates:
        if number.prefix in provider_settings.prefixes:
            if not provider_settings.enabled:
                raise UnsupportedProvider(
                    {"phone_number": [f"{provider.label} payments are currently disabled"]}
                )
            return provider

    raise UnsupportedProvider(
        {"phone_number": [f"No mobile-money provider serves numbers starting with {number.prefix}"]}
    )
