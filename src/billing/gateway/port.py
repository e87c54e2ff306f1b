"""Mobile-money gateway port (abstract interface).

Defines the contract every provider adapter implements. The orchestrator only
talks to this interface; the provider is picked from the payer's phone number.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class PaymentProvider(Enum):
    MTN_MOBILE_MONEY = "mtn_mobile_money"
    AIRTEL_MONEY = "airtel_money"

    @property
    def label(self) -> str:
        return {
            PaymentProvider.MTN_MOBILE_MONEY: "MTN Mobile Money",
            PaymentProvider.AIRTEL_MONEY: "Airtel Money",
        }[self]

    @classmethod
    def from_alias(cls, value: str) -> "PaymentProvider":
        """Accept the enum value or the short webhook path name ("mtn", "airtel")."""
        aliases = {"mtn": cls.MTN_MOBILE_MONEY, "airtel": cls.AIRTEL_MONEY}
        normalized = (value or "").strip().lower()
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)


class ProviderStatus(Enum):
    """Provider outcome normalised across providers."""

    COMPLETED = "completed"
    FAILED = "failed"
    PENDING = "pending"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TransferResult:
    """Result of a request-to-pay call."""

    success: bool
    reference: str | None = None
    external_id: str | None = None
    failure_reason: str | None = None
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class StatusResult:
    """Provider view of a transfer, from a status query or a callback."""

    status: ProviderStatus
    reference: str | None = None
    transaction_id: str | None = None
    provider_status: str | None = None
    failure_reason: str | None = None
    raw: dict = field(default_factory=dict)


class GatewayUnavailable(Exception):
    """Transport-level failure talking to a provider (timeout, DNS, 5xx)."""


class MobileMoneyGateway(ABC):
    """Abstract mobile-money gateway interface."""

    provider: PaymentProvider

    @abstractmethod
    def request_transfer(
        self,
        amount: int,
        currency: str,
        msisdn: str,
        external_reference: str,
        description: str,
    ) -> TransferResult:
        """Ask the provider to collect ``amount`` from ``msisdn``."""
        ...

    @abstractmethod
    def query_status(self, reference: str) -> StatusResult:
        """Fetch the provider's current status for a transfer.

        Raises GatewayUnavailable on transport errors.
        """
        ...

    @abstractmethod
    def parse_callback(self, payload: dict) -> StatusResult:
        """Translate a provider callback body into a StatusResult."""
        ...

    @abstractmethod
    def verify_callback_signature(self, raw_body: bytes, signature: str | None) -> bool:
        """Verify that a callback body is authentically from the provider."""
        ...
