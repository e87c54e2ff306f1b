"""Configurable fake mobile-money gateway for development and testing.

Simulates a provider without any external calls. Behaviour is configured at
runtime: transfers succeed or fail, and the status reported for a reference
can be set to drive polling. Callbacks use the same body shape as the status
query (``reference``, ``status``, ``transaction_id``, ``reason``) and are
signed with ``FakeMobileMoneyGateway.SECRET``.
"""

from uuid import uuid4

from billing.gateway.port import (
    GatewayUnavailable,
    MobileMoneyGateway,
    PaymentProvider,
    ProviderStatus,
    StatusResult,
    TransferResult,
)
from billing.gateway.signing import verify_signature


class FakeMobileMoneyGateway(MobileMoneyGateway):
    """Configurable fake mobile-money gateway."""

    SECRET = "fake-webhook-secret"

    def __init__(self, provider: PaymentProvider = PaymentProvider.MTN_MOBILE_MONEY) -> None:
        self.provider = provider
        self.should_succeed: bool = True
        self.failure_reason: str = "Payer declined the request"
        self.default_status: ProviderStatus = ProviderStatus.PENDING
        self.unavailable: bool = False
        self.statuses: dict[str, ProviderStatus] = {}
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Payer declined the request",
        default_status: ProviderStatus = ProviderStatus.PENDING,
        unavailable: bool = False,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.default_status = default_status
        self.unavailable = unavailable

    def set_status(self, reference: str, status: ProviderStatus) -> None:
        """Set what ``query_status`` reports for one reference."""
        self.statuses[reference] = status

    def request_transfer(
        self,
        amount: int,
        currency: str,
        msisdn: str,
        external_reference: str,
        description: str,
    ) -> TransferResult:
        self.calls.append(
            {
                "method": "request_transfer",
                "amount": amount,
                "currency": currency,
                "msisdn": msisdn,
                "external_reference": external_reference,
                "description": description,
            }
        )

        if self.should_succeed:
            return TransferResult(
                success=True,
                reference=f"fake_ref_{uuid4().hex[:12]}",
                external_id=external_reference,
                raw={"status": "accepted"},
            )
        return TransferResult(
            success=False,
            external_id=external_reference,
            failure_reason=self.failure_reason,
            raw={"status": "rejected", "message": self.failure_reason},
        )

    def query_status(self, reference: str) -> StatusResult:
        self.calls.append({"method": "query_status", "reference": reference})

        if self.unavailable:
            raise GatewayUnavailable("Fake gateway is unavailable")

        status = self.statuses.get(reference, self.default_status)
        return StatusResult(
            status=status,
            reference=reference,
            transaction_id=f"fake_txn_{reference}" if status == ProviderStatus.COMPLETED else None,
            provider_status=status.value,
            failure_reason=self.failure_reason if status == ProviderStatus.FAILED else None,
            raw={"reference": reference, "status": status.value},
        )

    def parse_callback(self, payload: dict) -> StatusResult:
        raw_status = str(payload.get("status") or "").lower()
        try:
            status = ProviderStatus(raw_status)
        except ValueError:
            status = ProviderStatus.UNKNOWN

        return StatusResult(
            status=status,
            reference=payload.get("reference"),
            transaction_id=payload.get("transaction_id"),
            provider_status=raw_status or None,
            failure_reason=payload.get("reason"),
            raw=payload,
        )

    def verify_callback_signature(self, raw_body: bytes, signature: str | None) -> bool:
        return verify_signature(self.SECRET, raw_body, signature)
