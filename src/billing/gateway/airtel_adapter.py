"""Airtel Money gateway adapter (Airtel Africa OpenAPI, merchant collections).

Flow:
- POST /auth/oauth2/token (client credentials) for a bearer token
- POST /merchant/v1/payments/ with our external reference as transaction id
- GET  /standard/v1/payments/{id} for the transaction status
- Airtel calls back with ``{"transaction": {"id", "status_code", ...}}``

Airtel keys transactions on the id we send, so the external reference doubles
as the provider reference.
"""

import time

import httpx
import structlog

from billing.config import ProviderSettings
from billing.gateway.http import fetch_token, json_or_text
from billing.gateway.port import (
    GatewayUnavailable,
    MobileMoneyGateway,
    PaymentProvider,
    ProviderStatus,
    StatusResult,
    TransferResult,
)
from billing.gateway.signing import verify_signature

logger = structlog.get_logger(__name__)

_STATUS_MAP = {
    "TS": ProviderStatus.COMPLETED,
    "TF": ProviderStatus.FAILED,
    "TE": ProviderStatus.FAILED,
    "TIP": ProviderStatus.PENDING,
    "TA": ProviderStatus.PENDING,
}


class AirtelMoneyGateway(MobileMoneyGateway):
    provider = PaymentProvider.AIRTEL_MONEY

    def __init__(
        self,
        settings: ProviderSettings,
        country_code: str = "242",
        client: httpx.Client | None = None,
    ) -> None:
        self.settings = settings
        self.country_code = country_code
        self.client = client or httpx.Client(base_url=settings.api_url, timeout=settings.timeout)
        self._token: str | None = None
        self._token_expires_at: float = 0.0

    def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        self._token, expires_in = fetch_token(
            self.client,
            "Airtel",
            default_ttl=180,
            url="/auth/oauth2/token",
            json={
                "client_id": self.settings.client_id or "",
                "client_secret": self.settings.client_secret or "",
                "grant_type": "client_credentials",
            },
        )
        self._token_expires_at = time.monotonic() + max(expires_in - 30, 0)
        return self._token

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._access_token()}",
            "X-Country": self.settings.country,
            "X-Currency": self.settings.currency,
            "Accept": "*/*",
        }

    def _national(self, msisdn: str) -> str:
        # Airtel expects the subscriber number without the country code
        if msisdn.startswith(self.country_code):
            return msisdn[len(self.country_code) :]
        return msisdn

    def request_transfer(
        self,
        amount: int,
        currency: str,
        msisdn: str,
        external_reference: str,
        description: str,
    ) -> TransferResult:
        body = {
            "reference": description,
            "subscriber": {
                "country": self.settings.country,
                "currency": currency,
                "msisdn": self._national(msisdn),
            },
            "transaction": {
                "amount": amount,
                "country": self.settings.country,
                "currency": currency,
                "id": external_reference,
            },
        }

        try:
            response = self.client.post("/merchant/v1/payments/", json=body, headers=self._headers())
        except (httpx.HTTPError, GatewayUnavailable) as exc:
            logger.error("Airtel payment transport error", reference=external_reference, error=str(exc))
            return TransferResult(
                success=False,
                reference=external_reference,
                external_id=external_reference,
                failure_reason=f"Connection error: {exc}",
                raw={"error": str(exc), "error_type": type(exc).__name__},
            )

        raw = json_or_text(response)
        status_block = raw.get("status") if isinstance(raw.get("status"), dict) else {}
        if response.is_success and status_block.get("success", True):
            transaction = (raw.get("data") or {}).get("transaction") or {}
            logger.info(
                "Airtel payment accepted",
                reference=external_reference,
                airtel_status=transaction.get("status"),
            )
            return TransferResult(
                success=True,
                reference=str(transaction.get("id") or external_reference),
                external_id=external_reference,
                raw=raw,
            )

        logger.error(
            "Airtel payment rejected",
            reference=external_reference,
            http_status=response.status_code,
            response=raw,
        )
        return TransferResult(
            success=False,
            reference=external_reference,
            external_id=external_reference,
            failure_reason=status_block.get("message") or f"Airtel rejected the request ({response.status_code})",
            raw=raw,
        )

    def query_status(self, reference: str) -> StatusResult:
        try:
            response = self.client.get(f"/standard/v1/payments/{reference}", headers=self._headers())
        except httpx.HTTPError as exc:
            raise GatewayUnavailable(f"Airtel status query failed: {exc}") from exc

        if response.status_code >= 500:
            raise GatewayUnavailable(f"Airtel status query failed with HTTP {response.status_code}")

        raw = json_or_text(response)
        if not response.is_success:
            return StatusResult(status=ProviderStatus.UNKNOWN, reference=reference, raw=raw)

        transaction = (raw.get("data") or {}).get("transaction") or {}
        result = self._to_status(transaction, raw)
        return StatusResult(
            status=result.status,
            reference=reference,
            transaction_id=result.transaction_id,
            provider_status=result.provider_status,
            failure_reason=result.failure_reason,
            raw=raw,
        )

    def parse_callback(self, payload: dict) -> StatusResult:
        return self._to_status(payload.get("transaction") or {}, payload)

    def verify_callback_signature(self, raw_body: bytes, signature: str | None) -> bool:
        return verify_signature(self.settings.webhook_secret, raw_body, signature)

    @staticmethod
    def _to_status(transaction: dict, raw: dict) -> StatusResult:
        provider_status = str(transaction.get("status_code") or transaction.get("status") or "").upper()
        status = _STATUS_MAP.get(provider_status, ProviderStatus.UNKNOWN)
        return StatusResult(
            status=status,
            reference=transaction.get("id"),
            transaction_id=transaction.get("airtel_money_id"),
            provider_status=provider_status or None,
            failure_reason=transaction.get("message") if status == ProviderStatus.FAILED else None,
            raw=raw,
        )
