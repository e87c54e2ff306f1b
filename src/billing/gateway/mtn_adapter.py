"""MTN Mobile Money gateway adapter (Collection API, request-to-pay).

Flow:
- POST /collection/token/ with the API user/key (basic auth) for a bearer token
- POST /collection/v1_0/requesttopay with a caller-chosen X-Reference-Id
- GET  /collection/v1_0/requesttopay/{reference} for the transfer status
- MTN calls back with the same body as the status endpoint

The X-Reference-Id is derived from the external reference, so re-sending the
same request is deduplicated by MTN (409 RESOURCE_ALREADY_EXIST).
"""

import time
import uuid

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

_REFERENCE_NAMESPACE = uuid.UUID("5b0f7f2e-8f3c-4d8e-9a55-0f6f6a2b9c11")

_STATUS_MAP = {
    "SUCCESSFUL": ProviderStatus.COMPLETED,
    "FAILED": ProviderStatus.FAILED,
    "REJECTED": ProviderStatus.FAILED,
    "TIMEOUT": ProviderStatus.FAILED,
    "PENDING": ProviderStatus.PENDING,
}


def reference_for(external_reference: str) -> str:
    """Deterministic X-Reference-Id (UUID) for an external reference."""
    return str(uuid.uuid5(_REFERENCE_NAMESPACE, external_reference))


class MtnMomoGateway(MobileMoneyGateway):
    provider = PaymentProvider.MTN_MOBILE_MONEY

    def __init__(self, settings: ProviderSettings, client: httpx.Client | None = None) -> None:
        self.settings = settings
        self.client = client or httpx.Client(base_url=settings.api_url, timeout=settings.timeout)
        self._token: str | None = None
        self._token_expires_at: float = 0.0

    # -------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------
    def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        self._token, expires_in = fetch_token(
            self.client,
            "MTN",
            default_ttl=3600,
            url="/collection/token/",
            auth=(self.settings.api_user or "", self.settings.api_key or ""),
            headers={"Ocp-Apim-Subscription-Key": self.settings.subscription_key or ""},
        )
        # Refresh a minute early
        self._token_expires_at = time.monotonic() + max(expires_in - 60, 0)
        return self._token

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._access_token()}",
            "X-Target-Environment": self.settings.environment,
            "Ocp-Apim-Subscription-Key": self.settings.subscription_key or "",
        }

    # -------------------------------------------------------------------
    # Port implementation
    # -------------------------------------------------------------------
    def request_transfer(
        self,
        amount: int,
        currency: str,
        msisdn: str,
        external_reference: str,
        description: str,
    ) -> TransferResult:
        reference = reference_for(external_reference)
        body = {
            "amount": str(amount),
            "currency": currency,
            "externalId": external_reference,
            "payer": {"partyIdType": "MSISDN", "partyId": msisdn},
            "payerMessage": description,
            "payeeNote": external_reference,
        }

        try:
            headers = self._headers()
            headers["X-Reference-Id"] = reference
            if self.settings.callback_url:
                headers["X-Callback-Url"] = self.settings.callback_url
            response = self.client.post("/collection/v1_0/requesttopay", json=body, headers=headers)
        except (httpx.HTTPError, GatewayUnavailable) as exc:
            logger.error("MTN request-to-pay transport error", reference=reference, error=str(exc))
            return TransferResult(
                success=False,
                reference=reference,
                external_id=external_reference,
                failure_reason=f"Connection error: {exc}",
                raw={"error": str(exc), "error_type": type(exc).__name__},
            )

        if response.status_code in (200, 201, 202) or response.status_code == 409:
            logger.info(
                "MTN request-to-pay accepted",
                reference=reference,
                external_id=external_reference,
                http_status=response.status_code,
            )
            return TransferResult(
                success=True,
                reference=reference,
                external_id=external_reference,
                raw={"http_status": response.status_code},
            )

        raw = json_or_text(response)
        logger.error(
            "MTN request-to-pay rejected",
            reference=reference,
            http_status=response.status_code,
            response=raw,
        )
        return TransferResult(
            success=False,
            reference=reference,
            external_id=external_reference,
            failure_reason=raw.get("message") or f"MTN rejected the request ({response.status_code})",
            raw=raw,
        )

    def query_status(self, reference: str) -> StatusResult:
        try:
            response = self.client.get(f"/collection/v1_0/requesttopay/{reference}", headers=self._headers())
        except httpx.HTTPError as exc:
            raise GatewayUnavailable(f"MTN status query failed: {exc}") from exc

        if response.status_code >= 500:
            raise GatewayUnavailable(f"MTN status query failed with HTTP {response.status_code}")

        raw = json_or_text(response)
        if response.status_code != 200:
            return StatusResult(status=ProviderStatus.UNKNOWN, reference=reference, raw=raw)

        result = self._to_status(raw)
        return StatusResult(
            status=result.status,
            reference=reference,
            transaction_id=result.transaction_id,
            provider_status=result.provider_status,
            failure_reason=result.failure_reason,
            raw=raw,
        )

    def parse_callback(self, payload: dict) -> StatusResult:
        return self._to_status(payload)

    def verify_callback_signature(self, raw_body: bytes, signature: str | None) -> bool:
        return verify_signature(self.settings.webhook_secret, raw_body, signature)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @staticmethod
    def _to_status(payload: dict) -> StatusResult:
        provider_status = str(payload.get("status") or "").upper()
        reason = payload.get("reason")
        if isinstance(reason, dict):
            reason = reason.get("message") or reason.get("code")

        reference = payload.get("referenceId")
        if reference is None and payload.get("externalId"):
            reference = reference_for(str(payload["externalId"]))

        return StatusResult(
            status=_STATUS_MAP.get(provider_status, ProviderStatus.UNKNOWN),
            reference=reference,
            transaction_id=payload.get("financialTransactionId"),
            provider_status=provider_status or None,
            failure_reason=reason,
            raw=payload,
        )
