"""Tests for the MTN Mobile Money adapter against a mocked Collection API."""

import json

import httpx
import pytest
from billing.config import ProviderSettings
from billing.gateway.mtn_adapter import MtnMomoGateway, reference_for
from billing.gateway.port import GatewayUnavailable, ProviderStatus
from billing.gateway.signing import compute_signature

SETTINGS = ProviderSettings(
    api_url="https://mtn.test",
    api_user="api-user",
    api_key="api-key",
    subscription_key="sub-key",
    callback_url="https://billing.test/webhooks/mtn",
    webhook_secret="mtn-secret",
)


class FakeMtnApi:
    """Records requests and answers them from a canned table."""

    def __init__(
        self,
        transfer_status=202,
        transfer_body=None,
        status_code=200,
        status_body=None,
        token_status=200,
        token_body=None,
    ):
        self.transfer_status = transfer_status
        self.transfer_body = transfer_body
        self.status_code = status_code
        self.status_body = status_body or {"status": "PENDING"}
        self.token_status = token_status
        self.token_body = {"access_token": "token-1", "expires_in": 3600} if token_body is None else token_body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/collection/token/":
            return httpx.Response(self.token_status, json=self.token_body)
        if request.url.path == "/collection/v1_0/requesttopay":
            if self.transfer_body is None:
                return httpx.Response(self.transfer_status)
            return httpx.Response(self.transfer_status, json=self.transfer_body)
        return httpx.Response(self.status_code, json=self.status_body)


def _gateway(api):
    client = httpx.Client(base_url=SETTINGS.api_url, transport=httpx.MockTransport(api))
    return MtnMomoGateway(SETTINGS, client=client)


class TestRequestTransfer:
    def test_accepted_request(self):
        api = FakeMtnApi()
        result = _gateway(api).request_transfer(11500, "XAF", "242061234567", "pay-1", "Abonnement pro")

        assert result.success is True
        assert result.reference == reference_for("pay-1")
        assert result.external_id == "pay-1"

        token_request, transfer_request = api.requests
        assert token_request.headers["Authorization"].startswith("Basic ")
        assert transfer_request.headers["Authorization"] == "Bearer token-1"
        assert transfer_request.headers["X-Reference-Id"] == reference_for("pay-1")
        assert transfer_request.headers["X-Callback-Url"] == "https://billing.test/webhooks/mtn"
        assert transfer_request.headers["X-Target-Environment"] == "sandbox"

        body = json.loads(transfer_request.content)
        assert body["amount"] == "11500"
        assert body["externalId"] == "pay-1"
        assert body["payer"] == {"partyIdType": "MSISDN", "partyId": "242061234567"}

    def test_duplicate_reference_is_accepted(self):
        result = _gateway(FakeMtnApi(transfer_status=409)).request_transfer(
            100, "XAF", "242061234567", "pay-1", "Abonnement pro"
        )
        assert result.success is True

    def test_token_is_reused(self):
        api = FakeMtnApi()
        gateway = _gateway(api)
        gateway.request_transfer(100, "XAF", "242061234567", "pay-1", "x")
        gateway.request_transfer(100, "XAF", "242061234567", "pay-2", "x")

        token_requests = [r for r in api.requests if r.url.path == "/collection/token/"]
        assert len(token_requests) == 1

    def test_rejected_request(self):
        api = FakeMtnApi(transfer_status=400, transfer_body={"code": "PAYER_NOT_FOUND", "message": "Payer not found"})
        result = _gateway(api).request_transfer(100, "XAF", "242061234567", "pay-1", "x")

        assert result.success is False
        assert result.failure_reason == "Payer not found"
        assert result.raw["code"] == "PAYER_NOT_FOUND"
        assert result.raw["http_status"] == 400

    def test_rejection_without_message(self):
        result = _gateway(FakeMtnApi(transfer_status=500)).request_transfer(100, "XAF", "242061234567", "pay-1", "x")
        assert result.success is False
        assert "500" in result.failure_reason

    def test_transport_error_is_a_rejection(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = _gateway(handler).request_transfer(100, "XAF", "242061234567", "pay-1", "x")

        assert result.success is False
        assert "connection refused" in result.failure_reason
        assert result.raw["error_type"] == "ConnectError"


class TestQueryStatus:
    @pytest.mark.parametrize(
        "mtn_status, expected",
        [
            ("SUCCESSFUL", ProviderStatus.COMPLETED),
            ("FAILED", ProviderStatus.FAILED),
            ("REJECTED", ProviderStatus.FAILED),
            ("TIMEOUT", ProviderStatus.FAILED),
            ("PENDING", ProviderStatus.PENDING),
            ("ONGOING", ProviderStatus.UNKNOWN),
        ],
    )
    def test_status_mapping(self, mtn_status, expected):
        result = _gateway(FakeMtnApi(status_body={"status": mtn_status})).query_status("ref-1")
        assert result.status == expected
        assert result.provider_status == mtn_status

    def test_successful_status_carries_transaction_id(self):
        api = FakeMtnApi(status_body={"status": "SUCCESSFUL", "financialTransactionId": "987654"})
        result = _gateway(api).query_status("ref-1")

        assert result.reference == "ref-1"
        assert result.transaction_id == "987654"
        assert api.requests[-1].url.path == "/collection/v1_0/requesttopay/ref-1"

    def test_failure_reason(self):
        api = FakeMtnApi(status_body={"status": "FAILED", "reason": "NOT_ENOUGH_FUNDS"})
        assert _gateway(api).query_status("ref-1").failure_reason == "NOT_ENOUGH_FUNDS"

    def test_not_found_is_unknown(self):
        api = FakeMtnApi(status_code=404, status_body={"code": "RESOURCE_NOT_FOUND"})
        assert _gateway(api).query_status("ref-1").status == ProviderStatus.UNKNOWN

    def test_server_error_raises(self):
        with pytest.raises(GatewayUnavailable):
            _gateway(FakeMtnApi(status_code=503)).query_status("ref-1")

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(GatewayUnavailable):
            _gateway(handler).query_status("ref-1")


class TestAccessToken:
    @pytest.mark.parametrize(
        ("token_status", "token_body"),
        [(200, {}), (200, {"token_type": "Bearer"}), (200, ["token-1"]), (401, {"error": "invalid_client"})],
    )
    def test_unusable_token_response_makes_status_query_unavailable(self, token_status, token_body):
        gateway = _gateway(FakeMtnApi(token_status=token_status, token_body=token_body))
        with pytest.raises(GatewayUnavailable):
            gateway.query_status("ref-1")

    def test_missing_token_is_a_transfer_rejection(self):
        api = FakeMtnApi(token_body={})
        result = _gateway(api).request_transfer(100, "XAF", "242061234567", "pay-1", "x")

        assert result.success is False
        assert "access_token" in result.failure_reason
        assert [request.url.path for request in api.requests] == ["/collection/token/"]

    def test_unreadable_expiry_falls_back_to_default(self):
        api = FakeMtnApi(token_body={"access_token": "token-2", "expires_in": "soon"})
        gateway = _gateway(api)
        gateway.query_status("ref-1")
        gateway.query_status("ref-2")

        token_calls = [r for r in api.requests if r.url.path == "/collection/token/"]
        assert len(token_calls) == 1


class TestCallbacks:
    def test_parse_callback(self):
        gateway = _gateway(FakeMtnApi())
        result = gateway.parse_callback(
            {"referenceId": "ref-1", "status": "SUCCESSFUL", "financialTransactionId": "42", "externalId": "pay-1"}
        )
        assert result.status == ProviderStatus.COMPLETED
        assert result.reference == "ref-1"
        assert result.transaction_id == "42"

    def test_callback_reference_derived_from_external_id(self):
        result = _gateway(FakeMtnApi()).parse_callback({"externalId": "pay-1", "status": "FAILED"})
        assert result.reference == reference_for("pay-1")
        assert result.status == ProviderStatus.FAILED

    def test_reason_object(self):
        result = _gateway(FakeMtnApi()).parse_callback(
            {"referenceId": "ref-1", "status": "FAILED", "reason": {"code": "APPROVAL_REJECTED", "message": "Declined"}}
        )
        assert result.failure_reason == "Declined"

    def test_signature(self):
        gateway = _gateway(FakeMtnApi())
        body = b'{"referenceId": "ref-1", "status": "SUCCESSFUL"}'

        assert gateway.verify_callback_signature(body, compute_signature("mtn-secret", body)) is True
        assert gateway.verify_callback_signature(body, compute_signature("other", body)) is False
        assert gateway.verify_callback_signature(body, None) is False

    def test_missing_secret_fails_closed(self):
        client = httpx.Client(base_url="https://mtn.test", transport=httpx.MockTransport(FakeMtnApi()))
        gateway = MtnMomoGateway(ProviderSettings(api_url="https://mtn.test"), client=client)
        body = b"{}"

        assert gateway.verify_callback_signature(body, compute_signature("", body)) is False


class TestReference:
    def test_reference_is_deterministic_uuid(self):
        assert reference_for("pay-1") == reference_for("pay-1")
        assert reference_for("pay-1") != reference_for("pay-2")
        assert len(reference_for("pay-1")) == 36
