"""Payment orchestration across the domain and the mobile-money providers.

Each step that changes state runs as its own command (one unit of work); the
provider calls happen between them, never inside a transaction. That way a
failed transfer is recorded before ProviderError reaches the caller, and a
payment is only ever left pending while a provider request is outstanding.
"""

import json
from dataclasses import dataclass
from uuid import uuid4


from billing.errors import InvalidInput, InvalidSignature, NotRetryable, ProviderError
from billing.gateway import get_gateway
from billing.gateway.port import GatewayUnavailable, PaymentProvider, ProviderStatus, TransferResult
from billing.payment.initiation import InitiatePayment, RecordTransferRejected, RecordTransferRequested
from billing.payment.payment import Payment, PaymentStatus
from billing.payment.queries import find_by_idempotency_key, find_by_reference, get_payment
from billing.payment.reconciliation import ReconcilePayment
from billing.payment.refund import RefundPayment
from billing.shared.phone import classify_provider, normalize_phone_number
from billing.subscription.queries import get_subscription
from billing.utils.commands import process
from billing.utils.logging import get_logger

logger = get_logger(__name__)

MAX_REASON_LENGTH = 500


@dataclass(frozen=True)
class InitiationResult:
    payment: Payment
    reference: str | None
    provider: PaymentProvider
    created: bool = True


@dataclass(frozen=True)
class PollResult:
    payment: Payment
    provider_status: str | None


def initiate_payment(
    subscription_id: str,
    phone_number: str,
    idempotency_key: str | None = None,
    retry_of: str | None = None,
    expected_version: int | None = None,
) -> InitiationResult:
    """Ask the payer's provider to collect the subscription's total price."""
    number = normalize_phone_number(phone_number)
    provider = classify_provider(number)
    gateway = get_gateway(provider)
    key = idempotency_key or f"pay-{uuid4().hex}"

    existing = find_by_idempotency_key(subscription_id, key)
    if existing is not None:
        return InitiationResult(
            payment=existing,
            reference=existing.transaction_reference,
            provider=PaymentProvider(existing.payment_method),
            created=False,
        )

    payment_id = process(
        InitiatePayment(
            subscription_id=subscription_id,
            phone_number=number.msisdn,
            payment_method=provider.value,
            idempotency_key=key,
            retry_of=retry_of,
            expected_version=expected_version,
        ),
    )
    payment = get_payment(payment_id)
    if payment.transaction_reference or payment.is_terminal:
        # Lost a race on the same idempotency key; the other caller owns the transfer
        return InitiationResult(payment, payment.transaction_reference, provider, created=False)

    subscription = get_subscription(subscription_id)
    log = logger.bind(payment_id=payment_id, subscription_id=str(subscription_id), provider=provider.value)
    log.info("Requesting transfer", amount=payment.amount, msisdn=number.msisdn)

    try:
        result = gateway.request_transfer(
            amount=payment.amount,
            currency=payment.currency,
            msisdn=number.msisdn,
            external_reference=str(payment.id),
            description=f"Abonnement {subscription.plan_type}",
        )
    except GatewayUnavailable as exc:
        # An unreachable provider fails the payment just like a rejection
        log.warning("Gateway unavailable during transfer request", error=str(exc))
        result = TransferResult(success=False, failure_reason=str(exc), raw={"error": str(exc)})

    if not result.success:
        reason = (result.failure_reason or f"{provider.label} rejected the payment request")[:MAX_REASON_LENGTH]
        process(RecordTransferRejected(payment_id=payment_id, reason=reason, raw=result.raw))
        log.warning("Transfer rejected", reason=reason)
        raise ProviderError({"payment": [reason]}, payload=result.raw, payment_id=payment_id)

    reference = result.reference or str(payment.id)
    process(
        RecordTransferRequested(
            payment_id=payment_id,
            reference=reference,
            external_id=result.external_id,
            raw=result.raw,
        ),
    )
    log.info("Transfer requested", reference=reference)
    return InitiationResult(get_payment(payment_id), reference, provider)


def reconcile_payment(
    payment_id: str,
    provider_status: ProviderStatus | str | None,
    transaction_id: str | None = None,
    raw: dict | None = None,
    failure_reason: str | None = None,
) -> Payment:
    """Apply a provider-reported status. Replays are no-ops."""
    if isinstance(provider_status, ProviderStatus):
        provider_status = provider_status.value

    applied = process(
        ReconcilePayment(
            payment_id=payment_id,
            provider_status=provider_status,
            transaction_id=transaction_id,
            failure_reason=failure_reason[:MAX_REASON_LENGTH] if failure_reason else None,
            raw=raw or {},
        ),
    )
    if applied == ProviderStatus.UNKNOWN.value:
        raise ProviderError(
            {"provider_status": [f"Unrecognised provider status: {provider_status!r}"]},
            payload=raw,
            payment_id=payment_id,
        )
    return get_payment(payment_id)


def poll_payment_status(payment_id: str) -> PollResult:
    """Ask the provider about a pending payment and reconcile the answer.

    Settled payments answer from storage. A transport failure leaves the
    payment untouched and reports ``provider_status=None``; poll again later.
    """
    payment = get_payment(payment_id)
    if payment.is_terminal:
        return PollResult(payment, payment.status)

    if not payment.transaction_reference:
        return PollResult(payment, None)

    gateway = get_gateway(payment.payment_method)
    try:
        status = gateway.query_status(payment.transaction_reference)
    except GatewayUnavailable as exc:
        logger.warning("Status poll failed", payment_id=str(payment.id), error=str(exc))
        return PollResult(payment, None)

    payment = reconcile_payment(
        payment_id=str(payment.id),
        provider_status=status.status,
        transaction_id=status.transaction_id,
        raw=status.raw,
        failure_reason=status.failure_reason,
    )
    return PollResult(payment, status.status.value)


def handle_provider_callback(provider: PaymentProvider | str, raw_body: bytes, signature: str | None) -> Payment | None:
    """Verify, parse and reconcile a provider callback.

    Returns the reconciled payment, or None when the reference is unknown.
    """
    gateway = get_gateway(provider)
    if not gateway.verify_callback_signature(raw_body, signature):
        logger.warning("Callback signature rejected", provider=gateway.provider.value)
        raise InvalidSignature({"signature": ["Callback signature verification failed"]})

    try:
        payload = json.loads(raw_body)
    except ValueError as exc:
        raise InvalidInput({"body": ["Callback body is not valid JSON"]}) from exc
    if not isinstance(payload, dict):
        raise InvalidInput({"body": ["Callback body must be a JSON object"]})

    result = gateway.parse_callback(payload)
    payment = find_by_reference(result.reference)
    if payment is None:
        logger.warning(
            "Callback for unknown payment reference",
            provider=gateway.provider.value,
            reference=result.reference,
        )
        return None

    logger.info(
        "Provider callback received",
        provider=gateway.provider.value,
        payment_id=str(payment.id),
        provider_status=result.provider_status,
    )
    return reconcile_payment(
        payment_id=str(payment.id),
        provider_status=result.status,
        transaction_id=result.transaction_id,
        raw=result.raw,
        failure_reason=result.failure_reason,
    )


def retry_payment(failed_payment_id: str, phone_number: str, idempotency_key: str | None = None) -> InitiationResult:
    """Open a new payment for the subscription of a failed one. The failed payment stays as is."""
    failed = get_payment(failed_payment_id)
    if failed.state != PaymentStatus.FAILED:
        raise NotRetryable({"status": [f"Only failed payments can be retried (payment is {failed.status})"]})

    return initiate_payment(
        subscription_id=str(failed.subscription_id),
        phone_number=phone_number,
        idempotency_key=idempotency_key or f"retry-{failed.id}-{uuid4().hex[:8]}",
        retry_of=str(failed.id),
    )


def refund_payment(payment_id: str, reason: str) -> Payment:
    if not reason or len(reason) > MAX_REASON_LENGTH:
        raise InvalidInput({"reason": [f"A refund reason of 1 to {MAX_REASON_LENGTH} characters is required"]})
    process(RefundPayment(payment_id=payment_id, reason=reason))
    return get_payment(payment_id)
