"""Payment initiation: InitiatePayment, RecordTransferRequested, RecordTransferRejected.

Opening the payment and recording the provider's answer are separate units of
work: the provider call happens in between, outside any transaction, so a
rejected transfer is persisted before the error reaches the caller.
"""

from protean import handle
from protean.fields import Dict, Identifier, Integer, String
from protean.utils.globals import current_domain

from billing.config import get_settings
from billing.domain import billing
from billing.payment.payment import Payment
from billing.payment.queries import find_by_idempotency_key, get_payment
from billing.subscription.queries import get_subscription
from billing.subscription.subscription import Subscription
from billing.utils.logging import get_logger

logger = get_logger(__name__)


@billing.command(part_of="Payment")
class InitiatePayment:
    """Open a pending payment for a subscription's current total price."""

    subscription_id = Identifier(required=True)
    phone_number = String(required=True, max_length=20)
    payment_method = String(required=True, max_length=50)
    idempotency_key = String(required=True, max_length=255)
    retry_of = Identifier()
    expected_version = Integer()


@billing.command(part_of="Payment")
class RecordTransferRequested:
    payment_id = Identifier(required=True)
    reference = String(required=True, max_length=255)
    external_id = String(max_length=255)
    raw = Dict()


@billing.command(part_of="Payment")
class RecordTransferRejected:
    payment_id = Identifier(required=True)
    reason = String(max_length=500)
    raw = Dict()


@billing.command_handler(part_of=Payment)
class PaymentInitiationHandler:
    @handle(InitiatePayment)
    def initiate_payment(self, command):
        existing = find_by_idempotency_key(command.subscription_id, command.idempotency_key)
        if existing is not None:
            logger.info(
                "Idempotent payment replay",
                payment_id=str(existing.id),
                subscription_id=str(command.subscription_id),
            )
            return str(existing.id)

        subscription = get_subscription(command.subscription_id)
        subscription.ensure_version(command.expected_version)
        subscription.await_payment(command.payment_method)

        payment = Payment.create(
            subscription_id=str(subscription.id),
            amount=subscription.total_price,
            currency=get_settings().currency,
            payment_method=command.payment_method,
            phone_number=command.phone_number,
            idempotency_key=command.idempotency_key,
            retry_of=command.retry_of,
        )
        current_domain.repository_for(Subscription).add(subscription)
        current_domain.repository_for(Payment).add(payment)

        logger.info(
            "Payment initiated",
            payment_id=str(payment.id),
            subscription_id=str(subscription.id),
            amount=payment.amount,
            payment_method=payment.payment_method,
            retry_of=command.retry_of,
        )
        return str(payment.id)

    @handle(RecordTransferRequested)
    def record_transfer_requested(self, command):
        payment = get_payment(command.payment_id)
        payment.record_transfer_requested(
            reference=command.reference,
            external_id=command.external_id,
            raw=command.raw,
        )
        current_domain.repository_for(Payment).add(payment)

    @handle(RecordTransferRejected)
    def record_transfer_rejected(self, command):
        payment = get_payment(command.payment_id)
        payment.fail(command.reason, raw=command.raw)
        current_domain.repository_for(Payment).add(payment)

        subscription = get_subscription(payment.subscription_id)
        if subscription.apply_failed_payment(payment):
            current_domain.repository_for(Subscription).add(subscription)

        logger.warning(
            "Payment transfer rejected",
            payment_id=str(payment.id),
            subscription_id=str(payment.subscription_id),
            reason=command.reason,
        )
