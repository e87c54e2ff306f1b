"""Payment reconciliation: apply a provider-reported status to a payment and its subscription.

Keyed on (payment_id, provider_status): replaying the same report changes
nothing, so polls and callbacks can race freely.
"""

from protean import handle
from protean.fields import Dict, Identifier, String
from protean.utils.globals import current_domain

from billing.domain import billing
from billing.gateway.port import ProviderStatus
from billing.payment.payment import Payment, PaymentStatus
from billing.payment.queries import get_payment
from billing.subscription.queries import get_subscription
from billing.subscription.subscription import Subscription
from billing.utils.logging import get_logger

logger = get_logger(__name__)


@billing.command(part_of="Payment")
class ReconcilePayment:
    payment_id = Identifier(required=True)
    provider_status = String(max_length=50)
    transaction_id = String(max_length=255)
    failure_reason = String(max_length=500)
    raw = Dict()


def _provider_status(value: str | None) -> ProviderStatus:
    try:
        return ProviderStatus((value or "").lower())
    except ValueError:
        return ProviderStatus.UNKNOWN


@billing.command_handler(part_of=Payment)
class ReconciliationHandler:
    @handle(ReconcilePayment)
    def reconcile(self, command):
        """Returns the normalised provider status that was applied."""
        payment = get_payment(command.payment_id)
        status = _provider_status(command.provider_status)

        if status == ProviderStatus.PENDING:
            return status.value

        if status == ProviderStatus.UNKNOWN:
            payment.flag_for_review(
                command.provider_status,
                note="Unrecognised provider status",
                raw=command.raw,
            )
            current_domain.repository_for(Payment).add(payment)
            logger.error(
                "Unrecognised provider status",
                payment_id=str(payment.id),
                provider_status=command.provider_status,
            )
            return status.value

        if status == ProviderStatus.COMPLETED:
            self._complete(payment, command)
        else:
            self._fail(payment, command)
        return status.value

    def _complete(self, payment, command):
        if payment.state in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
            logger.debug("Completion replay ignored", payment_id=str(payment.id))
            return

        if payment.state == PaymentStatus.FAILED:
            # Payments never leave FAILED; keep the report for a human
            payment.flag_for_review(
                command.provider_status,
                note="Provider reported completion for a failed payment",
                raw=command.raw,
            )
            current_domain.repository_for(Payment).add(payment)
            logger.error("Completion reported for failed payment", payment_id=str(payment.id))
            return

        subscription = get_subscription(payment.subscription_id)
        if subscription.apply_completed_payment(payment):
            payment.complete(transaction_id=command.transaction_id, raw=command.raw)
            current_domain.repository_for(Subscription).add(subscription)
            logger.info(
                "Payment completed",
                payment_id=str(payment.id),
                subscription_id=str(subscription.id),
                amount=payment.amount,
                expires_at=str(subscription.expires_at),
            )
        elif subscription.is_awaiting_payment:
            # Repriced after this payment was opened; the subscription waits for a new one
            payment.complete(
                transaction_id=command.transaction_id,
                raw=command.raw,
                applied=False,
                expected_amount=subscription.total_price,
            )
            logger.warning(
                "Payment no longer covers the subscription; manual refund required",
                payment_id=str(payment.id),
                subscription_id=str(subscription.id),
                amount=payment.amount,
                total_price=subscription.total_price,
            )
        else:
            payment.complete(
                transaction_id=command.transaction_id,
                raw=command.raw,
                applied=False,
                duplicate_of=subscription.authoritative_payment_id,
            )
            logger.warning(
                "Duplicate payment completed; manual refund required",
                payment_id=str(payment.id),
                subscription_id=str(subscription.id),
                authoritative_payment_id=subscription.authoritative_payment_id,
                subscription_status=subscription.payment_status,
            )

        current_domain.repository_for(Payment).add(payment)

    def _fail(self, payment, command):
        if payment.state != PaymentStatus.PENDING:
            logger.debug(
                "Failure report ignored",
                payment_id=str(payment.id),
                status=payment.status,
            )
            return

        payment.fail(command.failure_reason or "Payment declined by provider", raw=command.raw)
        current_domain.repository_for(Payment).add(payment)

        subscription = get_subscription(payment.subscription_id)
        if subscription.apply_failed_payment(payment):
            current_domain.repository_for(Subscription).add(subscription)

        logger.warning(
            "Payment failed",
            payment_id=str(payment.id),
            subscription_id=str(payment.subscription_id),
            reason=payment.failure_reason,
            subscription_status=subscription.payment_status,
        )
