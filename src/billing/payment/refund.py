"""Payment refund: RefundPayment.

Bookkeeping only; the money is returned through the provider's back office.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from billing.domain import billing
from billing.payment.payment import Payment
from billing.payment.queries import get_payment
from billing.subscription.queries import get_subscription
from billing.subscription.subscription import Subscription, SubscriptionStatus
from billing.utils.logging import get_logger

logger = get_logger(__name__)


@billing.command(part_of="Payment")
class RefundPayment:
    payment_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@billing.command_handler(part_of=Payment)
class RefundPaymentHandler:
    @handle(RefundPayment)
    def refund_payment(self, command):
        payment = get_payment(command.payment_id)
        payment.refund(command.reason)
        current_domain.repository_for(Payment).add(payment)

        subscription = get_subscription(payment.subscription_id)
        is_authority = str(subscription.authoritative_payment_id or "") == str(payment.id)
        if is_authority and subscription.status == SubscriptionStatus.PAID:
            subscription.mark_refunded(str(payment.id))
            current_domain.repository_for(Subscription).add(subscription)
        elif is_authority:
            logger.warning(
                "Refunded the authoritative payment of a subscription that is no longer paid",
                payment_id=str(payment.id),
                subscription_id=str(subscription.id),
                subscription_status=subscription.payment_status,
            )

        logger.info(
            "Payment refunded",
            payment_id=str(payment.id),
            subscription_id=str(subscription.id),
            reason=command.reason,
            subscription_status=subscription.payment_status,
        )
