"""Payment confirmation side effect.

When a completed payment activates (or renews, or upgrades) a subscription,
the owner is told once. Delivery belongs to the notification service; this
module only hands it the facts through a sender port. The fake sender records
confirmations in memory and is the default outside production wiring.
"""

from abc import ABC, abstractmethod

from protean import handle

from billing.domain import billing
from billing.subscription.events import SubscriptionPaid
from billing.subscription.subscription import Subscription
from billing.utils.logging import get_logger

logger = get_logger(__name__)


class ConfirmationSender(ABC):
    @abstractmethod
    def send(self, owner_id: str, subscription_id: str, payment_id: str, context: dict) -> None: ...


class FakeConfirmationSender(ConfirmationSender):
    """Records confirmations in memory for test assertions."""

    def __init__(self):
        self.sent: list[dict] = []

    def send(self, owner_id: str, subscription_id: str, payment_id: str, context: dict) -> None:
        self.sent.append(
            {
                "owner_id": owner_id,
                "subscription_id": subscription_id,
                "payment_id": payment_id,
                **context,
            }
        )

    def reset(self):
        self.sent.clear()


_sender: ConfirmationSender | None = None


def get_confirmation_sender() -> ConfirmationSender:
    global _sender
    if _sender is None:
        _sender = FakeConfirmationSender()
    return _sender


def set_confirmation_sender(sender: ConfirmationSender) -> None:
    global _sender
    _sender = sender


def reset_confirmation_sender() -> None:
    global _sender
    _sender = None


@billing.event_handler(part_of=Subscription)
class PaymentConfirmationHandler:
    """Sends the payment confirmation when a subscription gets paid."""

    @handle(SubscriptionPaid)
    def on_subscription_paid(self, event: SubscriptionPaid) -> None:
        get_confirmation_sender().send(
            owner_id=str(event.owner_id),
            subscription_id=str(event.subscription_id),
            payment_id=str(event.payment_id),
            context={
                "plan_type": event.plan_type,
                "amount_paid": event.amount_paid,
                "settled_change": event.settled_change,
                "expires_at": event.expires_at.isoformat() if event.expires_at else None,
            },
        )
        logger.info(
            "Payment confirmation sent",
            subscription_id=str(event.subscription_id),
            payment_id=str(event.payment_id),
        )
