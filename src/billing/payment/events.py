"""Domain events for the Payment aggregate."""

from protean.fields import Boolean, DateTime, Identifier, Integer, String

from billing.domain import billing


@billing.event(part_of="Payment")
class PaymentInitiated:
    """A payment was opened for a subscription; the provider has not been called yet."""

    __version__ = 1

    payment_id: Identifier(required=True)
    subscription_id: Identifier(required=True)
    amount: Integer(default=0)
    currency: String(required=True)
    payment_method: String(required=True)
    retry_of: Identifier()
    initiated_at: DateTime(required=True)


@billing.event(part_of="Payment")
class PaymentTransferRequested:
    """The provider accepted the request-to-pay; the payer must now approve it."""

    __version__ = 1

    payment_id: Identifier(required=True)
    subscription_id: Identifier(required=True)
    transaction_reference: String(required=True)
    requested_at: DateTime(required=True)


@billing.event(part_of="Payment")
class PaymentCompleted:
    __version__ = 1

    payment_id: Identifier(required=True)
    subscription_id: Identifier(required=True)
    amount: Integer(default=0)
    currency: String(required=True)
    transaction_id: String()
    applied: Boolean(default=True)
    duplicate_of: Identifier()
    completed_at: DateTime(required=True)


@billing.event(part_of="Payment")
class PaymentFailed:
    __version__ = 1

    payment_id: Identifier(required=True)
    subscription_id: Identifier(required=True)
    reason: String(max_length=500)
    failed_at: DateTime(required=True)


@billing.event(part_of="Payment")
class PaymentRefunded:
    __version__ = 1

    payment_id: Identifier(required=True)
    subscription_id: Identifier(required=True)
    amount: Integer(default=0)
    reason: String(max_length=500)
    refunded_at: DateTime(required=True)


@billing.event(part_of="Payment")
class PaymentFlaggedForReview:
    """The provider reported something the engine cannot act on automatically."""

    __version__ = 1

    payment_id: Identifier(required=True)
    subscription_id: Identifier(required=True)
    provider_status: String()
    note: String()
    flagged_at: DateTime(required=True)
