"""Payment aggregate: one request-to-pay against a mobile-money provider.

A payment is opened for a subscription's total price, handed to the provider
picked from the payer's phone number, and settled by a status poll or a
provider callback. Transitions only move forward; a retry opens a new payment
that points back at the failed one through ``retry_of``.

State Machine:
    PENDING → COMPLETED → REFUNDED
    PENDING → FAILED

``details`` keeps what the provider told us (external id, raw responses,
unrecognised statuses) plus refund and duplicate markers, so a payment can be
reconciled by hand.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change
from protean.fields import DateTime, Dict, Identifier, Integer, String

from billing.domain import billing
from billing.errors import InvalidStateTransition, NotRefundable
from billing.gateway.port import PaymentProvider
from billing.payment.events import (
    PaymentCompleted,
    PaymentFailed,
    PaymentFlaggedForReview,
    PaymentInitiated,
    PaymentRefunded,
    PaymentTransferRequested,
)


class PaymentStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


_VALID_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),  # Terminal; retries open a new payment
    PaymentStatus.REFUNDED: set(),  # Terminal
}


@billing.aggregate
class Payment:
    subscription_id: Identifier(required=True)
    amount: Integer(min_value=0, required=True)
    currency: String(max_length=3, default="XAF")
    payment_method: String(choices=PaymentProvider, required=True)
    phone_number: String(max_length=20)
    idempotency_key: String(max_length=255, required=True)
    transaction_reference: String(max_length=255)
    status: String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    details: Dict()
    failure_reason: String(max_length=500)
    retry_of: Identifier()
    created_at: DateTime()
    completed_at: DateTime()
    updated_at: DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        subscription_id,
        amount,
        currency,
        payment_method,
        phone_number,
        idempotency_key,
        retry_of=None,
    ):
        now = datetime.now(UTC)
        payment = cls(
            subscription_id=subscription_id,
            amount=amount,
            currency=currency,
            payment_method=payment_method,
            phone_number=phone_number,
            idempotency_key=idempotency_key,
            status=PaymentStatus.PENDING.value,
            details={},
            retry_of=retry_of,
            created_at=now,
            updated_at=now,
        )
        payment.raise_(
            PaymentInitiated(
                payment_id=str(payment.id),
                subscription_id=str(subscription_id),
                amount=amount,
                currency=currency,
                payment_method=payment_method,
                retry_of=retry_of,
                initiated_at=now,
            )
        )
        return payment

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def state(self) -> PaymentStatus:
        return PaymentStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.state != PaymentStatus.PENDING

    def _assert_can_transition(self, target: PaymentStatus) -> None:
        if target not in _VALID_TRANSITIONS.get(self.state, set()):
            raise InvalidStateTransition({"status": [f"Cannot transition from {self.status} to {target.value}"]})

    def _merge_details(self, **values) -> None:
        # Reassign so the change is tracked
        self.details = {**(self.details or {}), **values}

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def record_transfer_requested(self, reference: str, external_id: str | None = None, raw: dict | None = None):
        """The provider accepted the request-to-pay under ``reference``."""
        now = datetime.now(UTC)
        with atomic_change(self):
            self.transaction_reference = reference
            self._merge_details(external_id=external_id, provider_response=raw or {})
            self.updated_at = now

        self.raise_(
            PaymentTransferRequested(
                payment_id=str(self.id),
                subscription_id=str(self.subscription_id),
                transaction_reference=reference,
                requested_at=now,
            )
        )

    def complete(
        self,
        transaction_id: str | None = None,
        raw: dict | None = None,
        applied: bool = True,
        duplicate_of: str | None = None,
        expected_amount: int | None = None,
    ):
        """Record the provider's confirmation.

        An unapplied completion is money the subscription could not use and
        needs a manual refund. Either another payment already paid for it, it
        was closed, or it was repriced above ``amount`` (``expected_amount``).
        """
        self._assert_can_transition(PaymentStatus.COMPLETED)

        now = datetime.now(UTC)
        markers = {"transaction_id": transaction_id, "completion_response": raw or {}}
        if not applied:
            markers["requires_manual_refund"] = True
            if duplicate_of is not None:
                markers["duplicate_of"] = str(duplicate_of)
            if expected_amount is not None:
                markers["underpaid"] = True
                markers["expected_amount"] = expected_amount

        with atomic_change(self):
            self.status = PaymentStatus.COMPLETED.value
            self.completed_at = now
            self.updated_at = now
            self._merge_details(**markers)

        self.raise_(
            PaymentCompleted(
                payment_id=str(self.id),
                subscription_id=str(self.subscription_id),
                amount=self.amount,
                currency=self.currency,
                transaction_id=transaction_id,
                applied=applied,
                duplicate_of=str(duplicate_of) if duplicate_of else None,
                completed_at=now,
            )
        )

    def fail(self, reason: str | None, raw: dict | None = None):
        self._assert_can_transition(PaymentStatus.FAILED)

        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = PaymentStatus.FAILED.value
            self.failure_reason = (reason or "Payment failed")[:500]
            self.updated_at = now
            if raw:
                self._merge_details(error=raw)

        self.raise_(
            PaymentFailed(
                payment_id=str(self.id),
                subscription_id=str(self.subscription_id),
                reason=self.failure_reason,
                failed_at=now,
            )
        )

    def refund(self, reason: str):
        if self.state != PaymentStatus.COMPLETED:
            raise NotRefundable({"status": [f"Only completed payments can be refunded (payment is {self.status})"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = PaymentStatus.REFUNDED.value
            self.updated_at = now
            self._merge_details(refund_reason=reason, refunded_at=now.isoformat())

        self.raise_(
            PaymentRefunded(
                payment_id=str(self.id),
                subscription_id=str(self.subscription_id),
                amount=self.amount,
                reason=reason,
                refunded_at=now,
            )
        )

    def flag_for_review(self, provider_status: str | None, note: str, raw: dict | None = None):
        """Keep an unexpected provider report for manual reconciliation. Status is unchanged."""
        now = datetime.now(UTC)
        reviews = list((self.details or {}).get("review", []))
        reviews.append(
            {
                "provider_status": provider_status,
                "note": note,
                "raw": raw or {},
                "at": now.isoformat(),
            }
        )
        with atomic_change(self):
            self._merge_details(review=reviews)
            self.updated_at = now

        self.raise_(
            PaymentFlaggedForReview(
                payment_id=str(self.id),
                subscription_id=str(self.subscription_id),
                provider_status=provider_status,
                note=note,
                flagged_at=now,
            )
        )
