"""Subscription aggregate: what an owner bought, at what price, and whether it is paid.

A subscription covers either a single event (``event_id`` set) or the whole
account. Prices are copied from the plan at purchase time so later catalog
edits never change what a customer owes.

State Machine (payment_status):
    PENDING → PAID | FAILED | CANCELLED
    PAID → PENDING (upgrade/renewal) | CANCELLED | REFUNDED
    FAILED → PENDING (new attempt) | PAID (late confirmation) | CANCELLED
    CANCELLED, REFUNDED are terminal

Expiry is not a status: a paid subscription whose ``expires_at`` has passed
simply stops being active. Every status flip bumps ``lock_version``; handlers
compare it with the version the caller read to detect concurrent writes.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String

from billing.domain import billing
from billing.errors import InvalidInput, InvalidStateTransition, NotCancellable, StaleWrite
from billing.plan.pricing import total_for
from billing.subscription.events import (
    SubscriptionAwaitingPayment,
    SubscriptionCancelled,
    SubscriptionCreated,
    SubscriptionPaid,
    SubscriptionPaymentFailed,
    SubscriptionRefunded,
    SubscriptionRenewalRequested,
    SubscriptionUpgraded,
)


class SubscriptionStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PendingChange(Enum):
    """What the outstanding payment is for."""

    ACTIVATION = "activation"
    RENEWAL = "renewal"
    UPGRADE = "upgrade"


_VALID_TRANSITIONS = {
    SubscriptionStatus.PENDING: {
        SubscriptionStatus.PAID,
        SubscriptionStatus.FAILED,
        SubscriptionStatus.CANCELLED,
    },
    SubscriptionStatus.PAID: {
        SubscriptionStatus.PENDING,
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.REFUNDED,
    },
    SubscriptionStatus.FAILED: {
        SubscriptionStatus.PENDING,
        SubscriptionStatus.PAID,
        SubscriptionStatus.CANCELLED,
    },
    SubscriptionStatus.CANCELLED: set(),  # Terminal
    SubscriptionStatus.REFUNDED: set(),  # Terminal
}

_CLOSED = (SubscriptionStatus.CANCELLED, SubscriptionStatus.REFUNDED)


def _aware(value: datetime | None) -> datetime | None:
    # SQL providers can return naive datetimes (stored as UTC)
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@billing.aggregate
class Subscription:
    owner_id: Identifier(required=True)
    event_id: Identifier()
    plan_type: String(required=True, max_length=50)

    # Prices frozen at purchase time
    base_price: Integer(min_value=0, default=0)
    guest_count: Integer(min_value=0, default=0)
    included_guests: Integer(min_value=0, default=0)
    guest_price_per_unit: Integer(min_value=0, default=0)
    total_price: Integer(min_value=0, default=0)
    amount_paid: Integer(min_value=0, default=0)

    # Payment
    payment_status: String(choices=SubscriptionStatus, default=SubscriptionStatus.PENDING.value)
    pending_change: String(choices=PendingChange)
    payment_method: String(max_length=50)
    payment_reference: String(max_length=255)
    authoritative_payment_id: Identifier()

    # Validity window
    duration_days: Integer(min_value=1, default=30)
    is_trial: Boolean(default=False)
    expires_at: DateTime()
    cancellation_reason: String(max_length=500)

    lock_version: Integer(default=0)
    created_at: DateTime()
    updated_at: DateTime()

    @invariant.post
    def total_price_follows_pricing_formula(self):
        expected = total_for(
            self.base_price or 0,
            self.included_guests or 0,
            self.guest_price_per_unit or 0,
            self.guest_count or 0,
        )
        if self.total_price != expected:
            raise ValidationError(
                {"total_price": [f"Total price {self.total_price} does not match the pricing formula ({expected})"]}
            )

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, owner_id, plan, pricing, event_id=None):
        """Open a subscription priced by ``pricing`` on ``plan``.

        Trial plans are free and active immediately; anything else waits for
        its activation payment.
        """
        now = datetime.now(UTC)
        if plan.is_trial:
            status = SubscriptionStatus.PAID.value
            pending_change = None
            expires_at = now + timedelta(days=plan.duration_days)
        else:
            status = SubscriptionStatus.PENDING.value
            pending_change = PendingChange.ACTIVATION.value
            expires_at = None

        subscription = cls(
            owner_id=owner_id,
            event_id=event_id,
            plan_type=plan.slug,
            base_price=pricing.base_price,
            guest_count=pricing.guest_count,
            included_guests=pricing.included_guests,
            guest_price_per_unit=pricing.price_per_extra_guest,
            total_price=pricing.total_price,
            amount_paid=0,
            payment_status=status,
            pending_change=pending_change,
            duration_days=plan.duration_days,
            is_trial=bool(plan.is_trial),
            expires_at=expires_at,
            lock_version=0,
            created_at=now,
            updated_at=now,
        )

        subscription.raise_(
            SubscriptionCreated(
                subscription_id=str(subscription.id),
                owner_id=str(owner_id),
                event_id=str(event_id) if event_id else None,
                plan_type=plan.slug,
                guest_count=pricing.guest_count,
                total_price=pricing.total_price,
                payment_status=status,
                expires_at=expires_at,
                created_at=now,
            )
        )
        return subscription

    # -------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------
    @property
    def status(self) -> SubscriptionStatus:
        return SubscriptionStatus(self.payment_status)

    @property
    def is_expired(self) -> bool:
        expires_at = _aware(self.expires_at)
        return expires_at is not None and expires_at <= datetime.now(UTC)

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.PAID and not self.is_expired

    @property
    def can_be_cancelled(self) -> bool:
        return self.status not in _CLOSED

    @property
    def is_awaiting_payment(self) -> bool:
        return self.status in (SubscriptionStatus.PENDING, SubscriptionStatus.FAILED)

    def is_underpaid_by(self, payment) -> bool:
        return (payment.amount or 0) < (self.total_price or 0)

    # -------------------------------------------------------------------
    # Concurrency
    # -------------------------------------------------------------------
    def ensure_version(self, expected_version: int | None) -> None:
        """Raise StaleWrite if someone changed the subscription since it was read."""
        if expected_version is not None and expected_version != self.lock_version:
            raise StaleWrite(
                {
                    "lock_version": [
                        f"Subscription {self.id} changed concurrently "
                        f"(expected version {expected_version}, found {self.lock_version})"
                    ]
                }
            )

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target: SubscriptionStatus) -> None:
        current = self.status
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidStateTransition(
                {"payment_status": [f"Cannot transition from {current.value} to {target.value}"]}
            )

    def _assert_open(self, action: str) -> None:
        if self.status in _CLOSED:
            raise InvalidStateTransition({"payment_status": [f"Cannot {action} a {self.payment_status} subscription"]})

    def _set_status(self, target: SubscriptionStatus, now: datetime) -> None:
        self.payment_status = target.value
        self.lock_version = (self.lock_version or 0) + 1
        self.updated_at = now

    def _reprice(self, plan, pricing) -> None:
        self.plan_type = plan.slug
        self.base_price = pricing.base_price
        self.guest_count = pricing.guest_count
        self.included_guests = pricing.included_guests
        self.guest_price_per_unit = pricing.price_per_extra_guest
        self.total_price = pricing.total_price
        self.duration_days = plan.duration_days

    def upgrade(self, plan, pricing) -> bool:
        """Move to ``plan`` at ``pricing``. Returns True if payment is now due.

        Paying less than before does not trigger a refund.
        """
        self._assert_open("upgrade")
        if plan.is_trial:
            raise InvalidInput({"plan_type": ["Cannot upgrade to a trial plan"]})

        now = datetime.now(UTC)
        previous_plan_type = self.plan_type
        previous_total = self.total_price
        payment_required = pricing.total_price > (self.amount_paid or 0)

        with atomic_change(self):
            self._reprice(plan, pricing)
            self.is_trial = False
            if payment_required:
                if self.status == SubscriptionStatus.PAID:
                    self._set_status(SubscriptionStatus.PENDING, now)
                    self.pending_change = PendingChange.UPGRADE.value
                elif self.pending_change is None:
                    self.pending_change = PendingChange.UPGRADE.value
            self.updated_at = now

        self.raise_(
            SubscriptionUpgraded(
                subscription_id=str(self.id),
                owner_id=str(self.owner_id),
                previous_plan_type=previous_plan_type,
                plan_type=plan.slug,
                previous_total_price=previous_total,
                total_price=self.total_price,
                payment_required=payment_required,
                upgraded_at=now,
            )
        )
        return payment_required

    def renew(self, plan, pricing) -> None:
        """Ask for a fresh period at current prices. ``expires_at`` moves on payment."""
        self._assert_open("renew")
        if self.is_trial:
            raise InvalidInput({"subscription": ["Trial subscriptions cannot be renewed"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            self._reprice(plan, pricing)
            if self.status != SubscriptionStatus.PENDING:
                self._set_status(SubscriptionStatus.PENDING, now)
            if self.amount_paid:
                self.pending_change = PendingChange.RENEWAL.value
            self.updated_at = now

        self.raise_(
            SubscriptionRenewalRequested(
                subscription_id=str(self.id),
                owner_id=str(self.owner_id),
                plan_type=self.plan_type,
                total_price=self.total_price,
                requested_at=now,
            )
        )

    def cancel(self, reason: str | None = None) -> None:
        if not self.can_be_cancelled:
            raise NotCancellable(
                {"payment_status": [f"Subscription is already {self.payment_status} and cannot be cancelled"]}
            )

        now = datetime.now(UTC)
        with atomic_change(self):
            self._set_status(SubscriptionStatus.CANCELLED, now)
            self.expires_at = now
            self.cancellation_reason = reason
            self.pending_change = None

        self.raise_(
            SubscriptionCancelled(
                subscription_id=str(self.id),
                owner_id=str(self.owner_id),
                reason=reason,
                cancelled_at=now,
            )
        )

    def await_payment(self, payment_method: str) -> None:
        """Prepare for a new payment attempt; a failed subscription goes back to pending."""
        if not self.is_awaiting_payment:
            raise InvalidInput(
                {"payment_status": [f"Subscription is {self.payment_status} and is not awaiting payment"]}
            )

        now = datetime.now(UTC)
        reopened = self.status == SubscriptionStatus.FAILED
        with atomic_change(self):
            if reopened:
                self._set_status(SubscriptionStatus.PENDING, now)
            self.payment_method = payment_method
            self.updated_at = now

        if reopened:
            self.raise_(
                SubscriptionAwaitingPayment(
                    subscription_id=str(self.id),
                    owner_id=str(self.owner_id),
                    payment_method=payment_method,
                    reopened_at=now,
                )
            )

    def mark_paid(self, payment_id: str, amount: int, payment_method: str, reference: str | None) -> None:
        """Record the completed payment that now backs this subscription."""
        self._assert_can_transition(SubscriptionStatus.PAID)

        now = datetime.now(UTC)
        settled = self.pending_change or PendingChange.ACTIVATION.value
        current_expiry = _aware(self.expires_at)
        if settled == PendingChange.RENEWAL.value and current_expiry and current_expiry > now:
            # Renewing early extends the current window
            expires_at = current_expiry + timedelta(days=self.duration_days)
        else:
            expires_at = now + timedelta(days=self.duration_days)

        with atomic_change(self):
            self._set_status(SubscriptionStatus.PAID, now)
            self.authoritative_payment_id = payment_id
            self.amount_paid = amount
            self.payment_method = payment_method
            self.payment_reference = reference
            self.expires_at = expires_at
            self.pending_change = None

        self.raise_(
            SubscriptionPaid(
                subscription_id=str(self.id),
                owner_id=str(self.owner_id),
                event_id=str(self.event_id) if self.event_id else None,
                payment_id=str(payment_id),
                plan_type=self.plan_type,
                amount_paid=amount,
                settled_change=settled,
                expires_at=expires_at,
                paid_at=now,
            )
        )

    def mark_failed(self, payment_id: str) -> None:
        self._assert_can_transition(SubscriptionStatus.FAILED)

        now = datetime.now(UTC)
        self._set_status(SubscriptionStatus.FAILED, now)

        self.raise_(
            SubscriptionPaymentFailed(
                subscription_id=str(self.id),
                owner_id=str(self.owner_id),
                payment_id=str(payment_id),
                failed_at=now,
            )
        )

    def mark_refunded(self, payment_id: str) -> None:
        self._assert_can_transition(SubscriptionStatus.REFUNDED)

        now = datetime.now(UTC)
        with atomic_change(self):
            self._set_status(SubscriptionStatus.REFUNDED, now)
            self.expires_at = now

        self.raise_(
            SubscriptionRefunded(
                subscription_id=str(self.id),
                owner_id=str(self.owner_id),
                payment_id=str(payment_id),
                refunded_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Payment outcomes
    # -------------------------------------------------------------------
    def apply_completed_payment(self, payment) -> bool:
        """Settle the subscription with a completed payment.

        Returns False when the subscription is not awaiting payment (another
        payment already paid for it, or it was closed) or when the payment no
        longer covers the total price after an upgrade or renewal repriced it.
        Nothing changes then.
        """
        if not self.is_awaiting_payment:
            return False
        if self.is_underpaid_by(payment):
            return False
        self.mark_paid(
            payment_id=str(payment.id),
            amount=payment.amount,
            payment_method=payment.payment_method,
            reference=payment.transaction_reference,
        )
        return True

    def apply_failed_payment(self, payment) -> bool:
        """A payment failed; only a subscription still waiting on it fails too."""
        if self.status != SubscriptionStatus.PENDING:
            return False
        self.mark_failed(str(payment.id))
        return True
