"""Billing error taxonomy.

Every error is a Protean ``ValidationError`` so callers that already handle
domain validation keep working; the subclasses let the HTTP layer and other
services tell the cases apart. ``code`` is the stable machine-readable name.
"""

from protean.exceptions import ValidationError


class BillingError(ValidationError):
    code = "billing_error"

    def __init__(self, messages: dict | str, **kwargs):
        if isinstance(messages, str):
            messages = {self.code: [messages]}
        super().__init__(messages, **kwargs)

    def __str__(self) -> str:
        return "; ".join(f"{key}: {', '.join(map(str, value))}" for key, value in self.messages.items())


class InvalidInput(BillingError):
    code = "invalid_input"


class DuplicateActiveSubscription(BillingError):
    code = "duplicate_active_subscription"

    def __init__(self, messages: dict | str, subscription_id: str | None = None, **kwargs):
        self.subscription_id = subscription_id
        super().__init__(messages, **kwargs)


class UnsupportedProvider(BillingError):
    code = "unsupported_provider"


class ProviderError(BillingError):
    """Adapter, network or provider-side failure.

    ``payload`` keeps the raw provider response for manual reconciliation.
    """

    code = "provider_error"

    def __init__(self, messages: dict | str, payload: dict | None = None, payment_id: str | None = None, **kwargs):
        self.payload = payload or {}
        self.payment_id = payment_id
        super().__init__(messages, **kwargs)


class InvalidStateTransition(BillingError):
    code = "invalid_state_transition"


class NotCancellable(InvalidStateTransition):
    code = "not_cancellable"


class NotRefundable(InvalidStateTransition):
    code = "not_refundable"


class NotRetryable(InvalidStateTransition):
    code = "not_retryable"


class StaleWrite(BillingError):
    """Optimistic-lock conflict on a concurrent subscription update."""

    code = "stale_write"


class InvalidSignature(BillingError):
    code = "invalid_signature"
