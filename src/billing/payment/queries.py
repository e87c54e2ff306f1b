"""Read-side helpers over the Payment repository."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from billing.errors import InvalidInput
from billing.payment.payment import Payment


def get_payment(payment_id: str) -> Payment:
    try:
        return current_domain.repository_for(Payment).get(payment_id)
    except ObjectNotFoundError as exc:
        raise InvalidInput({"payment_id": [f"Payment {payment_id} not found"]}) from exc


def payments_for_subscription(subscription_id: str) -> list[Payment]:
    """A subscription's payments, oldest first."""
    repo = current_domain.repository_for(Payment)
    items = repo._dao.query.filter(subscription_id=str(subscription_id)).all().items
    return sorted(items, key=lambda p: p.created_at)


def find_by_idempotency_key(subscription_id: str, idempotency_key: str) -> Payment | None:
    repo = current_domain.repository_for(Payment)
    items = repo._dao.query.filter(
        subscription_id=str(subscription_id),
        idempotency_key=idempotency_key,
    ).all().items
    return items[0] if items else None


def find_by_reference(reference: str) -> Payment | None:
    """Look a payment up by the provider's transaction reference."""
    if not reference:
        return None
    repo = current_domain.repository_for(Payment)
    items = repo._dao.query.filter(transaction_reference=reference).all().items
    return items[0] if items else None
