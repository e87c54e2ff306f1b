"""Billing bounded context: subscriptions to catalog plans and their mobile-money payments.

Owns usage-based pricing, per-plan quotas and the payment lifecycle against
the MTN Mobile Money and Airtel Money collection APIs.
"""

from protean.domain import Domain

from billing.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

billing = Domain(name="billing")
