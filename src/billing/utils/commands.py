"""Synchronous command dispatch for the engine's public operations."""

from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from billing.errors import StaleWrite
from billing.utils.logging import get_logger

logger = get_logger(__name__)


def process(command):
    """Run ``command`` in its own unit of work and return the handler's result.

    Protean retries a handler a few times on a version conflict. A conflict
    that outlives those retries is raised as StaleWrite; nothing was written.
    """
    try:
        return current_domain.process(command, asynchronous=False)
    except ExpectedVersionError as exc:
        logger.warning("Concurrent write rejected", command=type(command).__name__, error=str(exc))
        raise StaleWrite({"version": [f"{type(command).__name__} lost a concurrent write: {exc}"]}) from exc
