"""Checkout bounded context: payment-event reconciliation and order fulfillment.

Turns at-least-once, possibly out-of-order notifications from the payment
gateway into exactly-once-effective changes to orders, inventory, refunds
and disputes. Side effects that talk to the outside world (emails, cache
invalidation) run only after the owning transaction commits.
"""

import structlog
from protean.domain import Domain

from checkout.utils.logging import configure_logging

configure_logging()

logger = structlog.get_logger(__name__)

# Domain Composition Root
checkout = Domain(name="checkout")
