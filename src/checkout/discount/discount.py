"""Discount and DiscountUsage aggregates (CQRS).

A usage row is written per (order, discount) when the checkout session is
created, and the discount's counter is bumped at the same time. Both are
released only when the order is cancelled while still awaiting payment.
"""

from datetime import UTC, datetime

from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from checkout.domain import checkout


@checkout.aggregate
class Discount:
    code = String(required=True, max_length=50)
    usage_count = Integer(default=0, min_value=0)
    usage_limit = Integer()
    updated_at = DateTime()

    def record_usage(self) -> None:
        self.usage_count += 1
        self.updated_at = datetime.now(UTC)

    def release_usage(self) -> None:
        self.usage_count = max(self.usage_count - 1, 0)
        self.updated_at = datetime.now(UTC)


@checkout.aggregate
class DiscountUsage:
    discount_id = Identifier(required=True)
    order_id = Identifier(required=True)
    user_id = Identifier()
    used_at = DateTime()


def release_discount_usages(order_id) -> list[str]:
    """Decrement each discount used by the order and delete the usage rows.

    Must run inside the Unit of Work that cancels the order. Returns the
    released discount ids.
    """
    usage_repo = current_domain.repository_for(DiscountUsage)
    discount_repo = current_domain.repository_for(Discount)

    usages = usage_repo._dao.query.filter(order_id=str(order_id)).all().items
    released = []
    for usage in usages:
        discount = discount_repo.get(usage.discount_id)
        discount.release_usage()
        discount_repo.add(discount)
        usage_repo._dao.delete(usage)
        released.append(str(usage.discount_id))
    return released
