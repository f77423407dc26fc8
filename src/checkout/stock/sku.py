"""Sku aggregate (CQRS): a sellable variant and its on-hand inventory.

Inventory is only ever taken in the transaction that flips an order to PAID,
and only ever put back when a payment fails after that happened. A SKU that
reaches zero is taken off sale in the same transaction; putting stock back
puts it on sale again.
"""

from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Integer, String

from checkout.domain import checkout
from checkout.stock.events import SkuDepleted, StockCommitted, StockRestored


@checkout.aggregate
class Sku:
    sku = String(required=True, max_length=50)
    product_title = String(required=True, max_length=255)
    color = String(max_length=50)
    material = String(max_length=50)
    size = String(max_length=20)
    price = Integer(required=True, min_value=0)
    inventory = Integer(default=0, min_value=0)
    is_active = Boolean(default=True)
    updated_at = DateTime()

    @invariant.post
    def inventory_must_not_be_negative(self):
        if self.inventory is not None and self.inventory < 0:
            raise ValidationError({"inventory": ["Inventory cannot be negative"]})

    @property
    def is_depleted(self) -> bool:
        return self.inventory == 0

    def commit_stock(self, quantity: int) -> None:
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        if quantity > self.inventory:
            raise ValidationError(
                {"inventory": [f"Only {self.inventory} unit(s) of {self.sku} left, {quantity} requested"]}
            )

        now = datetime.now(UTC)
        self.inventory -= quantity
        self.updated_at = now
        self.raise_(
            StockCommitted(
                sku_id=str(self.id),
                quantity=quantity,
                remaining=self.inventory,
                committed_at=now,
            )
        )

    def take_off_sale(self) -> None:
        now = datetime.now(UTC)
        self.is_active = False
        self.updated_at = now
        self.raise_(SkuDepleted(sku_id=str(self.id), sku_code=self.sku, depleted_at=now))

    def restore_stock(self, quantity: int) -> None:
        now = datetime.now(UTC)
        self.inventory += quantity
        self.is_active = True
        self.updated_at = now
        self.raise_(
            StockRestored(
                sku_id=str(self.id),
                quantity=quantity,
                available=self.inventory,
                restored_at=now,
            )
        )
