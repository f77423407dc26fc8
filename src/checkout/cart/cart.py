"""Cart aggregate (CQRS): the basket a checkout session was created from.

Carts belong either to a signed-in user or to a guest session. Once the
order they turned into is paid, the cart is emptied in the same transaction.
"""

from datetime import UTC, datetime

from protean.fields import DateTime, HasMany, Identifier, Integer, String
from protean.utils.globals import current_domain

from checkout.domain import checkout


@checkout.entity(part_of="Cart")
class CartItem:
    sku_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    added_at = DateTime()


@checkout.aggregate
class Cart:
    user_id = Identifier()  # Nullable for guest carts
    session_id = String(max_length=255)  # Guest cart identification
    items = HasMany(CartItem)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, user_id=None, session_id=None):
        now = datetime.now(UTC)
        return cls(user_id=user_id, session_id=session_id, created_at=now, updated_at=now)

    def add_item(self, sku_id, quantity):
        existing = next((i for i in self.items if str(i.sku_id) == str(sku_id)), None)
        if existing:
            existing.quantity += quantity
        else:
            self.add_items(CartItem(sku_id=sku_id, quantity=quantity, added_at=datetime.now(UTC)))
        self.updated_at = datetime.now(UTC)

    def clear(self) -> int:
        """Remove every item; returns how many lines were removed."""
        removed = list(self.items)
        for item in removed:
            self.remove_items(item)
        self.updated_at = datetime.now(UTC)
        return len(removed)


def find_cart(user_id=None, session_id=None) -> Cart | None:
    """Find the user's cart, or the guest cart for a session."""
    if user_id:
        criteria = {"user_id": str(user_id)}
    elif session_id:
        criteria = {"session_id": session_id}
    else:
        return None

    carts = current_domain.repository_for(Cart)._dao.query.filter(**criteria).all().items
    return carts[0] if carts else None
