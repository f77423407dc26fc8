"""Domain events for the Sku aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="Sku")
class StockCommitted:
    """Units were taken from stock for a paid order."""

    __version__ = "v1"

    sku_id = Identifier(required=True)
    quantity = Integer(required=True)
    remaining = Integer(required=True)
    committed_at = DateTime(required=True)


@checkout.event(part_of="Sku")
class SkuDepleted:
    """The last unit was sold; the SKU was taken off sale."""

    __version__ = "v1"

    sku_id = Identifier(required=True)
    sku_code = String(required=True)
    depleted_at = DateTime(required=True)


@checkout.event(part_of="Sku")
class StockRestored:
    """Units taken for a failed or cancelled payment were put back."""

    __version__ = "v1"

    sku_id = Identifier(required=True)
    quantity = Integer(required=True)
    available = Integer(required=True)
    restored_at = DateTime(required=True)
