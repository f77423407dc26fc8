"""Stock validation: the single routine that decides whether items can be sold.

Any caller that needs to know whether a basket is still sellable goes through
``validate_stock``; the fulfillment transaction runs it authoritatively before
touching inventory. Quantities are summed per SKU first, so two lines of the
same SKU are checked against stock together.
"""

from dataclasses import dataclass

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from checkout.stock.sku import Sku

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StockIssue:
    sku_id: str
    requested: int
    available: int
    reason: str  # "not_found", "inactive", "insufficient_stock"

    def describe(self) -> str:
        if self.reason == "not_found":
            return f"SKU {self.sku_id} no longer exists"
        if self.reason == "inactive":
            return f"SKU {self.sku_id} is no longer available"
        return f"SKU {self.sku_id}: requested {self.requested}, only {self.available} in stock"


def aggregate_quantities(items) -> dict[str, int]:
    """Sum quantities per SKU from (sku_id, quantity) pairs or objects with those attributes."""
    demand: dict[str, int] = {}
    for item in items:
        if isinstance(item, tuple):
            sku_id, quantity = item
        else:
            sku_id, quantity = item.sku_id, item.quantity
        demand[str(sku_id)] = demand.get(str(sku_id), 0) + quantity
    return demand


def find_stock_issues(demand: dict[str, int], skus: dict[str, Sku | None]) -> list[StockIssue]:
    """Pure check of demanded quantities against already-loaded SKUs."""
    issues = []
    for sku_id, requested in demand.items():
        sku = skus.get(sku_id)
        if sku is None:
            issues.append(StockIssue(sku_id, requested, 0, "not_found"))
        elif not sku.is_active:
            issues.append(StockIssue(sku_id, requested, sku.inventory, "inactive"))
        elif sku.inventory < requested:
            issues.append(StockIssue(sku_id, requested, sku.inventory, "insufficient_stock"))
    return issues


def load_skus(sku_ids) -> dict[str, Sku | None]:
    repo = current_domain.repository_for(Sku)
    skus: dict[str, Sku | None] = {}
    for sku_id in sku_ids:
        try:
            skus[sku_id] = repo.get(sku_id)
        except ObjectNotFoundError:
            skus[sku_id] = None
    return skus


def validate_stock(demand: dict[str, int]) -> dict[str, Sku]:
    """Load every demanded SKU and fail with all issues at once.

    Raises ValidationError before anything is mutated; on success returns
    the loaded SKUs keyed by id so the caller can move stock without
    reading them again.
    """
    skus = load_skus(demand.keys())
    issues = find_stock_issues(demand, skus)
    if issues:
        logger.warning(
            "Stock validation failed",
            issues=[issue.describe() for issue in issues],
        )
        raise ValidationError({"items": [issue.describe() for issue in issues]})
    return skus
