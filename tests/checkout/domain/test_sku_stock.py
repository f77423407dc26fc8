"""Tests for Sku inventory movements and the stock validation routine."""

import pytest
from checkout.stock.events import SkuDepleted, StockCommitted, StockRestored
from checkout.stock.sku import Sku
from checkout.stock.validation import aggregate_quantities, find_stock_issues, validate_stock
from protean.exceptions import ValidationError


def _sku(inventory=5, is_active=True):
    sku = Sku(sku="RNG-001", product_title="Gold ring", price=12000, inventory=inventory, is_active=is_active)
    sku._events.clear()
    return sku


class TestCommitStock:
    def test_decrements_inventory(self):
        sku = _sku(inventory=5)
        sku.commit_stock(2)
        assert sku.inventory == 3
        assert isinstance(sku._events[-1], StockCommitted)

    def test_exact_quantity_depletes(self):
        sku = _sku(inventory=2)
        sku.commit_stock(2)
        assert sku.inventory == 0
        assert sku.is_depleted

    def test_cannot_take_more_than_available(self):
        sku = _sku(inventory=1)
        with pytest.raises(ValidationError):
            sku.commit_stock(2)
        assert sku.inventory == 1

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            _sku().commit_stock(0)


class TestSaleStatus:
    def test_take_off_sale(self):
        sku = _sku(inventory=0)
        sku.take_off_sale()
        assert sku.is_active is False
        assert isinstance(sku._events[-1], SkuDepleted)

    def test_restore_puts_back_on_sale(self):
        sku = _sku(inventory=0, is_active=False)
        sku.restore_stock(3)
        assert sku.inventory == 3
        assert sku.is_active is True
        assert isinstance(sku._events[-1], StockRestored)


class TestAggregateQuantities:
    def test_sums_lines_of_the_same_sku(self):
        demand = aggregate_quantities([("a", 1), ("b", 2), ("a", 3)])
        assert demand == {"a": 4, "b": 2}


class TestFindStockIssues:
    def test_no_issue_when_stock_suffices(self):
        assert find_stock_issues({"a": 2}, {"a": _sku(inventory=2)}) == []

    def test_reports_every_issue(self):
        issues = find_stock_issues(
            {"gone": 1, "off": 1, "short": 4},
            {"gone": None, "off": _sku(is_active=False), "short": _sku(inventory=3)},
        )
        assert [i.reason for i in issues] == ["not_found", "inactive", "insufficient_stock"]
        assert issues[2].describe() == "SKU short: requested 4, only 3 in stock"

    def test_validate_stock_raises_with_all_issues(self, make_sku):
        sku = make_sku(inventory=1)
        with pytest.raises(ValidationError) as exc:
            validate_stock({str(sku.id): 2, "missing": 1})
        assert len(exc.value.messages["items"]) == 2
