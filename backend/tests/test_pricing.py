# Overview: Pytest coverage for sale pricing and stock validation.

import pytest

from billing.errors import InsufficientStockError, ProductNotFoundError
from billing.services.pricing_service import (
    DraftItem,
    compute_tax_cents,
    price_and_validate,
    referenced_product_ids,
)
from billing.services.sale_store import ProductSnapshot


def snap(pid, price_cents, stock, version=1, name=None):
    return ProductSnapshot(
        product_id=pid,
        name=name or pid.upper(),
        unit="pcs",
        price_cents=price_cents,
        stock=stock,
        version=version,
    )


CATALOG = {
    "p1": snap("p1", 10000, 10, version=4, name="Widget"),
    "p2": snap("p2", 2500, 3, version=2, name="Gadget"),
}


class TestTotals:
    def test_subtotal_tax_total(self):
        priced = price_and_validate(
            [DraftItem(quantity=2, product_id="p1"), DraftItem(quantity=2, product_id="p2")],
            CATALOG,
            tax_rate_bps=1800,
        )
        assert priced.subtotal_cents == 25000
        assert priced.tax_cents == 4500
        assert priced.total_cents == 29500
        assert priced.total_cents == priced.subtotal_cents + priced.tax_cents

    def test_zero_tax_rate_is_honored(self):
        priced = price_and_validate([DraftItem(quantity=1, product_id="p1")], CATALOG, tax_rate_bps=0)
        assert priced.tax_cents == 0
        assert priced.total_cents == 10000

    def test_tax_rounds_half_up_to_the_cent(self):
        # 333 * 12.5% = 41.625 -> 42
        assert compute_tax_cents(333, 1250) == 42
        # 1 * 18% = 0.18 -> 0
        assert compute_tax_cents(1, 1800) == 0
        assert compute_tax_cents(3, 1800) == 1

    def test_lines_keep_submission_order(self):
        priced = price_and_validate(
            [DraftItem(quantity=1, product_id="p2"), DraftItem(quantity=1, product_id="p1")],
            CATALOG,
        )
        assert [line.product_id for line in priced.lines] == ["p2", "p1"]
        assert [line.position for line in priced.lines] == [1, 2]


class TestPriceAuthority:
    def test_unit_price_comes_from_catalog(self):
        priced = price_and_validate([DraftItem(quantity=3, product_id="p1")], CATALOG)
        line = priced.lines[0]
        assert line.unit_price_cents == 10000
        assert line.line_total_cents == 30000
        assert line.product_name == "Widget"

    def test_non_inventory_line_is_priced_at_zero(self):
        priced = price_and_validate(
            [DraftItem(quantity=5, description="Installation"), DraftItem(quantity=1, product_id="p1")],
            CATALOG,
        )
        custom = priced.lines[0]
        assert custom.product_id is None
        assert custom.product_name == "Installation"
        assert custom.unit_price_cents == 0
        assert custom.line_total_cents == 0
        assert priced.subtotal_cents == 10000

    def test_non_inventory_lines_produce_no_decrements(self):
        priced = price_and_validate([DraftItem(quantity=5, description="Labour")], {})
        assert priced.decrements == ()
        assert priced.total_cents == 0


class TestStockValidation:
    def test_unknown_product_rejects_whole_sale(self):
        with pytest.raises(ProductNotFoundError) as exc_info:
            price_and_validate(
                [DraftItem(quantity=1, product_id="p1"), DraftItem(quantity=1, product_id="ghost")],
                CATALOG,
            )
        assert exc_info.value.product_id == "ghost"
        assert exc_info.value.code == "product_not_found"

    def test_insufficient_stock_reports_available_and_requested(self):
        with pytest.raises(InsufficientStockError) as exc_info:
            price_and_validate([DraftItem(quantity=4, product_id="p2")], CATALOG)
        err = exc_info.value
        assert err.product_id == "p2"
        assert err.available == 3
        assert err.requested == 4

    def test_quantity_equal_to_stock_is_allowed(self):
        priced = price_and_validate([DraftItem(quantity=3, product_id="p2")], CATALOG)
        assert priced.decrements[0].quantity == 3

    def test_repeated_product_lines_are_summed_before_the_check(self):
        # 6 + 6 > 10 even though each line alone fits
        with pytest.raises(InsufficientStockError) as exc_info:
            price_and_validate(
                [DraftItem(quantity=6, product_id="p1"), DraftItem(quantity=6, product_id="p1")],
                CATALOG,
            )
        assert exc_info.value.requested == 12
        assert exc_info.value.available == 10

    def test_decrements_are_aggregated_and_carry_snapshot_version(self):
        priced = price_and_validate(
            [
                DraftItem(quantity=2, product_id="p1"),
                DraftItem(quantity=1, product_id="p2"),
                DraftItem(quantity=3, product_id="p1"),
            ],
            CATALOG,
        )
        by_id = {d.product_id: d for d in priced.decrements}
        assert by_id["p1"].quantity == 5
        assert by_id["p1"].expected_version == 4
        assert by_id["p2"].quantity == 1
        assert by_id["p2"].expected_version == 2
        assert len(priced.lines) == 3


def test_referenced_product_ids_are_distinct_in_first_seen_order():
    items = [
        DraftItem(quantity=1, product_id="b"),
        DraftItem(quantity=1, description="free text"),
        DraftItem(quantity=1, product_id="a"),
        DraftItem(quantity=1, product_id="b"),
    ]
    assert referenced_product_ids(items) == ["b", "a"]
