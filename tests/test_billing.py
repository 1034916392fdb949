"""
Tests for sale line composition and bill totals.
"""
from decimal import Decimal
import pytest
from tally_stock_sync.billing import (
    available_quantity,
    bill_totals,
    compose_sale_line,
    next_bill_number,
    split_by_bill_type,
    unit_exclusive_price,
)
from tally_stock_sync.errors import ValidationError
from tally_stock_sync.models import GodownAllocation, StockItemRecord


@pytest.fixture
def fevicol():
    return StockItemRecord(
        name="Fevicol 1kg",
        hsn_code="3506",
        gst_percentage=Decimal("18"),
        mrp=Decimal("295.00"),
        exclusive_rate=Decimal("250.00"),
        total_quantity=Decimal("12"),
        godown_allocations=(
            GodownAllocation(godown_name="Main Location", quantity=Decimal("8")),
            GodownAllocation(godown_name="Back Store", quantity=Decimal("4")),
        ),
    )


@pytest.fixture
def mrp_only():
    return StockItemRecord(
        name="Asian Paints 1L",
        gst_percentage=Decimal("18"),
        mrp=Decimal("590"),
        total_quantity=Decimal("52"),
    )


@pytest.fixture
def non_gst():
    return StockItemRecord(
        name="Loose Nails",
        exclusive_rate=Decimal("2.50"),
        total_quantity=Decimal("1000"),
    )


class TestComposeSaleLine:
    """Tests for compose_sale_line."""

    def test_prices_full_line(self, fevicol):
        line = compose_sale_line(fevicol, 4, discount=10, is_percentage=True)
        assert line.unit_price == Decimal("250.00")
        assert line.pricing.base_amount == Decimal("1000.00")
        assert line.pricing.discount_amount == Decimal("100")
        assert line.pricing.gst_amount == Decimal("162")
        assert line.total == Decimal("1062")
        assert line.mrp == Decimal("295.00")
        assert line.hsn_code == "3506"

    def test_amount_discount_records_percentage(self, fevicol):
        line = compose_sale_line(fevicol, 2, discount=50)
        assert line.pricing.discount_percentage == Decimal("10")

    def test_unit_price_backed_out_of_mrp(self, mrp_only):
        assert unit_exclusive_price(mrp_only) == Decimal("500")
        line = compose_sale_line(mrp_only, 1)
        assert line.total == Decimal("590")

    def test_unit_price_override(self, fevicol):
        line = compose_sale_line(fevicol, 1, unit_price="200")
        assert line.pricing.base_amount == Decimal("200")

    def test_godown_stock_limit(self, fevicol):
        compose_sale_line(fevicol, 4, godown_name="Back Store")
        with pytest.raises(ValidationError, match="Not enough stock"):
            compose_sale_line(fevicol, 5, godown_name="Back Store")
        assert available_quantity(fevicol, "Nowhere") == Decimal("0")

    def test_total_stock_limit(self, fevicol):
        with pytest.raises(ValidationError):
            compose_sale_line(fevicol, 13)
        line = compose_sale_line(fevicol, 13, check_stock=False)
        assert line.quantity == Decimal("13")

    def test_bad_quantity(self, fevicol):
        with pytest.raises(ValidationError):
            compose_sale_line(fevicol, 0)

    def test_bad_discount_blocks_line(self, fevicol):
        with pytest.raises(ValidationError):
            compose_sale_line(fevicol, 1, discount=150, is_percentage=True)

    def test_unpriced_item(self):
        item = StockItemRecord(name="Mystery", total_quantity=Decimal("3"))
        with pytest.raises(ValidationError, match="No price"):
            compose_sale_line(item, 1)

    def test_non_gst_line(self, non_gst):
        line = compose_sale_line(non_gst, 10)
        assert line.is_gst is False
        assert line.pricing.gst_amount == Decimal("0")
        assert line.mrp == Decimal("2.50")


class TestBillTotals:
    """Tests for bill_totals and bill splitting."""

    def test_totals_and_single_round_off(self, fevicol, mrp_only, non_gst):
        lines = [
            compose_sale_line(fevicol, 3, discount=5, is_percentage=True),
            compose_sale_line(mrp_only, 1, discount="12.35"),
            compose_sale_line(non_gst, 7),
        ]
        totals = bill_totals(lines)
        line_sum = sum(line.total for line in lines)

        assert totals.grand_total == line_sum
        assert totals.rounded_total - line_sum == totals.round_off
        assert abs(totals.round_off) < 1
        assert totals.rounded_total == totals.rounded_total.to_integral_value()
        assert totals.total_quantity == Decimal("11")
        assert totals.total_discount == sum(line.pricing.discount_amount for line in lines)
        assert totals.total_gst == sum(line.pricing.gst_amount for line in lines)
        assert totals.total_exclusive == sum(line.pricing.base_amount for line in lines)

    def test_empty_bill(self):
        totals = bill_totals([])
        assert totals.grand_total == Decimal("0")
        assert totals.round_off == Decimal("0")

    def test_split_by_bill_type(self, fevicol, non_gst):
        lines = [compose_sale_line(fevicol, 1), compose_sale_line(non_gst, 1)]
        bills = split_by_bill_type(lines)
        assert [l.item_name for l in bills["GST"]] == ["Fevicol 1kg"]
        assert [l.item_name for l in bills["NON-GST"]] == ["Loose Nails"]


def test_next_bill_number():
    assert next_bill_number("GST", 42) == "GST-000042"
    assert next_bill_number("NON-GST", 7) == "NON-000007"
    with pytest.raises(ValueError):
        next_bill_number("ESTIMATE", 1)
    with pytest.raises(ValueError):
        next_bill_number("GST", 0)
