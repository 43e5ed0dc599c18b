"""
Tests for splitting recipient shares into EEG / market-premium invoice lines.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from windpark_backend.app.core.exceptions import ReconciliationError
from windpark_backend.app.domain.settlement.allocator import RevenueAllocator, RevenueTaxProfile
from windpark_backend.app.models.settlement_enums import TaxType

PARK_NAME = "Windpark Nordfeld"


def make_settlement(**overrides):
    values = dict(
        year=2026,
        month=3,
        net_operator_revenue_eur=Decimal("100000.00"),
        total_production_kwh=Decimal("500000.000"),
        eeg_revenue_eur=Decimal("80000.00"),
        eeg_production_kwh=Decimal("400000.000"),
        dv_revenue_eur=Decimal("20000.00"),
        dv_production_kwh=Decimal("100000.000"),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def make_item(revenue, kwh, item_id=1, fund_id=7):
    return SimpleNamespace(
        id=item_id,
        recipient_fund_id=fund_id,
        revenue_share_eur=Decimal(revenue),
        production_share_kwh=Decimal(kwh),
    )


def test_full_share_split_into_eeg_and_dv_lines():
    allocator = RevenueAllocator(make_settlement(), PARK_NAME)

    allocation = allocator.allocate(make_item("100000.00", "500000.000"), "WEA 01")

    eeg, dv = allocation.lines
    assert eeg.description == "Stromerlös EEG 03/2026 – Windpark Nordfeld – WKA WEA 01"
    assert eeg.net_amount == Decimal("80000.00")
    assert eeg.quantity == Decimal("400000.000")
    assert eeg.unit_price == Decimal("0.200000")
    assert eeg.tax_type == TaxType.STANDARD
    assert eeg.tax_amount == Decimal("15200.00")
    assert eeg.gross_amount == Decimal("95200.00")

    assert dv.description == "Stromerlös Marktprämie 03/2026 – Windpark Nordfeld – WKA WEA 01"
    assert dv.net_amount == Decimal("20000.00")
    assert dv.quantity == Decimal("100000.000")
    assert dv.tax_type == TaxType.EXEMPT
    assert dv.tax_amount == Decimal("0.00")
    assert dv.gross_amount == Decimal("20000.00")

    assert allocation.correction == Decimal("0")
    assert allocation.net_total == Decimal("100000.00")
    assert allocation.gross_total == Decimal("115200.00")
    assert allocation.item_id == 1
    assert allocation.recipient_fund_id == 7


def test_partial_share_keeps_ratios():
    allocator = RevenueAllocator(make_settlement(), PARK_NAME)

    allocation = allocator.allocate(make_item("60000.00", "300000.000"))

    eeg, dv = allocation.lines
    assert eeg.net_amount == Decimal("48000.00")
    assert eeg.quantity == Decimal("240000.000")
    assert dv.net_amount == Decimal("12000.00")
    assert dv.quantity == Decimal("60000.000")
    assert allocation.gross_total == Decimal("69120.00")
    assert eeg.description == "Stromerlös EEG 03/2026 – Windpark Nordfeld"


def test_rounding_difference_is_booked_on_eeg_line():
    settlement = make_settlement(
        eeg_revenue_eur=Decimal("50000.00"),
        dv_revenue_eur=Decimal("50000.00"),
        eeg_production_kwh=Decimal("250000.000"),
        dv_production_kwh=Decimal("250000.000"),
    )
    allocator = RevenueAllocator(settlement, PARK_NAME)

    # 100.01 / 2 = 50.005 per component, both round up to 50.01
    allocation = allocator.allocate(make_item("100.01", "500.000"))

    eeg, dv = allocation.lines
    assert allocation.correction == Decimal("-0.01")
    assert eeg.net_amount == Decimal("50.00")
    assert eeg.tax_amount == Decimal("9.50")
    assert eeg.gross_amount == Decimal("59.50")
    assert dv.net_amount == Decimal("50.01")
    assert allocation.net_total == Decimal("100.01")


@pytest.mark.parametrize("revenue", ["0.01", "1.00", "33333.33", "66666.67", "12345.67", "99999.99"])
def test_line_nets_always_sum_to_share(revenue):
    settlement = make_settlement(
        eeg_revenue_eur=Decimal("66666.67"),
        dv_revenue_eur=Decimal("33333.33"),
    )
    allocator = RevenueAllocator(settlement, PARK_NAME)

    allocation = allocator.allocate(make_item(revenue, "1000.000"))

    assert sum(l.net_amount for l in allocation.lines) == Decimal(revenue)
    assert abs(allocation.correction) <= Decimal("0.01")


def test_component_below_one_cent_is_dropped():
    allocator = RevenueAllocator(make_settlement(), PARK_NAME)

    # EEG 0.04, DV 0.01: the DV line is not above one cent
    allocation = allocator.allocate(make_item("0.05", "0.250"))
    assert [l.revenue_component for l in allocation.lines] == ["EEG"]
    assert allocation.net_total == Decimal("0.05")


def test_tiny_share_keeps_dominant_component():
    allocator = RevenueAllocator(make_settlement(), PARK_NAME)

    allocation = allocator.allocate(make_item("0.01", "0.050"))

    assert len(allocation.lines) == 1
    assert allocation.lines[0].revenue_component == "EEG"
    assert allocation.net_total == Decimal("0.01")


def test_without_split_single_exempt_line():
    settlement = make_settlement(
        eeg_revenue_eur=None, eeg_production_kwh=None,
        dv_revenue_eur=None, dv_production_kwh=None,
    )
    allocator = RevenueAllocator(settlement, PARK_NAME)

    allocation = allocator.allocate(make_item("40000.00", "200000.000"), "WEA 02")

    (only,) = allocation.lines
    assert only.description == "Stromerlös 03/2026 – Windpark Nordfeld – WKA WEA 02"
    assert only.tax_type == TaxType.EXEMPT
    assert only.net_amount == Decimal("40000.00")
    assert only.gross_amount == Decimal("40000.00")
    assert only.quantity == Decimal("200000.000")
    assert only.unit_price == Decimal("0.200000")


def test_split_with_zero_total_revenue_falls_back_to_single_line():
    settlement = make_settlement(
        net_operator_revenue_eur=Decimal("0.00"),
        eeg_revenue_eur=Decimal("0.00"),
        dv_revenue_eur=Decimal("0.00"),
    )
    allocator = RevenueAllocator(settlement, PARK_NAME)

    allocation = allocator.allocate(make_item("0.00", "0.000"))

    (only,) = allocation.lines
    assert only.revenue_component == "TOTAL"
    assert only.net_amount == Decimal("0.00")
    assert only.unit_price == Decimal("0")


def test_production_derived_from_revenue_ratio_when_missing():
    settlement = make_settlement(eeg_production_kwh=None, dv_production_kwh=None)
    allocator = RevenueAllocator(settlement, PARK_NAME)

    allocation = allocator.allocate(make_item("100000.00", "500000.000"))

    eeg, dv = allocation.lines
    assert eeg.quantity == Decimal("400000.000")
    assert dv.quantity == Decimal("100000.000")


def test_annual_settlement_label():
    allocator = RevenueAllocator(make_settlement(month=None), PARK_NAME)

    allocation = allocator.allocate(make_item("1000.00", "5000.000"))

    assert allocation.lines[0].description == "Stromerlös EEG 2026 – Windpark Nordfeld"


def test_configured_tax_profile_is_applied():
    profile = RevenueTaxProfile(eeg_rate=Decimal("7"), dv_rate=Decimal("19"))
    allocator = RevenueAllocator(make_settlement(), PARK_NAME, profile)

    allocation = allocator.allocate(make_item("100000.00", "500000.000"))

    eeg, dv = allocation.lines
    assert eeg.tax_type == TaxType.REDUCED
    assert eeg.tax_amount == Decimal("5600.00")
    assert dv.tax_type == TaxType.STANDARD
    assert dv.tax_amount == Decimal("3800.00")
    assert allocation.gross_total == Decimal("109400.00")


def test_split_not_matching_net_revenue_is_refused():
    settlement = make_settlement(eeg_revenue_eur=Decimal("50000.00"))
    allocator = RevenueAllocator(settlement, PARK_NAME)

    with pytest.raises(ReconciliationError):
        allocator.allocate(make_item("100000.00", "500000.000"), None)
