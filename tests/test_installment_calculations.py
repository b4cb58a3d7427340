from datetime import datetime
from decimal import Decimal

import pytest

from app.core.errors import (
    InvalidPrice,
    InvalidDiscountRange,
    InvalidInstallmentCount,
    InstallmentTooSmall,
)
from app.utils.installment_calculations import (
    add_months,
    build_schedule,
    calculate_payment_charges,
    compute_total_amount,
    due_label,
    money,
    parse_plan_duration,
)


def _sum(entries):
    return sum((e["amount"] for e in entries), Decimal("0"))


def test_two_installments_sum_to_price():
    entries = build_schedule(6000, number_of_installments=2, plan_duration_months=6)
    assert [e["amount"] for e in entries] == [Decimal("3000.00"), Decimal("3000.00")]
    assert _sum(entries) == Decimal("6000.00")


def test_discounted_three_way_split():
    entries = build_schedule(6000, discount_percent=10, number_of_installments=3, plan_duration_months=6)
    assert [e["amount"] for e in entries] == [Decimal("1800.00")] * 3
    assert _sum(entries) == Decimal("5400.00")


@pytest.mark.parametrize(
    "price, discount, tax, fee, n",
    [
        (1000, 0, 0, 0, 3),
        (999.99, 0, 18, 2, 7),
        (12345.67, 12.5, 18, 2.5, 12),
        (4999, 33, 0, 0, 6),
        (2500, 0, 18, 0, 9),
    ],
)
def test_schedule_sums_to_independent_total(price, discount, tax, fee, n):
    entries = build_schedule(price, discount, tax, fee, number_of_installments=n, plan_duration_months=12)

    p = Decimal(str(price))
    expected = (p * (1 - Decimal(str(discount)) / 100)) * (1 + (Decimal(str(tax)) + Decimal(str(fee))) / 100)
    assert _sum(entries) == money(expected)
    assert len(entries) == n


def test_first_installment_absorbs_remainder():
    entries = build_schedule(1000, number_of_installments=3, plan_duration_months=3)
    assert [e["amount"] for e in entries] == [Decimal("333.34"), Decimal("333.33"), Decimal("333.33")]


def test_due_offsets_and_labels():
    entries = build_schedule(3000, number_of_installments=3, plan_duration_months=3)
    assert [e["due_date_offset"] for e in entries] == [0, 1, 2]
    assert [e["due_date_label"] for e in entries] == ["DOP", "DOP + 1 month", "DOP + 2 months"]
    assert due_label(5) == "DOP + 5 months"


def test_more_installments_than_months_rejected():
    with pytest.raises(InvalidInstallmentCount) as exc:
        build_schedule(6000, number_of_installments=4, plan_duration_months=3)
    assert exc.value.field == "number_of_installments"


def test_custom_plan_skips_month_bound():
    entries = build_schedule(6000, number_of_installments=10, plan_duration_months=None)
    assert len(entries) == 10


def test_zero_installments_rejected():
    with pytest.raises(InvalidInstallmentCount):
        build_schedule(6000, number_of_installments=0)


def test_installment_below_minimum_rejected():
    with pytest.raises(InstallmentTooSmall) as exc:
        build_schedule(200, number_of_installments=5, plan_duration_months=6)
    assert "Minimum installment amount is ₹50.00" in exc.value.message


def test_minimum_is_configurable():
    entries = build_schedule(
        200,
        number_of_installments=5,
        plan_duration_months=6,
        minimum_installment_amount=Decimal("10"),
    )
    assert _sum(entries) == Decimal("200.00")


@pytest.mark.parametrize("price", [0, -10])
def test_non_positive_price_rejected(price):
    with pytest.raises(InvalidPrice):
        compute_total_amount(price)


@pytest.mark.parametrize("field, kwargs", [
    ("discount_percent", {"discount_percent": 101}),
    ("tax_percent", {"tax_percent": -1}),
    ("handling_fee_percent", {"handling_fee_percent": 150}),
])
def test_percentages_out_of_range(field, kwargs):
    with pytest.raises(InvalidDiscountRange) as exc:
        compute_total_amount(1000, **kwargs)
    assert exc.value.field == field


def test_parse_plan_duration():
    assert parse_plan_duration("6 months") == 6
    assert parse_plan_duration("12 Months") == 12
    assert parse_plan_duration("custom") is None
    assert parse_plan_duration(None) is None


def test_add_months_clamps_to_month_end():
    assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
    assert add_months(datetime(2023, 1, 31), 1) == datetime(2023, 2, 28)
    assert add_months(datetime(2024, 11, 15, 10, 30), 2) == datetime(2025, 1, 15, 10, 30)


def test_payment_charges_breakdown():
    out = calculate_payment_charges(10000, discount_percent=10, tax_percent=18, handling_fee_percent=2, number_of_installments=3)

    assert out["discount_value"] == Decimal("1000.00")
    assert out["tax_amount"] == Decimal("1620.00")
    assert out["handling_charge"] == Decimal("180.00")
    assert out["total_amount"] == Decimal("10800.00")
    assert sum(out["installment_amounts"]) == Decimal("10800.00")


def test_payment_charges_single_payment_has_no_split():
    out = calculate_payment_charges(500)
    assert out["total_amount"] == Decimal("500.00")
    assert out["installment_amounts"] == []
