from __future__ import annotations

from decimal import Decimal

import pytest

from commerce_pos_sdk.cart import CartLineItem
from commerce_pos_sdk.models import ProductVariant
from commerce_pos_sdk.pricing import (
    compute_summary,
    format_variant_label,
    parse_amount,
    price_range,
    variant_unit_price,
)


def _line(price: str, quantity: int) -> CartLineItem:
    return CartLineItem(product_id=f"p-{price}", product_name="Item", quantity=quantity, unit_price=Decimal(price))


def test_variant_unit_price_applies_modifier_and_floors_at_zero() -> None:
    assert variant_unit_price(Decimal("500"), Decimal("-50")) == Decimal("450")
    assert variant_unit_price(Decimal("500")) == Decimal("500")
    assert variant_unit_price(Decimal("100"), Decimal("-150")) == Decimal("0")


def test_price_range_over_variants() -> None:
    variants = [
        ProductVariant(sku="S", price_modifier=Decimal("-20")),
        ProductVariant(sku="L", price_modifier=Decimal("30")),
    ]
    result = price_range(Decimal("100"), variants)
    assert (result.min, result.max) == (Decimal("80"), Decimal("130"))
    assert result.has_range


def test_price_range_without_variants_is_base_price() -> None:
    result = price_range(Decimal("100"), [])
    assert result.min == result.max == Decimal("100")
    assert not result.has_range


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1,250.50", Decimal("1250.50")),
        ("  42 ", Decimal("42")),
        ("", Decimal("0")),
        ("abc", Decimal("0")),
        ("NaN", Decimal("0")),
        (None, Decimal("0")),
        (True, Decimal("0")),
    ],
)
def test_parse_amount_is_tolerant(raw, expected: Decimal) -> None:
    assert parse_amount(raw) == expected


def test_summary_subtotal_is_sum_of_line_totals() -> None:
    lines = [_line("450", 2), _line("99.50", 3), _line("10", 1)]
    summary = compute_summary(lines, "")
    assert summary.subtotal == sum(line.line_total for line in lines)
    assert summary.item_count == 6
    assert summary.total == summary.subtotal


@pytest.mark.parametrize(
    ("discount_input", "expected_discount"),
    [
        ("100", Decimal("100")),
        ("", Decimal("0")),
        ("ten", Decimal("0")),
        ("-20", Decimal("0")),
        ("5000", Decimal("900")),
    ],
)
def test_discount_is_clamped_to_subtotal(discount_input: str, expected_discount: Decimal) -> None:
    summary = compute_summary([_line("450", 2)], discount_input)
    assert summary.discount == expected_discount
    assert summary.total == summary.subtotal - summary.discount
    assert Decimal("0") <= summary.discount <= summary.subtotal


def test_scenario_c_discount_larger_than_subtotal() -> None:
    summary = compute_summary([_line("450", 2)], "1000")
    assert summary.subtotal == Decimal("900")
    assert summary.discount == Decimal("900")
    assert summary.total == Decimal("0")


def test_empty_cart_has_no_discount() -> None:
    summary = compute_summary([], "50")
    assert summary.discount == Decimal("0")
    assert summary.total == Decimal("0")


def test_format_variant_label() -> None:
    assert format_variant_label({"size": "M", "color": "Red"}) == "Size: M, Color: Red"
    assert format_variant_label({}) == ""
