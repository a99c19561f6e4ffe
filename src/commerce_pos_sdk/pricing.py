"""Pure price arithmetic for the point-of-sale cart.

Nothing in here touches state: the same inputs always give the same outputs,
which is what lets the cart recompute totals on every mutation.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, Mapping, Protocol, Sequence

ZERO = Decimal("0")


class _PricedLine(Protocol):
    @property
    def line_total(self) -> Decimal: ...

    @property
    def quantity(self) -> int: ...


class _PricedVariant(Protocol):
    @property
    def price_modifier(self) -> Decimal: ...


@dataclass(frozen=True)
class PriceRange:
    min: Decimal
    max: Decimal

    @property
    def has_range(self) -> bool:
        return self.min != self.max


@dataclass(frozen=True)
class CartSummary:
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    item_count: int


def parse_amount(raw: str | int | float | Decimal | None) -> Decimal:
    """Tolerant parse of clerk-typed amounts; anything unusable is zero."""
    if raw is None or isinstance(raw, bool):
        return ZERO
    if isinstance(raw, Decimal):
        value = raw
    else:
        text = str(raw).strip().replace(",", "")
        if not text:
            return ZERO
        try:
            value = Decimal(text)
        except (InvalidOperation, ValueError):
            return ZERO
    if not value.is_finite():
        return ZERO
    return value


def parse_positive_amount(raw: str | int | float | Decimal | None) -> Decimal:
    value = parse_amount(raw)
    return value if value > 0 else ZERO


def variant_unit_price(base_price: Decimal, price_modifier: Decimal | None = None) -> Decimal:
    return max(ZERO, Decimal(base_price) + Decimal(price_modifier or 0))


def price_range(base_price: Decimal, variants: Sequence[_PricedVariant] | None) -> PriceRange:
    if not variants:
        return PriceRange(min=Decimal(base_price), max=Decimal(base_price))
    prices = [variant_unit_price(base_price, variant.price_modifier) for variant in variants]
    return PriceRange(min=min(prices), max=max(prices))


def compute_summary(items: Iterable[_PricedLine], discount_input: str | Decimal | None) -> CartSummary:
    lines = list(items)
    subtotal = sum((line.line_total for line in lines), ZERO)
    parsed_discount = parse_positive_amount(discount_input)
    discount = min(parsed_discount, subtotal) if subtotal > 0 else ZERO
    return CartSummary(
        subtotal=subtotal,
        discount=discount,
        total=subtotal - discount,
        item_count=sum(line.quantity for line in lines),
    )


def format_variant_label(attributes: Mapping[str, object] | None) -> str:
    if not attributes:
        return ""
    return ", ".join(f"{key[:1].upper()}{key[1:]}: {value}" for key, value in attributes.items())
