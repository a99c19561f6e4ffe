from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from decimal import Decimal

from .exceptions import OutOfStockError, VariantNotFoundError
from .models import PosProduct
from .pricing import CartSummary, compute_summary, format_variant_label, variant_unit_price

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartLineItem:
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    variant_sku: str | None = None
    variant_label: str | None = None
    image: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def key(self) -> tuple[str, str | None]:
        return (self.product_id, self.variant_sku)


class CartStore:
    """Line items and discount input for the sale being rung up.

    The store never asks for confirmation; callers that want a prompt before
    ``clear_cart`` must obtain it first.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._items: list[CartLineItem] = []
        self._discount_input = ""

    @property
    def items(self) -> tuple[CartLineItem, ...]:
        with self._lock:
            return tuple(self._items)

    @property
    def discount_input(self) -> str:
        return self._discount_input

    @property
    def is_empty(self) -> bool:
        with self._lock:
            return not self._items

    @property
    def summary(self) -> CartSummary:
        with self._lock:
            return compute_summary(self._items, self._discount_input)

    def set_discount_input(self, raw: str | None) -> None:
        with self._lock:
            self._discount_input = raw or ""

    def add_item(self, product: PosProduct, variant_sku: str | None = None) -> CartLineItem:
        variant = None
        if variant_sku:
            variant = product.find_variant(variant_sku)
            if variant is None:
                raise VariantNotFoundError(product.id, variant_sku)
            in_stock = product.variant_stock(variant_sku) > 0
        else:
            in_stock = bool(product.branch_stock and product.branch_stock.in_stock)
        if not in_stock:
            logger.info("cart_add_rejected_out_of_stock", extra={"product_id": product.id, "variant_sku": variant_sku})
            raise OutOfStockError(product.id, variant_sku)

        unit_price = (
            variant_unit_price(product.base_price, variant.price_modifier)
            if variant is not None
            else variant_unit_price(product.base_price)
        )
        variant_label = format_variant_label(variant.attributes) if variant is not None else ""
        with self._lock:
            for index, existing in enumerate(self._items):
                if existing.key == (product.id, variant_sku):
                    updated = replace(existing, quantity=existing.quantity + 1, unit_price=unit_price)
                    self._items[index] = updated
                    return updated
            line = CartLineItem(
                product_id=product.id,
                product_name=product.name,
                quantity=1,
                unit_price=unit_price,
                variant_sku=variant_sku,
                variant_label=variant_label or None,
                image=product.thumbnail,
            )
            self._items.append(line)
            return line

    def update_quantity(self, index: int, delta: int) -> CartLineItem | None:
        with self._lock:
            if index < 0 or index >= len(self._items):
                return None
            item = self._items[index]
            updated = replace(item, quantity=max(1, item.quantity + delta))
            self._items[index] = updated
            return updated

    def remove_item(self, index: int) -> CartLineItem | None:
        with self._lock:
            if index < 0 or index >= len(self._items):
                return None
            return self._items.pop(index)

    def clear_cart(self) -> None:
        with self._lock:
            self._items.clear()

    def reset_cart(self) -> None:
        with self._lock:
            self._items.clear()
            self._discount_input = ""
