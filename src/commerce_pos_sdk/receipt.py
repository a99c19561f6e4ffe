"""Decode loosely-typed receipt payloads into :class:`Receipt`.

Backends across versions name the same receipt fields differently. Each
field is read through an explicit precedence table below: the first source
holding a usable value wins, and anything missing falls back to a fixed
default. Nothing here talks to the network.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .clients.base import unwrap_data
from .models_receipt import Receipt, ReceiptItem, ReceiptParty, ReceiptPayment, ReceiptVat
from .payment import amount_due, change
from .pricing import ZERO

logger = logging.getLogger(__name__)

ITEM_NAME_KEYS = ("name", "productName")
ITEM_QUANTITY_KEYS = ("quantity", "qty")
ITEM_UNIT_PRICE_KEYS = ("unitPrice", "price")
ITEM_TOTAL_KEYS = ("total", "lineTotal")
ORDER_NUMBER_KEYS = ("orderNumber", "order_number", "orderId")
ORDER_DATE_KEYS = ("date", "createdAt")

DEFAULT_ITEM_NAME = "Item"
MAX_VARIANT_LABEL_LENGTH = 60
# Substrings that only appear when an internal reference leaked into a label.
_IDENTIFIER_FRAGMENTS = ("ObjectId(", "productName", "product:")
_CENTS = Decimal("0.01")


def _first_text(record: Mapping[str, Any], keys: Sequence[str]) -> str | None:
    for key in keys:
        value = record.get(key)
        if isinstance(value, str):
            return value
    return None


def _as_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float, Decimal)):
        candidate = Decimal(str(value))
    elif isinstance(value, str) and value.strip():
        try:
            candidate = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None
    return candidate if candidate.is_finite() else None


def _first_number(record: Mapping[str, Any], keys: Sequence[str]) -> Decimal | None:
    for key in keys:
        parsed = _as_decimal(record.get(key))
        if parsed is not None:
            return parsed
    return None


def guard_variant_label(label: str) -> str:
    """Return ``label`` unless it looks like an internal id rather than attributes."""
    if len(label) > MAX_VARIANT_LABEL_LENGTH:
        return ""
    if any(fragment in label for fragment in _IDENTIFIER_FRAGMENTS):
        return ""
    return label


def format_receipt_attributes(attributes: Mapping[str, Any]) -> str:
    """Attributes as printed on receipts: keys kept exactly as the server sent them."""
    return ", ".join(f"{key}: {value}" for key, value in attributes.items())


def decode_variant_label(record: Mapping[str, Any]) -> str:
    variant = record.get("variant")
    if isinstance(variant, str):
        label = variant.strip()
    elif isinstance(variant, Mapping):
        attributes = variant.get("attributes")
        label = format_receipt_attributes(attributes if isinstance(attributes, Mapping) and attributes else variant)
    elif isinstance(record.get("variantAttributes"), Mapping):
        label = format_receipt_attributes(record["variantAttributes"])
    elif isinstance(record.get("variantSku"), str):
        label = record["variantSku"]
    else:
        label = ""
    return guard_variant_label(label)


def decode_item(record: Mapping[str, Any]) -> ReceiptItem:
    quantity = _first_number(record, ITEM_QUANTITY_KEYS)
    quantity_value = int(quantity) if quantity is not None else 1
    unit_price = _first_number(record, ITEM_UNIT_PRICE_KEYS)
    unit_price = unit_price if unit_price is not None else ZERO
    total = _first_number(record, ITEM_TOTAL_KEYS)
    return ReceiptItem(
        name=_first_text(record, ITEM_NAME_KEYS) or DEFAULT_ITEM_NAME,
        variant_label=decode_variant_label(record),
        quantity=quantity_value,
        unit_price=unit_price,
        total=total if total is not None else unit_price * quantity_value,
    )


def _decode_party(raw: Any) -> ReceiptParty | None:
    if not isinstance(raw, Mapping):
        return None
    phone = raw.get("phone")
    return ReceiptParty(name=str(raw.get("name") or ""), phone=phone if isinstance(phone, str) and phone else None)


def _decode_vat(raw: Mapping[str, Any]) -> ReceiptVat:
    seller_bin = raw.get("sellerBin")
    return ReceiptVat(
        applicable=bool(raw.get("applicable")),
        rate=_first_number(raw, ("rate",)) or ZERO,
        amount=_first_number(raw, ("amount",)) or ZERO,
        taxable_amount=_first_number(raw, ("taxableAmount",)) or ZERO,
        seller_bin=seller_bin if isinstance(seller_bin, str) and seller_bin else None,
        prices_include_vat=raw.get("pricesIncludeVat") is not False,
    )


def derive_vat(taxable_amount: Decimal, rate: Decimal, *, prices_include_vat: bool = True) -> ReceiptVat:
    """VAT at a flat rate for display; inclusive prices have it extracted, not added."""
    if prices_include_vat:
        amount = taxable_amount * rate / (Decimal("100") + rate)
    else:
        amount = taxable_amount * rate / Decimal("100")
    return ReceiptVat(
        applicable=True,
        rate=rate,
        amount=amount.quantize(_CENTS, rounding=ROUND_HALF_UP),
        taxable_amount=taxable_amount,
        prices_include_vat=prices_include_vat,
        derived=True,
    )


class ReceiptNormalizer:
    def __init__(self, *, vat_rate: Decimal = ZERO, prices_include_vat: bool = True) -> None:
        self.vat_rate = vat_rate
        self.prices_include_vat = prices_include_vat

    def normalize(
        self,
        payload: Mapping[str, Any],
        *,
        cash_received: Decimal | None = None,
        branch: str | None = None,
    ) -> Receipt:
        """Build a :class:`Receipt` from a receipt endpoint response.

        ``cash_received`` is what the cashier typed at checkout; the receipt
        endpoint never echoes it, so change and amount due are worked out here
        and only for cash payments. ``branch`` names the branch when the
        payload does not.
        """
        data = unwrap_data(payload, expected="receipt")
        if not isinstance(data, Mapping):
            raise ValueError("Expected receipt payload to be a JSON object")

        raw_items = data.get("items")
        items = tuple(decode_item(item) for item in raw_items if isinstance(item, Mapping)) if isinstance(raw_items, list) else ()

        subtotal = _first_number(data, ("subtotal",))
        if subtotal is None:
            subtotal = sum((item.total for item in items), ZERO)
        discount = _first_number(data, ("discount",)) or ZERO
        delivery = data.get("delivery")
        delivery_charge = _first_number(data, ("deliveryCharge",))
        if delivery_charge is None and isinstance(delivery, Mapping):
            delivery_charge = _first_number(delivery, ("charge",))
        delivery_charge = delivery_charge or ZERO
        total = _first_number(data, ("total",))
        if total is None:
            total = subtotal - discount + delivery_charge

        vat: ReceiptVat | None = None
        if isinstance(data.get("vat"), Mapping):
            vat = _decode_vat(data["vat"])
        elif self.vat_rate > 0:
            vat = derive_vat(subtotal - discount, self.vat_rate, prices_include_vat=self.prices_include_vat)

        raw_payment = data.get("payment") if isinstance(data.get("payment"), Mapping) else {}
        method = raw_payment.get("method")
        payment_amount = _first_number(raw_payment, ("amount",))
        reference = raw_payment.get("reference")
        payment = ReceiptPayment(
            method=method if isinstance(method, str) else "",
            amount=payment_amount if payment_amount is not None else total,
            reference=reference if isinstance(reference, str) and reference else None,
        )

        cash_change = ZERO
        cash_due = ZERO
        if payment.method == "cash" and cash_received is not None:
            cash_change = change(cash_received, total)
            cash_due = amount_due(cash_received, total)

        branch_party = _decode_party(data.get("branch")) or ReceiptParty(name=branch or "")
        if not branch_party.name and branch:
            branch_party = ReceiptParty(name=branch, phone=branch_party.phone)

        order_number = _first_text(data, ORDER_NUMBER_KEYS) or ""
        cashier = data.get("cashier")
        invoice_number = data.get("invoiceNumber")
        order_id = data.get("orderId") or data.get("_id")
        if not items:
            logger.warning("receipt_without_items", extra={"order_number": order_number})

        return Receipt(
            order_id=str(order_id) if order_id else None,
            order_number=order_number,
            invoice_number=invoice_number if isinstance(invoice_number, str) else None,
            date=_first_text(data, ORDER_DATE_KEYS) or "",
            branch=branch_party,
            cashier=cashier if isinstance(cashier, str) else None,
            customer=_decode_party(data.get("customer")),
            items=items,
            subtotal=subtotal,
            discount=discount,
            delivery_charge=delivery_charge,
            vat=vat,
            total=total,
            payment=payment,
            cash_received=cash_received,
            change=cash_change,
            amount_due=cash_due,
        )
