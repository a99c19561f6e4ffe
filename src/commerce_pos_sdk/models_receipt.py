from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .models import Money


class ReceiptModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class ReceiptItem(ReceiptModel):
    name: str = "Item"
    variant_label: str = ""
    quantity: int = 1
    unit_price: Money = Decimal("0")
    total: Money = Decimal("0")


class ReceiptVat(ReceiptModel):
    applicable: bool = False
    rate: Money = Decimal("0")
    amount: Money = Decimal("0")
    taxable_amount: Money = Decimal("0")
    seller_bin: str | None = None
    prices_include_vat: bool = True
    derived: bool = False


class ReceiptParty(ReceiptModel):
    name: str = ""
    phone: str | None = None


class ReceiptPayment(ReceiptModel):
    method: str = ""
    amount: Money = Decimal("0")
    reference: str | None = None

    @property
    def label(self) -> str:
        return self.method.replace("_", " ")


class Receipt(ReceiptModel):
    """Display/print model for a completed order. Read-only once built."""

    order_id: str | None = None
    order_number: str = ""
    invoice_number: str | None = None
    date: str = ""
    branch: ReceiptParty = Field(default_factory=ReceiptParty)
    cashier: str | None = None
    customer: ReceiptParty | None = None
    items: tuple[ReceiptItem, ...] = ()
    subtotal: Money = Decimal("0")
    discount: Money = Decimal("0")
    delivery_charge: Money = Decimal("0")
    vat: ReceiptVat | None = None
    total: Money = Decimal("0")
    payment: ReceiptPayment = Field(default_factory=ReceiptPayment)
    cash_received: Money | None = None
    change: Money = Decimal("0")
    amount_due: Money = Decimal("0")
