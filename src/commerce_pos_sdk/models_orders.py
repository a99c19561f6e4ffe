from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from .models import Money, WireModel


class OrderItemPayload(WireModel):
    product_id: str
    variant_sku: str | None = None
    quantity: int = Field(ge=1)
    price: Money


class OrderCustomerPayload(WireModel):
    name: str
    phone: str | None = None
    id: str | None = None


class OrderPaymentPayload(WireModel):
    method: str
    amount: Money
    reference: str | None = None


class CheckoutRequest(WireModel):
    items: list[OrderItemPayload] = Field(min_length=1)
    customer: OrderCustomerPayload
    payment: OrderPaymentPayload | None = None
    payments: list[OrderPaymentPayload] | None = None
    discount: Money | None = None
    branch_id: str
    membership_card_id: str | None = None
    idempotency_key: str
    delivery_method: Literal["pickup"] = "pickup"
    source: Literal["pos"] = "pos"

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class OrderCreated(WireModel):
    order_id: str
    order_number: str | None = None
    raw: dict[str, Any] | None = Field(default=None, exclude=True)
