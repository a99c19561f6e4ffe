from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from ..idempotency import idempotency_headers
from ..models_orders import CheckoutRequest, OrderCreated
from .base import BaseClient, unwrap_data

logger = logging.getLogger(__name__)

ORDERS_PATH = "/api/v1/pos/orders"


@dataclass
class OrdersClient(BaseClient):
    module: str = "orders"

    def submit(self, payload: CheckoutRequest | Mapping[str, Any]) -> OrderCreated:
        """Create a POS order.

        The idempotency key travels in both the header and the body, so the
        submission may be retried on transport failure without double-booking.
        """
        request = _coerce_model(payload, CheckoutRequest)
        body = request.to_wire()
        data = self._request(
            "POST",
            ORDERS_PATH,
            json_body=body,
            headers=idempotency_headers(request.idempotency_key),
            retry_mutation=True,
            operation="submit_order",
        )
        if not isinstance(data, dict):
            raise ValueError("Expected order response to be a JSON object")
        order_id = extract_order_id(data)
        if not order_id:
            raise ValueError("Order response did not include an order id")
        inner = data.get("data") if isinstance(data.get("data"), dict) else data
        order_number = inner.get("orderNumber") or data.get("orderNumber")
        logger.info(
            "order_submitted",
            extra={"order_id": order_id, "idempotency_key": request.idempotency_key},
        )
        return OrderCreated(order_id=order_id, order_number=order_number, raw=data)

    def fetch_receipt(self, order_id: str) -> dict[str, Any]:
        if not order_id:
            raise ValueError("order_id is required")
        payload = self._request("GET", f"{ORDERS_PATH}/{order_id}/receipt", operation="fetch_receipt")
        data = unwrap_data(payload, expected="receipt")
        if not isinstance(data, dict):
            raise ValueError("Expected receipt response to be a JSON object")
        return data


def extract_order_id(payload: Mapping[str, Any]) -> str | None:
    """Pull the created order's id out of the shapes the order endpoint returns."""
    inner = payload.get("data")
    candidates: list[Any] = []
    if isinstance(inner, Mapping):
        candidates.extend(inner.get(key) for key in ("orderId", "_id", "id"))
    candidates.extend(payload.get(key) for key in ("orderId", "_id", "id"))
    for candidate in candidates:
        if candidate:
            return str(candidate)
    return None


def _coerce_model(payload, model):
    if isinstance(payload, model):
        return payload
    return model.model_validate(payload)
