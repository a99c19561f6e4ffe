from __future__ import annotations

import logging
from dataclasses import dataclass

from ..customers import build_card_query, build_customer_query, validate_new_customer
from ..models import Customer
from .base import BaseClient, unwrap_data

logger = logging.getLogger(__name__)

CUSTOMERS_PATH = "/api/v1/customers"


def _rows(data: object) -> list[dict]:
    if isinstance(data, dict):
        rows = data.get("docs") or data.get("items") or []
    elif isinstance(data, list):
        rows = data
    else:
        raise ValueError("Expected customer response to be a JSON object or list")
    return [row for row in rows if isinstance(row, dict)]


@dataclass
class CustomersClient(BaseClient):
    module: str = "customers"

    def search(self, query: str, *, limit: int = 5) -> list[Customer]:
        customer_query = build_customer_query(query)
        payload = self._request(
            "GET",
            CUSTOMERS_PATH,
            params=customer_query.as_params(limit),
            operation="search_customers",
        )
        rows = _rows(unwrap_data(payload, expected="customer search"))
        return [Customer.model_validate(row) for row in rows]

    def find_by_card(self, card_id: str) -> Customer | None:
        card_query = build_card_query(card_id)
        payload = self._request(
            "GET",
            CUSTOMERS_PATH,
            params=card_query.as_params(limit=1),
            operation="find_customer_by_card",
        )
        rows = _rows(unwrap_data(payload, expected="membership lookup"))
        return Customer.model_validate(rows[0]) if rows else None

    def create(self, name: str, phone: str) -> Customer:
        trimmed_name, trimmed_phone = validate_new_customer(name, phone)
        payload = self._request(
            "POST",
            CUSTOMERS_PATH,
            json_body={"name": trimmed_name, "phone": trimmed_phone},
            operation="create_customer",
            invalidate_paths=[CUSTOMERS_PATH],
        )
        data = unwrap_data(payload, expected="created customer")
        if not isinstance(data, dict):
            raise ValueError("Customer saved, but response was empty")
        customer = Customer.model_validate(data)
        logger.info("customer_created", extra={"customer_id": customer.id})
        return customer
