from __future__ import annotations

import re
import threading
from dataclasses import dataclass

from .exceptions import CustomerValidationError
from .models import Customer
from .models_orders import OrderCustomerPayload

WALK_IN_CUSTOMER = "Walk-in Customer"
MIN_SEARCH_LENGTH = 2
MIN_CARD_LOOKUP_LENGTH = 4
MEMBERSHIP_CARD_PARAM = "membership.cardId"

_BD_PHONE = re.compile(r"^01\d{9}$")
_DIGITS = re.compile(r"^\d{4,}$")


@dataclass(frozen=True)
class PhoneSearch:
    exact: bool
    likely: bool


@dataclass(frozen=True)
class CustomerQuery:
    """Directory filter derived from free text typed at the till."""

    param: str
    value: str

    def as_params(self, limit: int = 5) -> dict[str, str | int]:
        return {self.param: self.value, "limit": limit}


def is_valid_phone(phone: str) -> bool:
    return bool(_BD_PHONE.match(phone))


def classify_phone_search(query: str) -> PhoneSearch:
    trimmed = query.strip()
    return PhoneSearch(exact=bool(_BD_PHONE.match(trimmed)), likely=bool(_DIGITS.match(trimmed)))


def build_customer_query(text: str) -> CustomerQuery:
    trimmed = text.strip()
    if len(trimmed) < MIN_SEARCH_LENGTH:
        raise CustomerValidationError(
            f"Enter at least {MIN_SEARCH_LENGTH} characters to search", field="query"
        )
    phone = classify_phone_search(trimmed)
    if phone.exact:
        return CustomerQuery(param="phone", value=trimmed)
    if phone.likely:
        return CustomerQuery(param="phone[contains]", value=trimmed)
    return CustomerQuery(param="name[contains]", value=trimmed)


def build_card_query(card_id: str) -> CustomerQuery:
    trimmed = (card_id or "").strip()
    if len(trimmed) < MIN_CARD_LOOKUP_LENGTH:
        raise CustomerValidationError(
            f"Membership card must be at least {MIN_CARD_LOOKUP_LENGTH} characters", field="membership_card_id"
        )
    return CustomerQuery(param=MEMBERSHIP_CARD_PARAM, value=trimmed)


def validate_new_customer(name: str | None, phone: str | None) -> tuple[str, str]:
    trimmed_name = (name or "").strip()
    trimmed_phone = (phone or "").strip()
    if len(trimmed_name) < 2:
        raise CustomerValidationError("Customer name must be at least 2 characters", field="name")
    if not is_valid_phone(trimmed_phone):
        raise CustomerValidationError("Phone number must be 11 digits (01XXXXXXXXX)", field="phone")
    return trimmed_name, trimmed_phone


class CustomerSelection:
    """Who the sale is for: a directory match or freeform guest details.

    Typing into the guest fields detaches a previously selected directory
    customer, mirroring how a clerk overrides a match. The membership card
    is sent with the order separately and guest edits leave it alone.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._customer: Customer | None = None
        self._name = ""
        self._phone = ""
        self._membership_card_id = ""

    @property
    def customer(self) -> Customer | None:
        return self._customer

    @property
    def name(self) -> str:
        return self._name

    @property
    def phone(self) -> str:
        return self._phone

    @property
    def membership_card_id(self) -> str:
        return self._membership_card_id

    def select(self, customer: Customer) -> None:
        with self._lock:
            self._customer = customer
            self._name = customer.name or ""
            self._phone = customer.phone or ""
            self._membership_card_id = customer.membership_card_id or ""

    def set_guest_name(self, value: str | None) -> None:
        with self._lock:
            self._name = value or ""
            self._customer = None

    def set_guest_phone(self, value: str | None) -> None:
        with self._lock:
            self._phone = value or ""
            self._customer = None

    def set_membership_card_id(self, value: str | None) -> None:
        with self._lock:
            self._membership_card_id = value or ""

    def reset(self) -> None:
        with self._lock:
            self._customer = None
            self._name = ""
            self._phone = ""
            self._membership_card_id = ""

    def to_payload(self) -> OrderCustomerPayload:
        with self._lock:
            phone = self._phone.strip()
            if phone and not is_valid_phone(phone):
                raise CustomerValidationError("Phone number must be 11 digits (01XXXXXXXXX)", field="phone")
            return OrderCustomerPayload(
                name=self._name.strip() or WALK_IN_CUSTOMER,
                phone=phone or None,
                id=self._customer.id if self._customer else None,
            )
