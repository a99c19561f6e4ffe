from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Literal, Sequence

from .exceptions import UnknownPaymentMethodError
from .models import PaymentMethodConfig
from .pricing import ZERO, parse_amount, parse_positive_amount

logger = logging.getLogger(__name__)

PosPaymentMethod = Literal["cash", "bkash", "nagad", "rocket", "upay", "bank_transfer", "card"]
PaymentMode = Literal["single", "split"]

MFS_PROVIDERS: frozenset[str] = frozenset({"bkash", "nagad", "rocket", "upay"})
SPLIT_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class PaymentOption:
    key: str
    pos_method: PosPaymentMethod
    label: str
    needs_reference: bool
    note: str | None = None
    wallet_number: str | None = None


@dataclass(frozen=True)
class PosPaymentSelection:
    selected_key: str | None
    pos_method: PosPaymentMethod | None
    reference: str
    cash_received_raw: str


@dataclass(frozen=True)
class CashBreakdown:
    received: Decimal
    change: Decimal
    amount_due: Decimal


@dataclass(frozen=True)
class SplitPaymentEntry:
    id: str
    payment_key: str
    pos_method: PosPaymentMethod
    amount_raw: str = ""
    reference: str = ""
    error: str | None = None

    @property
    def amount(self) -> Decimal:
        return parse_positive_amount(self.amount_raw)


@dataclass(frozen=True)
class SplitTotals:
    paid: Decimal
    remaining: Decimal
    is_balanced: bool


def payment_key(method: PaymentMethodConfig, index: int) -> str:
    if method.id:
        return method.id
    return f"{method.type}:{method.provider or ''}:{method.name}:{index}"


def map_to_pos_method(method: PaymentMethodConfig) -> PosPaymentMethod | None:
    if method.type == "cash":
        return "cash"
    if method.type == "mfs":
        provider = (method.provider or "").lower()
        return provider if provider in MFS_PROVIDERS else None  # type: ignore[return-value]
    if method.type == "bank_transfer":
        return "bank_transfer"
    if method.type == "card":
        return "card"
    return None


def needs_reference(pos_method: PosPaymentMethod | None) -> bool:
    return pos_method != "cash"


def build_payment_options(methods: Sequence[PaymentMethodConfig]) -> list[PaymentOption]:
    options: list[PaymentOption] = []
    for index, method in enumerate(methods):
        if not method.is_active:
            continue
        pos_method = map_to_pos_method(method)
        if pos_method is None:
            continue
        options.append(
            PaymentOption(
                key=payment_key(method, index),
                pos_method=pos_method,
                label=method.name,
                needs_reference=needs_reference(pos_method),
                note=method.note,
                wallet_number=method.wallet_number if method.type == "mfs" else None,
            )
        )
    return options


def preferred_option(options: Sequence[PaymentOption]) -> PaymentOption | None:
    cash = next((option for option in options if option.pos_method == "cash"), None)
    return cash or (options[0] if options else None)


def parse_cash_received(raw: str | Decimal | None) -> Decimal:
    return parse_amount(raw)


def change(received: Decimal, total: Decimal) -> Decimal:
    return max(ZERO, received - total)


def amount_due(received: Decimal, total: Decimal) -> Decimal:
    return max(ZERO, total - received)


class PaymentResolver:
    """Selection state for the tender of one sale.

    Transitions are explicit method calls; each documents its side effects so
    the resolver behaves the same whether or not a UI is re-rendering.
    """

    def __init__(self, methods: Sequence[PaymentMethodConfig] | None = None) -> None:
        self._lock = threading.RLock()
        self._options: list[PaymentOption] = []
        self._selected_key: str | None = None
        self._reference = ""
        self._cash_received_raw = ""
        self._mode: PaymentMode = "single"
        self._splits: list[SplitPaymentEntry] = []
        self._split_ids = itertools.count(1)
        if methods is not None:
            self.on_payment_list_changed(methods)

    @property
    def options(self) -> tuple[PaymentOption, ...]:
        return tuple(self._options)

    @property
    def mode(self) -> PaymentMode:
        return self._mode

    @property
    def split_entries(self) -> tuple[SplitPaymentEntry, ...]:
        return tuple(self._splits)

    @property
    def selected_option(self) -> PaymentOption | None:
        with self._lock:
            return self._option_for(self._selected_key)

    @property
    def selection(self) -> PosPaymentSelection:
        with self._lock:
            option = self._option_for(self._selected_key)
            return PosPaymentSelection(
                selected_key=self._selected_key,
                pos_method=option.pos_method if option else None,
                reference=self._reference,
                cash_received_raw=self._cash_received_raw,
            )

    def on_payment_list_changed(self, methods: Sequence[PaymentMethodConfig]) -> PaymentOption | None:
        """Replace the selectable list; keep the user's choice if it still exists."""
        with self._lock:
            self._options = build_payment_options(methods)
            if self._option_for(self._selected_key) is not None:
                return self.selected_option
            fallback = preferred_option(self._options)
            self._switch_to(fallback.key if fallback else None)
            logger.info(
                "payment_method_auto_selected",
                extra={"payment_key": self._selected_key, "option_count": len(self._options)},
            )
            return fallback

    def select_payment_method(self, key: str) -> PaymentOption:
        with self._lock:
            option = self._option_for(key)
            if option is None:
                raise UnknownPaymentMethodError(key)
            self._switch_to(key)
            return option

    def set_reference(self, raw: str | None) -> None:
        with self._lock:
            self._reference = raw or ""

    def set_cash_received(self, raw: str | None) -> None:
        with self._lock:
            self._cash_received_raw = raw or ""

    def cash_breakdown(self, total: Decimal) -> CashBreakdown:
        with self._lock:
            option = self._option_for(self._selected_key)
            if self._mode != "single" or option is None or option.pos_method != "cash":
                return CashBreakdown(received=ZERO, change=ZERO, amount_due=ZERO)
            received = parse_cash_received(self._cash_received_raw)
            return CashBreakdown(received=received, change=change(received, total), amount_due=amount_due(received, total))

    def reset(self) -> None:
        """Clear tender inputs for a new sale; the chosen method survives."""
        with self._lock:
            self._reference = ""
            self._cash_received_raw = ""
            self._mode = "single"
            self._splits = []

    def set_mode(self, mode: PaymentMode) -> None:
        with self._lock:
            if mode == self._mode:
                return
            self._mode = mode
            self._reference = ""
            self._cash_received_raw = ""
            if mode == "split" and not self._splits:
                seed = self._option_for(self._selected_key) or preferred_option(self._options)
                if seed is not None:
                    self._splits.append(self._new_split(seed))

    def add_split(self, payment_key: str | None = None) -> SplitPaymentEntry:
        with self._lock:
            option = self._option_for(payment_key) if payment_key else (self.selected_option or preferred_option(self._options))
            if option is None:
                raise UnknownPaymentMethodError(payment_key or "")
            entry = self._new_split(option)
            self._splits.append(entry)
            return entry

    def update_split(
        self,
        entry_id: str,
        *,
        payment_key: str | None = None,
        amount: str | None = None,
        reference: str | None = None,
    ) -> SplitPaymentEntry | None:
        with self._lock:
            for index, entry in enumerate(self._splits):
                if entry.id != entry_id:
                    continue
                updated = replace(entry, error=None)
                if amount is not None:
                    updated = replace(updated, amount_raw=amount)
                if reference is not None:
                    updated = replace(updated, reference=reference)
                if payment_key is not None and payment_key != entry.payment_key:
                    option = self._option_for(payment_key)
                    if option is None:
                        raise UnknownPaymentMethodError(payment_key)
                    updated = replace(updated, payment_key=option.key, pos_method=option.pos_method, reference="")
                self._splits[index] = updated
                return updated
            return None

    def remove_split(self, entry_id: str) -> None:
        with self._lock:
            self._splits = [entry for entry in self._splits if entry.id != entry_id]

    def validate_split_entry(self, entry_id: str) -> str | None:
        with self._lock:
            entry = next((item for item in self._splits if item.id == entry_id), None)
            if entry is None:
                return None
            return self._split_error(entry)

    def validate_all_splits(self) -> bool:
        with self._lock:
            self._splits = [replace(entry, error=self._split_error(entry)) for entry in self._splits]
            return all(entry.error is None for entry in self._splits)

    def split_totals(self, total: Decimal) -> SplitTotals:
        with self._lock:
            paid = sum((entry.amount for entry in self._splits), ZERO)
            remaining = total - paid
            return SplitTotals(
                paid=paid,
                remaining=remaining,
                is_balanced=paid > 0 and abs(remaining) < SPLIT_TOLERANCE,
            )

    def _split_error(self, entry: SplitPaymentEntry) -> str | None:
        option = self._option_for(entry.payment_key)
        if option is None:
            return "Invalid payment method"
        if entry.amount <= 0:
            return "Amount required"
        if option.needs_reference and not entry.reference.strip():
            return f"Reference required for {option.label}"
        return None

    def _new_split(self, option: PaymentOption) -> SplitPaymentEntry:
        return SplitPaymentEntry(id=f"split_{next(self._split_ids)}", payment_key=option.key, pos_method=option.pos_method)

    def _option_for(self, key: str | None) -> PaymentOption | None:
        if key is None:
            return None
        return next((option for option in self._options if option.key == key), None)

    def _switch_to(self, key: str | None) -> None:
        if key == self._selected_key:
            return
        self._selected_key = key
        self._reference = ""
        self._cash_received_raw = ""
