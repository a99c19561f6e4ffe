from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Literal

from .cart import CartLineItem, CartStore
from .clients.catalog_client import MIN_LOOKUP_CODE_LENGTH, CatalogClient
from .clients.customers_client import CustomersClient
from .clients.orders_client import OrdersClient
from .clients.payment_methods_client import PaymentMethodsClient
from .customers import CustomerSelection
from .exceptions import (
    ApiError,
    BarcodeNotFoundError,
    CheckoutValidationError,
    EmptyCartError,
    InsufficientCashError,
    MissingPaymentReferenceError,
    NoPaymentMethodError,
    OrderSubmissionError,
    OrderSubmissionNetworkError,
    SplitPaymentError,
    SubmissionInProgressError,
    TransportError,
)
from .idempotency import SaleAttempt, new_sale_attempt
from .models import Customer, PaymentMethodConfig, PosProduct
from .models_orders import CheckoutRequest, OrderItemPayload, OrderPaymentPayload
from .models_receipt import Receipt
from .payment import PaymentResolver, parse_cash_received
from .receipt import ReceiptNormalizer
from .telemetry import TelemetryLogger, build_event

logger = logging.getLogger(__name__)

ConfirmFn = Callable[[str], bool]

CLEAR_CART_PROMPT = "Clear all items from the cart?"


class CheckoutState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class CheckoutResult:
    order_id: str
    order_number: str | None
    idempotency_key: str
    total: Decimal
    cash_received: Decimal | None = None


@dataclass(frozen=True)
class LookupOutcome:
    status: Literal["added", "superseded"]
    code: str
    line: CartLineItem | None = None
    product: PosProduct | None = None


def _request_body(request: CheckoutRequest) -> dict[str, Any]:
    return request.model_dump(mode="json", exclude={"idempotency_key"})


class CheckoutOrchestrator:
    """Runs one terminal's sale from scan to submitted order.

    The orchestrator owns the cart, tender and customer for the current sale
    and moves through ``IDLE -> SUBMITTING -> COMPLETED | FAILED``. Only one
    order submission may be outstanding. A submission that could not reach
    the server keeps its idempotency key, so retrying that exact order cannot
    book it twice; any other failure or a changed order gets a new key.

    Network calls block. Hosts typically run ``submit`` and
    ``lookup_barcode`` on a worker thread; every state change is taken
    under an internal lock.
    """

    def __init__(
        self,
        *,
        orders: OrdersClient,
        catalog: CatalogClient | None = None,
        payment_methods: PaymentMethodsClient | None = None,
        customers: CustomersClient | None = None,
        cart: CartStore | None = None,
        payment: PaymentResolver | None = None,
        customer: CustomerSelection | None = None,
        receipt_normalizer: ReceiptNormalizer | None = None,
        terminal_id: str = "default",
        block_cash_underpayment: bool = False,
        telemetry: TelemetryLogger | None = None,
    ) -> None:
        self.orders = orders
        self.catalog = catalog
        self.payment_methods = payment_methods
        self.customers = customers
        self.cart = cart or CartStore()
        self.payment = payment or PaymentResolver()
        self.customer = customer or CustomerSelection()
        self.receipt_normalizer = receipt_normalizer or ReceiptNormalizer()
        self.terminal_id = terminal_id
        self.block_cash_underpayment = block_cash_underpayment
        self.telemetry = telemetry
        self._lock = threading.RLock()
        self._state = CheckoutState.IDLE
        self._attempt: SaleAttempt | None = None
        self._attempt_body: dict[str, Any] | None = None
        self._last_result: CheckoutResult | None = None
        self._last_error: Exception | None = None
        self._branch_name: str | None = None
        self._lookup_generation = 0

    @property
    def state(self) -> CheckoutState:
        return self._state

    @property
    def is_submitting(self) -> bool:
        return self._state is CheckoutState.SUBMITTING

    @property
    def idempotency_key(self) -> str | None:
        with self._lock:
            return self._attempt.idempotency_key if self._attempt else None

    @property
    def last_result(self) -> CheckoutResult | None:
        return self._last_result

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    def submit(
        self,
        cart: CartStore | None = None,
        payment: PaymentResolver | None = None,
        customer: CustomerSelection | None = None,
        *,
        branch_id: str,
        branch: str | None = None,
    ) -> CheckoutResult:
        """Validate the sale and create the order.

        Validation errors send nothing and leave the state as it was. Once the
        request is out, success moves to ``COMPLETED`` and failure to
        ``FAILED``; either way the cart and tender are left as they are until
        ``start_new_sale`` is called.

        Every call gets a fresh idempotency key, except a retry after a
        transport failure whose order body is unchanged: the first request
        may have reached the server, so the retry reuses its key.
        """
        cart = cart or self.cart
        payment = payment or self.payment
        customer = customer or self.customer
        with self._lock:
            self._ensure_cart_editable()
            attempt = new_sale_attempt(self.terminal_id)
            request, cash_received = self._build_request(cart, payment, customer, branch_id, attempt)
            body = _request_body(request)
            if self._attempt is not None and self._attempt_body == body:
                attempt = self._attempt
                request = request.model_copy(update={"idempotency_key": attempt.idempotency_key})
            self._attempt = attempt
            self._attempt_body = body
            self._state = CheckoutState.SUBMITTING
            self._last_error = None
            total = cart.summary.total
            if branch:
                self._branch_name = branch

        logger.info(
            "checkout_submit_attempt",
            extra={
                "idempotency_key": attempt.idempotency_key,
                "branch_id": branch_id,
                "item_count": len(request.items),
                "split": request.payments is not None,
            },
        )
        started = time.monotonic()
        try:
            created = self.orders.submit(request)
        except TransportError as exc:
            failure: OrderSubmissionError = OrderSubmissionNetworkError(
                "Could not reach the order service. The sale was kept; check the connection and retry.",
                cause=exc,
            )
            self._fail(failure, started, exc, keep_attempt=True)
            raise failure from exc
        except ApiError as exc:
            failure = OrderSubmissionError(exc.message or "The order was rejected", cause=exc)
            self._fail(failure, started, exc)
            raise failure from exc
        except ValueError as exc:
            failure = OrderSubmissionError(str(exc))
            self._fail(failure, started, None)
            raise failure from exc
        except Exception as exc:
            self._fail(exc, started, None)
            raise

        result = CheckoutResult(
            order_id=created.order_id,
            order_number=created.order_number,
            idempotency_key=attempt.idempotency_key,
            total=total,
            cash_received=cash_received,
        )
        with self._lock:
            self._state = CheckoutState.COMPLETED
            self._attempt = None
            self._attempt_body = None
            self._last_result = result
        logger.info(
            "checkout_completed",
            extra={"order_id": result.order_id, "idempotency_key": result.idempotency_key},
        )
        self._emit("submit_order", started, success=True)
        return result

    def lookup_barcode(self, code: str, *, branch_id: str | None = None) -> LookupOutcome:
        """Look up a scanned code and add the match to the cart.

        Only the most recently issued lookup may touch the cart. A lookup
        overtaken by a newer scan reports ``superseded`` and changes nothing.
        Scans are refused while an order is being submitted and after it has
        completed, until ``start_new_sale``.
        """
        if self.catalog is None:
            raise RuntimeError("Barcode lookup requires a catalog client")
        trimmed = (code or "").strip()
        if len(trimmed) < MIN_LOOKUP_CODE_LENGTH:
            raise BarcodeNotFoundError(trimmed, f"Code must be at least {MIN_LOOKUP_CODE_LENGTH} characters")
        with self._lock:
            self._ensure_cart_editable()
            self._lookup_generation += 1
            generation = self._lookup_generation

        try:
            result = self.catalog.lookup(trimmed, branch_id=branch_id)
        except ApiError:
            with self._lock:
                if generation != self._lookup_generation:
                    return self._superseded(trimmed, generation)
            raise

        with self._lock:
            if generation != self._lookup_generation:
                return self._superseded(trimmed, generation)
            if result is None:
                logger.info("barcode_not_found", extra={"barcode": trimmed})
                raise BarcodeNotFoundError(trimmed)
            self._ensure_cart_editable()
            line = self.cart.add_item(result.as_cart_product(), result.variant_sku)
            return LookupOutcome(status="added", code=trimmed, line=line, product=result.product)

    def load_payment_methods(self, *, refresh: bool = False) -> list[PaymentMethodConfig]:
        if self.payment_methods is None:
            raise RuntimeError("Loading payment methods requires a payment methods client")
        methods = self.payment_methods.refresh() if refresh else self.payment_methods.list_methods()
        self.payment.on_payment_list_changed(methods)
        return methods

    def search_customers(self, query: str) -> list[Customer]:
        if self.customers is None:
            raise RuntimeError("Customer search requires a customers client")
        return self.customers.search(query)

    def create_customer(self, name: str, phone: str) -> Customer:
        """Register a customer in the directory and attach them to this sale."""
        if self.customers is None:
            raise RuntimeError("Creating customers requires a customers client")
        created = self.customers.create(name, phone)
        self.customer.select(created)
        return created

    def find_customer_by_card(self, card_id: str) -> Customer | None:
        """Attach the directory customer holding ``card_id``; ``None`` leaves the sale as it was."""
        if self.customers is None:
            raise RuntimeError("Membership lookup requires a customers client")
        found = self.customers.find_by_card(card_id)
        if found is None:
            logger.info("membership_card_not_found")
            return None
        self.customer.select(found)
        if not found.membership_card_id:
            self.customer.set_membership_card_id(card_id.strip())
        return found

    def start_new_sale(self) -> None:
        with self._lock:
            if self._state is CheckoutState.SUBMITTING:
                raise SubmissionInProgressError()
            self.cart.reset_cart()
            self.payment.reset()
            self.customer.reset()
            self._state = CheckoutState.IDLE
            self._attempt = None
            self._attempt_body = None
            self._last_result = None
            self._last_error = None
            self._lookup_generation += 1
        logger.info("sale_reset", extra={"terminal_id": self.terminal_id})

    def clear_cart(self, confirm: ConfirmFn) -> bool:
        with self._lock:
            if self._state is CheckoutState.SUBMITTING:
                raise SubmissionInProgressError()
            if self.cart.is_empty:
                return False
        if not confirm(CLEAR_CART_PROMPT):
            return False
        with self._lock:
            if self._state is CheckoutState.SUBMITTING:
                raise SubmissionInProgressError()
            self.cart.clear_cart()
        return True

    def fetch_receipt(self, order_id: str | None = None, *, branch: str | None = None) -> Receipt:
        last = self._last_result
        target = order_id or (last.order_id if last else None)
        if not target:
            raise CheckoutValidationError("No completed order to print a receipt for")
        payload = self.orders.fetch_receipt(target)
        cash_received = last.cash_received if last and last.order_id == target else None
        return self.receipt_normalizer.normalize(
            payload,
            cash_received=cash_received,
            branch=branch or self._branch_name,
        )

    def _build_request(
        self,
        cart: CartStore,
        payment: PaymentResolver,
        customer: CustomerSelection,
        branch_id: str,
        attempt: SaleAttempt,
    ) -> tuple[CheckoutRequest, Decimal | None]:
        lines = cart.items
        if not lines:
            raise EmptyCartError()
        if not (branch_id or "").strip():
            raise CheckoutValidationError("No branch selected", field="branch_id")
        if not payment.options:
            raise NoPaymentMethodError()

        summary = cart.summary
        single: OrderPaymentPayload | None = None
        splits: list[OrderPaymentPayload] | None = None
        cash_received: Decimal | None = None
        if payment.mode == "split":
            splits = self._split_payments(payment, summary.total)
        else:
            single, cash_received = self._single_payment(payment, summary.total)

        request = CheckoutRequest(
            items=[
                OrderItemPayload(
                    product_id=line.product_id,
                    variant_sku=line.variant_sku,
                    quantity=line.quantity,
                    price=line.unit_price,
                )
                for line in lines
            ],
            customer=customer.to_payload(),
            payment=single,
            payments=splits,
            discount=summary.discount if summary.discount > 0 else None,
            branch_id=branch_id.strip(),
            membership_card_id=customer.membership_card_id.strip() or None,
            idempotency_key=attempt.idempotency_key,
        )
        return request, cash_received

    def _single_payment(
        self, payment: PaymentResolver, total: Decimal
    ) -> tuple[OrderPaymentPayload, Decimal | None]:
        option = payment.selected_option
        if option is None:
            raise NoPaymentMethodError()
        selection = payment.selection
        reference = selection.reference.strip()
        if option.needs_reference and not reference:
            raise MissingPaymentReferenceError(option.pos_method)

        cash_received: Decimal | None = None
        if option.pos_method == "cash" and selection.cash_received_raw.strip():
            cash_received = parse_cash_received(selection.cash_received_raw)
            if cash_received < total:
                if self.block_cash_underpayment:
                    raise InsufficientCashError("Insufficient cash received", field="cash_received")
                logger.warning(
                    "checkout_cash_underpayment",
                    extra={"amount_due": str(total - cash_received), "total": str(total)},
                )
        elif option.pos_method == "cash" and self.block_cash_underpayment:
            raise InsufficientCashError("Enter cash received", field="cash_received")

        return (
            OrderPaymentPayload(
                method=option.pos_method,
                amount=total,
                reference=reference if option.needs_reference else None,
            ),
            cash_received,
        )

    @staticmethod
    def _split_payments(payment: PaymentResolver, total: Decimal) -> list[OrderPaymentPayload]:
        if not payment.split_entries:
            raise SplitPaymentError("Add at least one split payment")
        if not payment.validate_all_splits():
            raise SplitPaymentError("Please fix split payment errors")
        totals = payment.split_totals(total)
        if not totals.is_balanced:
            raise SplitPaymentError(f"Split payment total must match order total (remaining {totals.remaining})")
        return [
            OrderPaymentPayload(
                method=entry.pos_method,
                amount=entry.amount,
                reference=entry.reference.strip() or None,
            )
            for entry in payment.split_entries
        ]

    def _fail(
        self,
        failure: Exception,
        started: float,
        cause: ApiError | None,
        *,
        keep_attempt: bool = False,
    ) -> None:
        error_code = cause.code if cause else getattr(failure, "code", type(failure).__name__)
        with self._lock:
            self._state = CheckoutState.FAILED
            self._last_error = failure
            key = self._attempt.idempotency_key if self._attempt else None
            if not keep_attempt:
                self._attempt = None
                self._attempt_body = None
        logger.warning(
            "checkout_failed",
            extra={
                "idempotency_key": key,
                "error_code": error_code,
                "trace_id": getattr(failure, "trace_id", None),
                "key_kept": keep_attempt,
            },
        )
        self._emit("submit_order", started, success=False, error_code=error_code)

    def _ensure_cart_editable(self) -> None:
        if self._state is CheckoutState.SUBMITTING:
            raise SubmissionInProgressError()
        if self._state is CheckoutState.COMPLETED:
            raise CheckoutValidationError("This sale is already completed; start a new sale first")

    def _superseded(self, code: str, generation: int) -> LookupOutcome:
        logger.info("barcode_lookup_superseded", extra={"barcode": code, "generation": generation})
        return LookupOutcome(status="superseded", code=code)

    def _emit(self, action: str, started: float, *, success: bool, error_code: str | None = None) -> None:
        if self.telemetry is None:
            return
        last = self.orders.http.last_operation
        event = build_event(
            category="api_call_result",
            name="api_call_result",
            module="checkout",
            action=action,
            trace_id=last.trace_id if last else None,
            duration_ms=int((time.monotonic() - started) * 1000),
            success=success,
            error_code=error_code,
            context={"terminal_id": self.terminal_id, "attempts": last.attempts if last else 0},
        )
        self.telemetry.emit(event)
