from __future__ import annotations

from decimal import Decimal
from typing import Callable

import pytest
from pos_helpers import BKASH_KEY, CARD_KEY, make_product, payment_methods, variant_product

from commerce_pos_sdk.checkout import CheckoutOrchestrator, CheckoutState
from commerce_pos_sdk.exceptions import (
    BarcodeNotFoundError,
    CheckoutValidationError,
    CustomerValidationError,
    EmptyCartError,
    InsufficientCashError,
    MissingPaymentReferenceError,
    NoPaymentMethodError,
    OrderSubmissionError,
    OrderSubmissionNetworkError,
    SplitPaymentError,
    SubmissionInProgressError,
    TransportError,
    ValidationError,
)
from commerce_pos_sdk.http_client import LastOperation
from commerce_pos_sdk.models import Customer, LookupResult
from commerce_pos_sdk.models_orders import CheckoutRequest, OrderCreated
from commerce_pos_sdk.payment import PaymentResolver
from commerce_pos_sdk.telemetry import TelemetryLogger


class _FakeHttp:
    def __init__(self) -> None:
        self.last_operation: LastOperation | None = None


class FakeOrdersClient:
    def __init__(self) -> None:
        self.http = _FakeHttp()
        self.requests: list[CheckoutRequest] = []
        self.failures: list[Exception] = []
        self.on_submit: Callable[[], None] | None = None
        self.receipt: dict = {}

    def submit(self, payload: CheckoutRequest) -> OrderCreated:
        self.requests.append(payload)
        self.http.last_operation = LastOperation(
            module="orders", operation="submit_order", duration_ms=5, result="success", trace_id="trace-1"
        )
        if self.on_submit:
            self.on_submit()
        if self.failures:
            raise self.failures.pop(0)
        return OrderCreated(order_id=f"ord-{len(self.requests)}", order_number=f"POS-{len(self.requests):04d}")

    def fetch_receipt(self, order_id: str) -> dict:
        return {"success": True, "data": {**self.receipt, "orderId": order_id}}


class FakeCatalogClient:
    def __init__(self, results: dict[str, LookupResult | None]) -> None:
        self.results = results
        self.calls: list[str] = []
        self.before_return: dict[str, Callable[[], None]] = {}

    def lookup(self, code: str, *, branch_id: str | None = None) -> LookupResult | None:
        self.calls.append(code)
        hook = self.before_return.get(code)
        if hook:
            hook()
        return self.results.get(code)


def _transport_error() -> TransportError:
    return TransportError(
        code="TRANSPORT_ERROR",
        message="timed out",
        details={"type": "ReadTimeout", "attempts": 4},
        trace_id="trace-1",
        status_code=0,
    )


def _orchestrator(**kwargs) -> tuple[CheckoutOrchestrator, FakeOrdersClient]:
    orders = FakeOrdersClient()
    orchestrator = CheckoutOrchestrator(
        orders=orders,
        payment=PaymentResolver(payment_methods()),
        terminal_id="till-1",
        **kwargs,
    )
    return orchestrator, orders


def _ready(orchestrator: CheckoutOrchestrator) -> None:
    orchestrator.cart.add_item(variant_product(), "SHIRT-M")
    orchestrator.payment.set_cash_received("500")


def test_scenario_a_empty_cart_sends_nothing() -> None:
    orchestrator, orders = _orchestrator()
    with pytest.raises(EmptyCartError):
        orchestrator.submit(branch_id="branch-1")
    assert orders.requests == []
    assert orchestrator.state is CheckoutState.IDLE


def test_reference_required_for_non_cash() -> None:
    orchestrator, orders = _orchestrator()
    _ready(orchestrator)
    orchestrator.payment.select_payment_method(BKASH_KEY)
    with pytest.raises(MissingPaymentReferenceError):
        orchestrator.submit(branch_id="branch-1")
    orchestrator.payment.set_reference("   ")
    with pytest.raises(MissingPaymentReferenceError):
        orchestrator.submit(branch_id="branch-1")
    assert orders.requests == []
    assert len(orchestrator.cart.items) == 1


def test_blank_branch_is_rejected() -> None:
    orchestrator, orders = _orchestrator()
    _ready(orchestrator)
    with pytest.raises(CheckoutValidationError):
        orchestrator.submit(branch_id="  ")
    assert orders.requests == []


def test_no_payment_methods() -> None:
    orders = FakeOrdersClient()
    orchestrator = CheckoutOrchestrator(orders=orders)
    orchestrator.cart.add_item(make_product())
    with pytest.raises(NoPaymentMethodError):
        orchestrator.submit(branch_id="branch-1")


def test_invalid_guest_phone_blocks_submit() -> None:
    orchestrator, orders = _orchestrator()
    _ready(orchestrator)
    orchestrator.customer.set_guest_phone("12345")
    with pytest.raises(CustomerValidationError):
        orchestrator.submit(branch_id="branch-1")
    assert orders.requests == []


def test_successful_cash_submit_builds_request_and_keeps_cart() -> None:
    orchestrator, orders = _orchestrator()
    _ready(orchestrator)
    orchestrator.cart.set_discount_input("50")

    result = orchestrator.submit(branch_id="branch-1", branch="Dhanmondi")

    assert result.order_id == "ord-1"
    assert result.order_number == "POS-0001"
    assert result.cash_received == Decimal("500")
    assert result.total == Decimal("400")
    assert result.idempotency_key.startswith("pos_till-1_")
    assert orchestrator.state is CheckoutState.COMPLETED
    assert orchestrator.idempotency_key is None
    assert len(orchestrator.cart.items) == 1

    wire = orders.requests[0].to_wire()
    assert wire["items"] == [{"productId": "prod-1", "variantSku": "SHIRT-M", "quantity": 1, "price": 450.0}]
    assert wire["payment"] == {"method": "cash", "amount": 400.0}
    assert wire["discount"] == 50.0
    assert wire["customer"] == {"name": "Walk-in Customer"}
    assert wire["branchId"] == "branch-1"
    assert wire["deliveryMethod"] == "pickup"
    assert wire["idempotencyKey"] == result.idempotency_key


def test_reference_method_sends_trimmed_reference() -> None:
    orchestrator, orders = _orchestrator()
    _ready(orchestrator)
    orchestrator.payment.select_payment_method(BKASH_KEY)
    orchestrator.payment.set_reference("  TX-77 ")
    result = orchestrator.submit(branch_id="branch-1")
    assert orders.requests[0].to_wire()["payment"] == {"method": "bkash", "amount": 450.0, "reference": "TX-77"}
    assert result.cash_received is None


def test_network_failure_preserves_state_and_reuses_key_on_retry() -> None:
    orchestrator, orders = _orchestrator()
    _ready(orchestrator)
    orchestrator.payment.select_payment_method(BKASH_KEY)
    orchestrator.payment.set_reference("TX-1")
    orders.failures.append(_transport_error())

    with pytest.raises(OrderSubmissionNetworkError) as excinfo:
        orchestrator.submit(branch_id="branch-1")

    assert excinfo.value.trace_id == "trace-1"
    assert orchestrator.state is CheckoutState.FAILED
    assert len(orchestrator.cart.items) == 1
    assert orchestrator.payment.selection.reference == "TX-1"
    first_key = orders.requests[0].idempotency_key
    assert orchestrator.idempotency_key == first_key

    result = orchestrator.submit(branch_id="branch-1")

    assert result.idempotency_key == first_key
    assert orders.requests[1].idempotency_key == first_key
    assert orchestrator.state is CheckoutState.COMPLETED


def test_server_rejection_is_order_submission_error() -> None:
    orchestrator, orders = _orchestrator()
    _ready(orchestrator)
    orders.failures.append(
        ValidationError(code="VALIDATION_ERROR", message="Insufficient stock", details=None, trace_id=None, status_code=400)
    )
    with pytest.raises(OrderSubmissionError) as excinfo:
        orchestrator.submit(branch_id="branch-1")
    assert not isinstance(excinfo.value, OrderSubmissionNetworkError)
    assert excinfo.value.message == "Insufficient stock"
    assert orchestrator.state is CheckoutState.FAILED


def test_reentrant_submit_is_refused() -> None:
    orchestrator, orders = _orchestrator()
    _ready(orchestrator)
    seen: list[Exception] = []

    def _resubmit() -> None:
        assert orchestrator.is_submitting
        try:
            orchestrator.submit(branch_id="branch-1")
        except SubmissionInProgressError as exc:
            seen.append(exc)

    orders.on_submit = _resubmit
    orchestrator.submit(branch_id="branch-1")

    assert len(seen) == 1
    assert len(orders.requests) == 1


def test_completed_sale_must_be_reset_before_next_submit() -> None:
    orchestrator, orders = _orchestrator()
    _ready(orchestrator)
    first = orchestrator.submit(branch_id="branch-1")
    with pytest.raises(CheckoutValidationError):
        orchestrator.submit(branch_id="branch-1")

    orchestrator.start_new_sale()
    assert orchestrator.cart.is_empty
    assert orchestrator.state is CheckoutState.IDLE

    _ready(orchestrator)
    second = orchestrator.submit(branch_id="branch-1")
    assert second.idempotency_key != first.idempotency_key


def test_start_new_sale_resets_everything_together() -> None:
    orchestrator, _ = _orchestrator()
    _ready(orchestrator)
    orchestrator.cart.set_discount_input("20")
    orchestrator.payment.select_payment_method(BKASH_KEY)
    orchestrator.payment.set_reference("TX-1")
    orchestrator.customer.set_guest_name("Rafi")

    orchestrator.start_new_sale()

    assert orchestrator.cart.is_empty
    assert orchestrator.cart.discount_input == ""
    assert orchestrator.payment.selection.reference == ""
    assert orchestrator.customer.name == ""
    assert orchestrator.last_result is None


def test_cash_underpayment_allowed_by_default() -> None:
    orchestrator, orders = _orchestrator()
    orchestrator.cart.add_item(variant_product(), "SHIRT-M")
    orchestrator.payment.set_cash_received("400")
    result = orchestrator.submit(branch_id="branch-1")
    assert result.cash_received == Decimal("400")
    assert len(orders.requests) == 1


def test_cash_underpayment_can_be_blocked() -> None:
    orchestrator, orders = _orchestrator(block_cash_underpayment=True)
    orchestrator.cart.add_item(variant_product(), "SHIRT-M")
    orchestrator.payment.set_cash_received("400")
    with pytest.raises(InsufficientCashError):
        orchestrator.submit(branch_id="branch-1")
    orchestrator.payment.set_cash_received("")
    with pytest.raises(InsufficientCashError):
        orchestrator.submit(branch_id="branch-1")
    assert orders.requests == []


def test_split_payment_submit() -> None:
    orchestrator, orders = _orchestrator()
    orchestrator.cart.add_item(variant_product(), "SHIRT-M")
    payment = orchestrator.payment
    payment.set_mode("split")
    cash = payment.split_entries[0]
    payment.update_split(cash.id, amount="200")
    card = payment.add_split(CARD_KEY)
    payment.update_split(card.id, amount="250", reference="AUTH-9")

    orchestrator.submit(branch_id="branch-1")

    wire = orders.requests[0].to_wire()
    assert "payment" not in wire
    assert wire["payments"] == [
        {"method": "cash", "amount": 200.0},
        {"method": "card", "amount": 250.0, "reference": "AUTH-9"},
    ]


def test_unbalanced_split_is_rejected() -> None:
    orchestrator, orders = _orchestrator()
    orchestrator.cart.add_item(variant_product(), "SHIRT-M")
    orchestrator.payment.set_mode("split")
    entry = orchestrator.payment.split_entries[0]
    orchestrator.payment.update_split(entry.id, amount="100")
    with pytest.raises(SplitPaymentError):
        orchestrator.submit(branch_id="branch-1")
    assert orders.requests == []


def test_barcode_lookup_adds_match() -> None:
    product = variant_product()
    catalog = FakeCatalogClient({"SHIRT-M": LookupResult(product=product, variant_sku="SHIRT-M")})
    orchestrator, _ = _orchestrator(catalog=catalog)

    outcome = orchestrator.lookup_barcode(" SHIRT-M ")

    assert outcome.status == "added"
    assert outcome.line is not None and outcome.line.variant_sku == "SHIRT-M"
    assert catalog.calls == ["SHIRT-M"]


def test_barcode_not_found_leaves_cart() -> None:
    catalog = FakeCatalogClient({})
    orchestrator, _ = _orchestrator(catalog=catalog)
    with pytest.raises(BarcodeNotFoundError) as excinfo:
        orchestrator.lookup_barcode("999")
    assert excinfo.value.barcode == "999"
    assert orchestrator.cart.is_empty


def test_short_barcode_rejected_before_request() -> None:
    catalog = FakeCatalogClient({})
    orchestrator, _ = _orchestrator(catalog=catalog)
    with pytest.raises(BarcodeNotFoundError):
        orchestrator.lookup_barcode("9")
    assert catalog.calls == []


def test_stale_lookup_result_is_discarded() -> None:
    first = make_product("first")
    second = make_product("second")
    catalog = FakeCatalogClient(
        {
            "FIRST": LookupResult(product=first),
            "SECOND": LookupResult(product=second),
        }
    )
    orchestrator, _ = _orchestrator(catalog=catalog)
    newer: list = []
    # The second scan is issued and resolved while the first is still in flight.
    catalog.before_return["FIRST"] = lambda: newer.append(orchestrator.lookup_barcode("SECOND"))

    outcome = orchestrator.lookup_barcode("FIRST")

    assert outcome.status == "superseded"
    assert newer[0].status == "added"
    assert [line.product_id for line in orchestrator.cart.items] == ["second"]


def test_clear_cart_asks_for_confirmation() -> None:
    orchestrator, _ = _orchestrator()
    orchestrator.cart.add_item(make_product())
    prompts: list[str] = []

    assert orchestrator.clear_cart(lambda prompt: prompts.append(prompt) or False) is False
    assert len(orchestrator.cart.items) == 1
    assert orchestrator.clear_cart(lambda prompt: True) is True
    assert orchestrator.cart.is_empty
    assert prompts == ["Clear all items from the cart?"]


def test_fetch_receipt_uses_remembered_cash() -> None:
    orchestrator, orders = _orchestrator()
    orders.receipt = {
        "orderNumber": "POS-0001",
        "items": [{"name": "Cotton Shirt", "quantity": 1, "unitPrice": 450, "total": 450}],
        "subtotal": 450,
        "total": 450,
        "payment": {"method": "cash", "amount": 450},
    }
    _ready(orchestrator)
    orchestrator.submit(branch_id="branch-1", branch="Dhanmondi")

    receipt = orchestrator.fetch_receipt()

    assert receipt.order_id == "ord-1"
    assert receipt.change == Decimal("50")
    assert receipt.branch.name == "Dhanmondi"


def test_fetch_receipt_without_order() -> None:
    orchestrator, _ = _orchestrator()
    with pytest.raises(CheckoutValidationError):
        orchestrator.fetch_receipt()


def test_telemetry_event_emitted(tmp_path) -> None:
    sink = tmp_path / "telemetry.jsonl"
    telemetry = TelemetryLogger(app_name="pos", enabled=True, log_file=sink)
    orchestrator, _ = _orchestrator(telemetry=telemetry)
    _ready(orchestrator)

    orchestrator.submit(branch_id="branch-1")

    lines = sink.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    assert '"api_call_result"' in lines[0]
    assert '"trace_id": "trace-1"' in lines[0]


def test_new_sale_refused_while_submitting() -> None:
    orchestrator, orders = _orchestrator()
    _ready(orchestrator)
    seen: list[Exception] = []

    def _reset() -> None:
        try:
            orchestrator.start_new_sale()
        except SubmissionInProgressError as exc:
            seen.append(exc)

    orders.on_submit = _reset
    orchestrator.submit(branch_id="branch-1")
    assert len(seen) == 1
    assert len(orchestrator.cart.items) == 1


def _rejection() -> ValidationError:
    return ValidationError(code="VALIDATION_ERROR", message="Insufficient stock", details=None, trace_id=None, status_code=400)


def test_rejected_sale_gets_new_key_after_cart_edit() -> None:
    orchestrator, orders = _orchestrator()
    orchestrator.cart.add_item(make_product())
    orders.failures.append(_rejection())
    with pytest.raises(OrderSubmissionError):
        orchestrator.submit(branch_id="branch-1")
    assert orchestrator.idempotency_key is None

    orchestrator.cart.remove_item(0)
    orchestrator.cart.add_item(make_product("other"))
    orchestrator.submit(branch_id="branch-1")

    first, second = orders.requests
    assert [item.product_id for item in first.items] == ["prod-1"]
    assert [item.product_id for item in second.items] == ["other"]
    assert first.idempotency_key != second.idempotency_key


def test_rejected_sale_resubmitted_unchanged_gets_new_key() -> None:
    orchestrator, orders = _orchestrator()
    _ready(orchestrator)
    orders.failures.append(_rejection())
    with pytest.raises(OrderSubmissionError):
        orchestrator.submit(branch_id="branch-1")

    orchestrator.submit(branch_id="branch-1")

    assert orders.requests[0].idempotency_key != orders.requests[1].idempotency_key


def test_network_failure_then_cart_edit_gets_new_key() -> None:
    orchestrator, orders = _orchestrator()
    _ready(orchestrator)
    orders.failures.append(_transport_error())
    with pytest.raises(OrderSubmissionNetworkError):
        orchestrator.submit(branch_id="branch-1")

    orchestrator.cart.update_quantity(0, 1)
    orchestrator.submit(branch_id="branch-1")

    assert orders.requests[0].idempotency_key != orders.requests[1].idempotency_key
    assert orders.requests[1].items[0].quantity == 2


def test_unexpected_submit_error_is_recorded(tmp_path) -> None:
    sink = tmp_path / "telemetry.jsonl"
    telemetry = TelemetryLogger(app_name="pos", enabled=True, log_file=sink)
    orchestrator, orders = _orchestrator(telemetry=telemetry)
    _ready(orchestrator)
    boom = RuntimeError("boom")
    orders.failures.append(boom)

    with pytest.raises(RuntimeError):
        orchestrator.submit(branch_id="branch-1")

    assert orchestrator.state is CheckoutState.FAILED
    assert orchestrator.last_error is boom
    assert orchestrator.idempotency_key is None
    line = sink.read_text(encoding="utf-8").splitlines()[0]
    assert '"error_code": "RuntimeError"' in line
    assert '"success": false' in line


def test_scan_refused_while_submitting() -> None:
    late = make_product("late")
    catalog = FakeCatalogClient({"LATE": LookupResult(product=late)})
    orchestrator, orders = _orchestrator(catalog=catalog)
    _ready(orchestrator)
    seen: list[Exception] = []

    def _scan() -> None:
        try:
            orchestrator.lookup_barcode("LATE")
        except SubmissionInProgressError as exc:
            seen.append(exc)

    orders.on_submit = _scan
    orchestrator.submit(branch_id="branch-1")

    assert len(seen) == 1
    assert catalog.calls == []
    assert [line.product_id for line in orchestrator.cart.items] == ["prod-1"]


def test_scan_resolving_after_sale_completed_is_refused() -> None:
    late = make_product("late")
    catalog = FakeCatalogClient({"LATE": LookupResult(product=late)})
    orchestrator, _ = _orchestrator(catalog=catalog)
    _ready(orchestrator)
    catalog.before_return["LATE"] = lambda: orchestrator.submit(branch_id="branch-1")

    with pytest.raises(CheckoutValidationError):
        orchestrator.lookup_barcode("LATE")

    assert orchestrator.state is CheckoutState.COMPLETED
    assert [line.product_id for line in orchestrator.cart.items] == ["prod-1"]


def test_scan_refused_after_completed_until_new_sale() -> None:
    catalog = FakeCatalogClient({"NEXT": LookupResult(product=make_product("next"))})
    orchestrator, _ = _orchestrator(catalog=catalog)
    _ready(orchestrator)
    orchestrator.submit(branch_id="branch-1")

    with pytest.raises(CheckoutValidationError):
        orchestrator.lookup_barcode("NEXT")
    assert catalog.calls == []

    orchestrator.start_new_sale()
    assert orchestrator.lookup_barcode("NEXT").status == "added"


class FakeCustomersClient:
    def __init__(self, cards: dict[str, Customer]) -> None:
        self.cards = cards

    def find_by_card(self, card_id: str) -> Customer | None:
        return self.cards.get(card_id.strip())


def test_membership_card_lookup_selects_customer_and_rides_on_order() -> None:
    member = Customer.model_validate(
        {"_id": "c-7", "name": "Nadia", "phone": "01912345678", "membership": {"cardId": "MC-1001", "tier": "gold"}}
    )
    orchestrator, orders = _orchestrator(customers=FakeCustomersClient({"MC-1001": member}))
    _ready(orchestrator)

    assert orchestrator.find_customer_by_card(" MC-1001 ") is member
    orchestrator.submit(branch_id="branch-1")

    wire = orders.requests[0].to_wire()
    assert wire["membershipCardId"] == "MC-1001"
    assert wire["customer"] == {"name": "Nadia", "phone": "01912345678", "id": "c-7"}


def test_unknown_membership_card_leaves_customer() -> None:
    orchestrator, orders = _orchestrator(customers=FakeCustomersClient({}))
    _ready(orchestrator)
    orchestrator.customer.set_guest_name("Rafi")

    assert orchestrator.find_customer_by_card("MC-0000") is None
    orchestrator.submit(branch_id="branch-1")

    wire = orders.requests[0].to_wire()
    assert "membershipCardId" not in wire
    assert wire["customer"] == {"name": "Rafi"}
