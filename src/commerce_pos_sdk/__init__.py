from .cart import CartLineItem, CartStore
from .checkout import CheckoutOrchestrator, CheckoutResult, CheckoutState, LookupOutcome
from .config import ClientConfig, ConfigError, load_config
from .customers import CustomerSelection, build_card_query, build_customer_query, is_valid_phone, validate_new_customer
from .exceptions import (
    ApiError,
    BarcodeNotFoundError,
    CheckoutValidationError,
    ConflictError,
    CustomerValidationError,
    EmptyCartError,
    InsufficientCashError,
    MissingPaymentReferenceError,
    NoPaymentMethodError,
    NotFoundError,
    OrderSubmissionError,
    OrderSubmissionNetworkError,
    OutOfStockError,
    PosError,
    SplitPaymentError,
    SubmissionInProgressError,
    TransportError,
    UnknownPaymentMethodError,
    ValidationError,
    VariantNotFoundError,
)
from .http_client import HttpClient, TraceContext
from .idempotency import new_idempotency_key
from .models import Customer, LookupResult, PaymentMethodConfig, PosProduct, ProductVariant
from .models_orders import CheckoutRequest
from .models_receipt import Receipt, ReceiptItem
from .payment import PaymentOption, PaymentResolver, amount_due, change, map_to_pos_method
from .pricing import CartSummary, compute_summary, price_range, variant_unit_price
from .receipt import ReceiptNormalizer
from .session import ApiSession
from .telemetry import TelemetryLogger, build_event
from .ui_errors import UserFacingError, to_user_facing_error

__all__ = [
    "ApiError",
    "ApiSession",
    "BarcodeNotFoundError",
    "CartLineItem",
    "CartStore",
    "CartSummary",
    "CheckoutOrchestrator",
    "CheckoutRequest",
    "CheckoutResult",
    "CheckoutState",
    "CheckoutValidationError",
    "ClientConfig",
    "ConfigError",
    "ConflictError",
    "Customer",
    "CustomerSelection",
    "CustomerValidationError",
    "EmptyCartError",
    "HttpClient",
    "InsufficientCashError",
    "LookupOutcome",
    "LookupResult",
    "MissingPaymentReferenceError",
    "NoPaymentMethodError",
    "NotFoundError",
    "OrderSubmissionError",
    "OrderSubmissionNetworkError",
    "OutOfStockError",
    "PaymentMethodConfig",
    "PaymentOption",
    "PaymentResolver",
    "PosError",
    "PosProduct",
    "ProductVariant",
    "Receipt",
    "ReceiptItem",
    "ReceiptNormalizer",
    "SplitPaymentError",
    "SubmissionInProgressError",
    "TelemetryLogger",
    "TraceContext",
    "TransportError",
    "UnknownPaymentMethodError",
    "UserFacingError",
    "ValidationError",
    "VariantNotFoundError",
    "amount_due",
    "build_card_query",
    "build_customer_query",
    "build_event",
    "change",
    "compute_summary",
    "is_valid_phone",
    "load_config",
    "map_to_pos_method",
    "new_idempotency_key",
    "price_range",
    "to_user_facing_error",
    "validate_new_customer",
    "variant_unit_price",
]
