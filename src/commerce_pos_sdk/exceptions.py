from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    code: str
    message: str
    details: object | None
    trace_id: str | None
    status_code: int
    raw_payload: object | None = None

    def __str__(self) -> str:
        trace = f" trace_id={self.trace_id}" if self.trace_id else ""
        return f"[{self.status_code}] {self.code}: {self.message}{trace}"


class UnauthorizedError(ApiError):
    pass


class ForbiddenError(ApiError):
    pass


class NotFoundError(ApiError):
    pass


class ValidationError(ApiError):
    pass


class AuthError(UnauthorizedError):
    """Token missing, expired or rejected."""


class PermissionError(ForbiddenError):
    """Authenticated user may not act on this branch or resource."""


class ConflictError(ApiError):
    """409 or conflict-style errors, e.g. a reused idempotency key."""


class RateLimitError(ApiError):
    """429 throttling error."""


class ServerError(ApiError):
    """5xx server-side failures."""


class TransportError(ApiError):
    """Network/transport failure before an HTTP response was returned."""


class PosError(Exception):
    """Base class for locally recoverable point-of-sale failures."""

    code = "POS_ERROR"

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field


class OutOfStockError(PosError):
    code = "OUT_OF_STOCK"

    def __init__(self, product_id: str, variant_sku: str | None = None) -> None:
        target = f"{product_id}/{variant_sku}" if variant_sku else product_id
        super().__init__(f"Out of stock: {target}")
        self.product_id = product_id
        self.variant_sku = variant_sku


class VariantNotFoundError(PosError):
    code = "VARIANT_NOT_FOUND"

    def __init__(self, product_id: str, variant_sku: str) -> None:
        super().__init__(f"Product {product_id} has no variant {variant_sku}")
        self.product_id = product_id
        self.variant_sku = variant_sku


class EmptyCartError(PosError):
    code = "EMPTY_CART"

    def __init__(self) -> None:
        super().__init__("Cart is empty")


class MissingPaymentReferenceError(PosError):
    code = "PAYMENT_REFERENCE_REQUIRED"

    def __init__(self, pos_method: str) -> None:
        super().__init__(f"Payment reference is required for {pos_method}", field="reference")
        self.pos_method = pos_method


class NoPaymentMethodError(PosError):
    code = "NO_PAYMENT_METHOD"

    def __init__(self) -> None:
        super().__init__("No active payment methods configured")


class UnknownPaymentMethodError(PosError):
    code = "UNKNOWN_PAYMENT_METHOD"

    def __init__(self, key: str) -> None:
        super().__init__(f"Payment method {key!r} is not selectable")
        self.key = key


class SplitPaymentError(PosError):
    code = "SPLIT_PAYMENT_INVALID"


class InsufficientCashError(PosError):
    code = "INSUFFICIENT_CASH"


class CheckoutValidationError(PosError):
    code = "CHECKOUT_INVALID"


class CustomerValidationError(PosError):
    code = "CUSTOMER_INVALID"


class BarcodeNotFoundError(PosError):
    code = "BARCODE_NOT_FOUND"

    def __init__(self, code: str, message: str | None = None) -> None:
        super().__init__(message or f"Product not found for code {code!r}")
        self.barcode = code


class SubmissionInProgressError(PosError):
    code = "SUBMISSION_IN_PROGRESS"

    def __init__(self) -> None:
        super().__init__("An order submission is already in progress")


class OrderSubmissionError(PosError):
    """The order endpoint rejected the submission; cart and payment are kept."""

    code = "ORDER_SUBMISSION_FAILED"

    def __init__(self, message: str, *, cause: ApiError | None = None) -> None:
        super().__init__(message)
        self.cause = cause

    @property
    def trace_id(self) -> str | None:
        return self.cause.trace_id if self.cause else None


class OrderSubmissionNetworkError(OrderSubmissionError):
    """The order endpoint could not be reached after bounded retries."""

    code = "ORDER_SUBMISSION_NETWORK"
