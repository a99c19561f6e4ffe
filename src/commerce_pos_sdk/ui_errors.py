from __future__ import annotations

from dataclasses import dataclass

from .exceptions import (
    ApiError,
    BarcodeNotFoundError,
    OrderSubmissionError,
    OrderSubmissionNetworkError,
    PosError,
    RateLimitError,
    ServerError,
    TransportError,
)

_RETRYABLE_API_ERRORS = (TransportError, ServerError, RateLimitError)


@dataclass(frozen=True)
class UserFacingError:
    message: str
    details: str | None = None
    trace_id: str | None = None
    retryable: bool = False
    field: str | None = None

    @property
    def technical_details(self) -> str | None:
        if self.details:
            return self.details
        return None


def to_user_facing_error(exc: ApiError | PosError) -> UserFacingError:
    if isinstance(exc, ApiError):
        return _from_api_error(exc)
    if isinstance(exc, OrderSubmissionError):
        details = exc.code
        trace_id = exc.trace_id
        if exc.cause is not None:
            details = f"{exc.code}: {exc.cause.code} (HTTP {exc.cause.status_code})"
        retryable = isinstance(exc, OrderSubmissionNetworkError) or isinstance(exc.cause, _RETRYABLE_API_ERRORS)
        return UserFacingError(message=exc.message, details=details, trace_id=trace_id, retryable=retryable)
    return UserFacingError(
        message=exc.message,
        details=exc.code,
        retryable=isinstance(exc, BarcodeNotFoundError),
        field=exc.field,
    )


def _from_api_error(exc: ApiError) -> UserFacingError:
    primary = exc.message.strip() or "Request failed"
    details = f"{exc.code} (HTTP {exc.status_code})"
    if exc.details:
        details = f"{details}: {exc.details}"
    return UserFacingError(
        message=primary,
        details=details,
        trace_id=exc.trace_id,
        retryable=isinstance(exc, _RETRYABLE_API_ERRORS),
    )
