from __future__ import annotations

from typing import Mapping

from .exceptions import (
    ApiError,
    AuthError,
    ConflictError,
    NotFoundError,
    PermissionError,
    RateLimitError,
    ServerError,
    ValidationError,
)

_STATUS_TO_ERROR: dict[int, type[ApiError]] = {
    400: ValidationError,
    401: AuthError,
    403: PermissionError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
    429: RateLimitError,
}


def _error_message(payload: Mapping[str, object]) -> str:
    # The commerce backend answers {"success": false, "message": ...} while
    # gateways answer {"code", "message"} or {"error": ...}.
    for key in ("message", "error", "detail"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return "Request failed"


def map_error(status_code: int, payload: Mapping[str, object] | None, trace_id: str | None) -> ApiError:
    payload = payload or {}
    code = str(payload.get("code") or "HTTP_ERROR")
    details = payload.get("details") or payload.get("errors")
    payload_trace_id = payload.get("trace_id")
    resolved_trace_id = str(payload_trace_id) if payload_trace_id is not None else trace_id
    mapped = _STATUS_TO_ERROR.get(status_code)
    if mapped is None:
        mapped = ServerError if status_code >= 500 else ApiError
    return mapped(
        code=code,
        message=_error_message(payload),
        details=details,
        trace_id=resolved_trace_id,
        status_code=status_code,
        raw_payload=dict(payload),
    )
