from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter

from .config import ClientConfig
from .error_mapper import map_error
from .exceptions import TransportError

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-ID"
TRACE_HEADER_ALIASES = (TRACE_HEADER, "X-Trace-Id", "x-trace-id", "X-Request-ID")
TERMINAL_HEADER = "X-Terminal-ID"

ResponseHook = Callable[[requests.Response], None]
RequestHook = Callable[[str, str, dict[str, Any]], None]
JsonPayload = dict[str, Any] | list[Any] | None

# Headers that change what the server returns for the same URL.
_CACHE_SCOPED_HEADERS = {"Authorization", "X-Branch-ID", TERMINAL_HEADER}


@dataclass
class TraceContext:
    trace_id: str | None = None

    def ensure(self) -> str:
        if not self.trace_id:
            self.trace_id = str(uuid.uuid4())
        return self.trace_id

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        for key in TRACE_HEADER_ALIASES:
            trace_id = headers.get(key)
            if trace_id:
                self.trace_id = trace_id
                return

    def update_from_payload(self, payload: Mapping[str, object]) -> None:
        trace_id = payload.get("trace_id") or payload.get("requestId")
        if isinstance(trace_id, str) and trace_id:
            self.trace_id = trace_id


@dataclass
class LastOperation:
    module: str
    operation: str
    duration_ms: int
    result: str
    trace_id: str | None
    attempts: int = 1


@dataclass
class HttpClient:
    config: ClientConfig
    trace: TraceContext | None = None
    session: requests.Session | None = None
    before_request: RequestHook | None = None
    after_response: ResponseHook | None = None
    cache_ttl_seconds: float = 30.0
    enable_get_cache: bool = True
    _cache: dict[str, tuple[float, JsonPayload]] | None = None
    last_operation: LastOperation | None = None

    def __post_init__(self) -> None:
        if self.session is None:
            self.session = requests.Session()
            adapter = HTTPAdapter(
                pool_connections=self.config.max_connections,
                pool_maxsize=self.config.max_connections,
            )
            self.session.mount("http://", adapter)
            self.session.mount("https://", adapter)
        if self._cache is None:
            self._cache = {}

    def _build_url(self, path: str) -> str:
        base = self.config.api_base_url.rstrip("/") + "/"
        return urljoin(base, path.lstrip("/"))

    def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        response_hook: ResponseHook | None = None,
        retry_mutation: bool = False,
        module: str = "unknown",
        operation: str = "unknown",
        use_get_cache: bool = False,
        invalidate_paths: list[str] | None = None,
    ) -> JsonPayload:
        """Send one logical request.

        GET/HEAD are retried on transport errors and 5xx responses with
        exponential backoff. Mutations are sent once unless
        ``retry_mutation`` is set, which callers only do when the body carries
        an idempotency key: every retry resends the exact same headers and
        body, so the server can recognise the attempt.
        """
        if self.session is None:
            raise RuntimeError("HTTP session not initialized")
        request_headers = {"Accept": "application/json", TERMINAL_HEADER: self.config.terminal_id}
        if headers:
            request_headers.update(headers)
        trace_context = self.trace or TraceContext()
        request_headers[TRACE_HEADER] = trace_context.ensure()

        normalized_method = method.upper()
        url = self._build_url(path)
        request_context = {
            "headers": request_headers,
            "json_body": json_body,
            "params": params,
        }
        if self.before_request:
            self.before_request(normalized_method, url, request_context)

        can_retry = normalized_method in {"GET", "HEAD"} or retry_mutation
        attempts = self.config.retries + 1 if can_retry else 1
        cache_key = self._cache_key(normalized_method, url, request_headers, params)
        should_use_get_cache = self.enable_get_cache and use_get_cache and normalized_method == "GET"
        if should_use_get_cache and cache_key:
            cached = self._read_cache(cache_key)
            if cached is not None:
                self.last_operation = LastOperation(
                    module=module,
                    operation=operation,
                    duration_ms=0,
                    result="success(cache)",
                    trace_id=trace_context.trace_id,
                    attempts=0,
                )
                return cached

        started = time.monotonic()
        response: requests.Response | None = None
        attempt = 0
        for attempt in range(attempts):
            try:
                response = self.session.request(
                    method=normalized_method,
                    url=url,
                    headers=request_headers,
                    json=json_body,
                    params=params,
                    timeout=(self.config.connect_timeout_seconds, self.config.read_timeout_seconds),
                    verify=self.config.verify_ssl,
                )
            except requests.RequestException as exc:
                if attempt >= attempts - 1:
                    self._record_operation(
                        module, operation, started, "transport_error", trace_context.trace_id, attempt + 1
                    )
                    logger.warning(
                        "http_transport_error",
                        extra={
                            "client_module": module,
                            "operation": operation,
                            "attempts": attempt + 1,
                            "trace_id": trace_context.trace_id,
                            "error_type": type(exc).__name__,
                        },
                    )
                    raise TransportError(
                        code="TRANSPORT_ERROR",
                        message=str(exc),
                        details={"type": type(exc).__name__, "attempts": attempt + 1},
                        trace_id=trace_context.trace_id,
                        status_code=0,
                        raw_payload=None,
                    ) from exc
            else:
                if response.status_code < 500 or attempt >= attempts - 1:
                    break
            logger.info(
                "http_retry_scheduled",
                extra={"client_module": module, "operation": operation, "attempt": attempt + 1},
            )
            time.sleep(self.config.retry_backoff_seconds * (2**attempt))

        if response is None:
            raise RuntimeError("HTTP request finished without a response")

        if self.after_response:
            self.after_response(response)
        trace_context.update_from_headers(response.headers)
        if response_hook:
            response_hook(response)
        if response.ok:
            if not response.content:
                self._record_operation(module, operation, started, "success", trace_context.trace_id, attempt + 1)
                self._invalidate_cache(invalidate_paths or [])
                return None
            parsed = response.json()
            if should_use_get_cache and cache_key:
                self._write_cache(cache_key, parsed)
            if normalized_method != "GET":
                self._invalidate_cache(invalidate_paths or [])
            self._record_operation(module, operation, started, "success", trace_context.trace_id, attempt + 1)
            return parsed

        payload = None
        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError):
            payload = {"message": response.text}
        if not isinstance(payload, dict):
            payload = {"message": str(payload)}
        trace_context.update_from_payload(payload)
        self._record_operation(module, operation, started, "error", trace_context.trace_id, attempt + 1)
        raise map_error(response.status_code, payload, trace_context.trace_id)

    def clear_cache(self) -> None:
        if self._cache is not None:
            self._cache.clear()

    def _record_operation(
        self,
        module: str,
        operation: str,
        started: float,
        result: str,
        trace_id: str | None,
        attempts: int,
    ) -> None:
        self.last_operation = LastOperation(
            module=module,
            operation=operation,
            duration_ms=int((time.monotonic() - started) * 1000),
            result=result,
            trace_id=trace_id,
            attempts=attempts,
        )

    def _cache_key(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        params: dict[str, Any] | None,
    ) -> str | None:
        if method != "GET":
            return None
        safe_headers = {key: value for key, value in headers.items() if key in _CACHE_SCOPED_HEADERS}
        return json.dumps({"url": url, "headers": safe_headers, "params": params or {}}, sort_keys=True, default=str)

    def _read_cache(self, key: str) -> JsonPayload:
        if self._cache is None:
            return None
        record = self._cache.get(key)
        if not record:
            return None
        expires_at, payload = record
        if time.monotonic() >= expires_at:
            self._cache.pop(key, None)
            return None
        return payload

    def _write_cache(self, key: str, payload: JsonPayload) -> None:
        if self._cache is None:
            self._cache = {}
        self._cache[key] = (time.monotonic() + self.cache_ttl_seconds, payload)

    def _invalidate_cache(self, paths: list[str]) -> None:
        if self._cache is None or not paths:
            return
        doomed = [key for key in self._cache if any(path in key for path in paths)]
        for key in doomed:
            self._cache.pop(key, None)
