from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..http_client import HttpClient

BRANCH_HEADER = "X-Branch-ID"

_ENVELOPE_KEYS = {"data", "message", "meta"}


@dataclass
class BaseClient:
    http: HttpClient
    access_token: str | None = None
    branch_id: str | None = None
    module: str = "pos"

    def _auth_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        if self.branch_id:
            headers[BRANCH_HEADER] = self.branch_id
        return headers

    def _request(self, method: str, path: str, **kwargs):
        headers = kwargs.pop("headers", {})
        merged = {**self._auth_headers(), **headers}
        kwargs.setdefault("module", self.module)
        return self.http.request(method, path, headers=merged, **kwargs)


def unwrap_data(payload: Any, *, expected: str) -> Any:
    """Strip the ``{"success": ..., "data": ...}`` envelope the API wraps results in."""
    if isinstance(payload, Mapping) and "data" in payload and ("success" in payload or set(payload) <= _ENVELOPE_KEYS):
        return payload["data"]
    if payload is None:
        raise ValueError(f"Expected {expected} response body, got nothing")
    return payload
