from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

IDEMPOTENCY_HEADER = "Idempotency-Key"

_UNSAFE_CHARS = re.compile(r"[^a-z0-9-]+")


@dataclass(frozen=True)
class SaleAttempt:
    """One logical attempt to turn the current cart into an order."""

    idempotency_key: str
    started_at: datetime


def _normalize_terminal(terminal_id: str | None) -> str:
    normalized = _UNSAFE_CHARS.sub("-", (terminal_id or "default").strip().lower()).strip("-")
    return normalized or "default"


def new_idempotency_key(terminal_id: str | None = None, *, now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%S%f")
    nonce = secrets.token_hex(6)
    return f"pos_{_normalize_terminal(terminal_id)}_{stamp}_{nonce}"


def new_sale_attempt(terminal_id: str | None = None) -> SaleAttempt:
    now = datetime.now(timezone.utc)
    return SaleAttempt(idempotency_key=new_idempotency_key(terminal_id, now=now), started_at=now)


def idempotency_headers(key: str) -> dict[str, str]:
    return {IDEMPOTENCY_HEADER: key}
