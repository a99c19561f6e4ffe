from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable

from dotenv import load_dotenv


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ClientConfig:
    env_name: str
    api_base_url: str
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 15.0
    retries: int = 3
    retry_backoff_seconds: float = 0.3
    max_connections: int = 20
    verify_ssl: bool = True
    terminal_id: str = "default"
    vat_rate: Decimal = Decimal("0")


def _require(values: dict[str, str | None], required: Iterable[str]) -> None:
    missing = [key for key in required if not values.get(key)]
    if missing:
        raise ConfigError(f"Missing required config values: {', '.join(missing)}")


def _coerce_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _read_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected a number, got {raw!r}") from exc


def _read_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected an integer, got {raw!r}") from exc


def _read_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name, default)
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected a decimal, got {raw!r}") from exc
    if not value.is_finite():
        raise ConfigError(f"Invalid {name}: expected a finite decimal, got {raw!r}")
    return value


def _validate(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def load_config(env_file: str | None = None) -> ClientConfig:
    """Load transport config from environment with optional .env override."""
    load_dotenv(env_file)

    env_name = (os.getenv("POS_ENV") or "dev").strip()
    env_key = env_name.upper()

    api_base_url = (
        (os.getenv(f"POS_API_BASE_URL_{env_key}") or "").strip()
        or (os.getenv("POS_API_BASE_URL") or "").strip()
    )

    timeout_seconds = _read_float("POS_TIMEOUT_SECONDS", "10")
    _validate(
        timeout_seconds > 0,
        f"Invalid POS_TIMEOUT_SECONDS: expected > 0, got {timeout_seconds}",
    )

    connect_timeout_seconds = _read_float(
        "POS_CONNECT_TIMEOUT_SECONDS", str(min(timeout_seconds, 5.0))
    )
    _validate(
        connect_timeout_seconds > 0,
        f"Invalid POS_CONNECT_TIMEOUT_SECONDS: expected > 0, got {connect_timeout_seconds}",
    )

    read_timeout_seconds = _read_float(
        "POS_READ_TIMEOUT_SECONDS",
        str(max(timeout_seconds, connect_timeout_seconds)),
    )
    _validate(
        read_timeout_seconds > 0,
        f"Invalid POS_READ_TIMEOUT_SECONDS: expected > 0, got {read_timeout_seconds}",
    )

    retries = _read_int("POS_RETRIES", "3")
    _validate(retries >= 0, f"Invalid POS_RETRIES: expected >= 0, got {retries}")

    retry_backoff_seconds = _read_float("POS_RETRY_BACKOFF_SECONDS", "0.3")
    _validate(
        retry_backoff_seconds >= 0,
        f"Invalid POS_RETRY_BACKOFF_SECONDS: expected >= 0, got {retry_backoff_seconds}",
    )

    max_connections = _read_int("POS_MAX_CONNECTIONS", "20")
    _validate(
        max_connections >= 1,
        f"Invalid POS_MAX_CONNECTIONS: expected >= 1, got {max_connections}",
    )

    vat_rate = _read_decimal("POS_VAT_RATE", "0")
    _validate(
        Decimal("0") <= vat_rate <= Decimal("100"),
        f"Invalid POS_VAT_RATE: expected a percentage between 0 and 100, got {vat_rate}",
    )

    verify_ssl = _coerce_bool(os.getenv("POS_VERIFY_SSL"), True)
    terminal_id = (os.getenv("POS_TERMINAL_ID") or "default").strip() or "default"

    values = {"POS_API_BASE_URL": api_base_url}
    _require(values, ["POS_API_BASE_URL"])

    return ClientConfig(
        env_name=env_name,
        api_base_url=api_base_url.rstrip("/"),
        connect_timeout_seconds=connect_timeout_seconds,
        read_timeout_seconds=read_timeout_seconds,
        retries=retries,
        retry_backoff_seconds=retry_backoff_seconds,
        max_connections=max_connections,
        verify_ssl=verify_ssl,
        terminal_id=terminal_id,
        vat_rate=vat_rate,
    )
