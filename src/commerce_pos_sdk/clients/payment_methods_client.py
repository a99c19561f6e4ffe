from __future__ import annotations

from dataclasses import dataclass

from ..models import PaymentMethodConfig
from .base import BaseClient, unwrap_data

PLATFORM_CONFIG_PATH = "/api/v1/platform/config"


@dataclass
class PaymentMethodsClient(BaseClient):
    module: str = "payment_methods"

    def list_methods(self) -> list[PaymentMethodConfig]:
        payload = self._request(
            "GET",
            PLATFORM_CONFIG_PATH,
            params={"select": "paymentMethods"},
            operation="list_payment_methods",
            use_get_cache=True,
        )
        data = unwrap_data(payload, expected="platform config")
        if isinstance(data, dict):
            methods = data.get("paymentMethods") or []
        elif isinstance(data, list):
            methods = data
        else:
            raise ValueError("Expected payment methods to be a JSON object or list")
        return [PaymentMethodConfig.model_validate(method) for method in methods if isinstance(method, dict)]

    def refresh(self) -> list[PaymentMethodConfig]:
        self.http.clear_cache()
        return self.list_methods()
