from __future__ import annotations

from dataclasses import dataclass, field

from .checkout import CheckoutOrchestrator
from .clients.catalog_client import CatalogClient
from .clients.customers_client import CustomersClient
from .clients.orders_client import OrdersClient
from .clients.payment_methods_client import PaymentMethodsClient
from .config import ClientConfig
from .http_client import HttpClient, TraceContext
from .receipt import ReceiptNormalizer
from .telemetry import TelemetryLogger


@dataclass
class ApiSession:
    """Authenticated entry point for one terminal bound to one branch."""

    config: ClientConfig
    token: str | None = None
    branch_id: str | None = None
    trace: TraceContext | None = None
    _http: HttpClient | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.trace = self.trace or TraceContext()

    def http(self) -> HttpClient:
        # One transport per session so reference-data caching spans clients.
        if self._http is None:
            self._http = HttpClient(config=self.config, trace=self.trace)
        return self._http

    def catalog_client(self) -> CatalogClient:
        return CatalogClient(http=self.http(), access_token=self.token, branch_id=self.branch_id)

    def payment_methods_client(self) -> PaymentMethodsClient:
        return PaymentMethodsClient(http=self.http(), access_token=self.token, branch_id=self.branch_id)

    def customers_client(self) -> CustomersClient:
        return CustomersClient(http=self.http(), access_token=self.token, branch_id=self.branch_id)

    def orders_client(self) -> OrdersClient:
        return OrdersClient(http=self.http(), access_token=self.token, branch_id=self.branch_id)

    def checkout_orchestrator(
        self,
        *,
        block_cash_underpayment: bool = False,
        prices_include_vat: bool = True,
        telemetry: TelemetryLogger | None = None,
    ) -> CheckoutOrchestrator:
        return CheckoutOrchestrator(
            orders=self.orders_client(),
            catalog=self.catalog_client(),
            payment_methods=self.payment_methods_client(),
            customers=self.customers_client(),
            receipt_normalizer=ReceiptNormalizer(
                vat_rate=self.config.vat_rate, prices_include_vat=prices_include_vat
            ),
            terminal_id=self.config.terminal_id,
            block_cash_underpayment=block_cash_underpayment,
            telemetry=telemetry,
        )

    def establish(self, token: str, *, branch_id: str | None = None) -> None:
        self.token = token
        if branch_id is not None:
            self.branch_id = branch_id
        if self._http is not None:
            self._http.clear_cache()

    def clear(self) -> None:
        self.token = None
        if self._http is not None:
            self._http.clear_cache()
