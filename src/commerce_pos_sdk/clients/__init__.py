from .base import BaseClient
from .catalog_client import CatalogClient
from .customers_client import CustomersClient
from .orders_client import OrdersClient, extract_order_id
from .payment_methods_client import PaymentMethodsClient

__all__ = [
    "BaseClient",
    "CatalogClient",
    "CustomersClient",
    "OrdersClient",
    "PaymentMethodsClient",
    "extract_order_id",
]
